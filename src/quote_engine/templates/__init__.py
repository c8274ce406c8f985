"""
Provider workflow templates.
"""

from .catalog import DEFAULT_CATALOG_PATH, ProviderCatalog, load_provider_catalog

__all__ = [
    "DEFAULT_CATALOG_PATH",
    "ProviderCatalog",
    "load_provider_catalog",
]
