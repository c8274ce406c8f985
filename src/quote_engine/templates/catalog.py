"""
Provider workflow catalog loaded from YAML.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import yaml
from pydantic import ValidationError

from ..errors import CatalogError, ProviderNotFoundError
from ..models.workflow import ProviderWorkflowConfig

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "providers.yaml"


class ProviderCatalog:
    """Read-only lookup of provider workflow configurations."""

    def __init__(self, providers: Dict[str, ProviderWorkflowConfig]):
        self._providers = dict(providers)

    def get(self, provider_id: str) -> ProviderWorkflowConfig:
        """
        Get a provider configuration.

        Raises:
            ProviderNotFoundError: if the provider is not in the catalog
        """
        provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotFoundError(
                f"No workflow configuration for provider: {provider_id}",
                provider_id=provider_id,
            )
        return provider

    def provider_ids(self) -> List[str]:
        return list(self._providers)

    def summary(self) -> List[dict]:
        """Provider listing for API consumers."""
        return [
            {
                "id": p.provider_id,
                "name": p.provider_name,
                "url": p.base_url,
                "steps": [s.name for s in p.steps],
                "requiresAgentContact": p.requires_agent_contact,
                "specialHandling": p.special_handling,
            }
            for p in self._providers.values()
        ]

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __iter__(self) -> Iterator[ProviderWorkflowConfig]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)


def load_provider_catalog(path: Optional[Union[str, Path]] = None) -> ProviderCatalog:
    """
    Load the provider catalog from a YAML file.

    Args:
        path: Catalog file (defaults to the bundled providers.yaml)

    Raises:
        CatalogError: if the file cannot be read or a provider entry is invalid
    """
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH

    try:
        with open(catalog_path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise CatalogError(f"Failed to read provider catalog {catalog_path}: {e}") from e

    entries = document.get("providers") if isinstance(document, dict) else None
    if not isinstance(entries, dict) or not entries:
        raise CatalogError(f"Provider catalog {catalog_path} defines no providers")

    providers: Dict[str, ProviderWorkflowConfig] = {}
    for provider_id, entry in entries.items():
        try:
            providers[provider_id] = ProviderWorkflowConfig.model_validate(
                {"provider_id": provider_id, **(entry or {})}
            )
        except ValidationError as e:
            raise CatalogError(f"Invalid configuration for provider {provider_id}: {e}", provider_id=provider_id) from e

    logger.info(f"Loaded {len(providers)} provider workflows from {catalog_path}")
    return ProviderCatalog(providers)
