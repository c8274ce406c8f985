"""
Unit tests for the provider catalog.
"""

import pytest

from quote_engine.errors import CatalogError, ProviderNotFoundError
from quote_engine.orchestration.templating import find_placeholders
from quote_engine.templates import load_provider_catalog

EXPECTED_PROVIDERS = {
    "geico": "GEICO",
    "progressive": "Progressive",
    "statefarm": "State Farm",
    "allstate": "Allstate",
    "libertymutual": "Liberty Mutual",
    "nationwide": "Nationwide",
    "farmers": "Farmers Insurance",
    "usaa": "USAA",
    "travelers": "Travelers",
    "americanfamily": "American Family",
}


@pytest.fixture(scope="module")
def catalog():
    return load_provider_catalog()


class TestBundledCatalog:
    """Test the bundled providers.yaml."""

    def test_all_providers_present(self, catalog):
        assert {p.provider_id: p.provider_name for p in catalog} == EXPECTED_PROVIDERS
        assert len(catalog) == 10

    def test_five_step_workflow(self, catalog):
        provider = catalog.get("geico")
        assert [s.name for s in provider.steps] == [
            "Form Discovery",
            "Initial Entry",
            "Driver Information",
            "Vehicle & Address",
            "Quote Extraction",
        ]
        assert [s.timeout_seconds for s in provider.steps] == [120, 180, 240, 240, 300]
        assert [s.max_retries for s in provider.steps] == [2, 3, 3, 3, 2]
        assert [s.output_kind for s in provider.steps] == [
            "form_discovery", "page_progress", "page_progress", "page_progress", "quote_extraction",
        ]

    def test_agent_contact_providers(self, catalog):
        statefarm = catalog.get("statefarm")
        assert statefarm.requires_agent_contact is True
        assert statefarm.steps[-1].description == "Extract final quote or agent info"
        assert statefarm.steps[-1].name == "Quote Extraction"
        assert catalog.get("usaa").special_handling.startswith("USAA requires military affiliation")
        assert catalog.get("geico").requires_agent_contact is False

    def test_extraction_prompt_names_error_tags(self, catalog):
        prompt = catalog.get("allstate").steps[-1].prompt_template
        for tag in ("REQUIRES_AGENT_CONTACT", "NO_COVERAGE_AVAILABLE", "ADDITIONAL_INFO_REQUIRED", "QUOTE_NOT_FOUND_TIMEOUT"):
            assert tag in prompt

    def test_placeholders_are_resolvable(self, catalog, user_data):
        """Every placeholder is a user field, a provider field or current_url."""
        known = set(user_data.template_variables()) | {"provider_name", "base_url", "current_url"}
        for provider in catalog:
            for step in provider.steps:
                assert set(find_placeholders(step.prompt_template)) <= known, step.name

    def test_unknown_provider(self, catalog):
        assert "geico" in catalog
        assert "acme" not in catalog
        with pytest.raises(ProviderNotFoundError):
            catalog.get("acme")

    def test_summary(self, catalog):
        summary = {p["id"]: p for p in catalog.summary()}
        assert summary["americanfamily"]["url"] == "https://www.amfam.com/"
        assert summary["usaa"]["requiresAgentContact"] is True


class TestLoadProviderCatalog:
    """Test catalog loading errors."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(CatalogError):
            load_provider_catalog(tmp_path / "missing.yaml")

    def test_no_providers(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("providers: {}\n")
        with pytest.raises(CatalogError):
            load_provider_catalog(path)

    def test_invalid_provider(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("providers:\n  acme:\n    provider_name: Acme\n    base_url: https://acme.example/\n    steps: []\n")
        with pytest.raises(CatalogError) as exc_info:
            load_provider_catalog(path)
        assert exc_info.value.provider_id == "acme"

    def test_custom_catalog(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            "providers:\n"
            "  acme:\n"
            "    provider_name: Acme\n"
            "    base_url: https://acme.example/\n"
            "    steps:\n"
            "      - name: Only Step\n"
            "        prompt_template: Get a quote from {{provider_name}}\n"
        )
        catalog = load_provider_catalog(path)
        assert catalog.provider_ids() == ["acme"]
        assert catalog.get("acme").steps[0].output_kind == "generic"
