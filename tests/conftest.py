"""
Shared fixtures for quote engine tests.

No test touches the network or Redis: the automation service is replaced
by a scripted fake and backoff sleeps are recorded instead of awaited.
"""

from typing import Any, Callable, Dict, List, Optional

import pytest

from quote_engine.models.automation import AutomationEvent, AutomationResult
from quote_engine.models.user_data import UserData
from quote_engine.models.workflow import ProviderWorkflowConfig, StepDefinition
from quote_engine.templates.catalog import ProviderCatalog


class FakeAutomationClient:
    """
    Stands in for AutomationClient.

    Responses are taken in order from a per-provider script keyed by the
    provider name appearing in the goal, or produced by a responder callable.
    """

    def __init__(
        self,
        scripts: Optional[Dict[str, List[AutomationResult]]] = None,
        responder: Optional[Callable[..., AutomationResult]] = None,
        activity: Optional[List[AutomationEvent]] = None,
    ):
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.responder = responder
        self.activity = activity or []
        self.calls: List[Dict[str, Any]] = []

    async def run_automation(
        self,
        url: str,
        goal: str,
        api_key: str,
        timeout: Optional[float] = None,
        browser_profile: str = "lite",
        on_progress=None,
    ) -> AutomationResult:
        self.calls.append({
            "url": url,
            "goal": goal,
            "api_key": api_key,
            "timeout": timeout,
            "browser_profile": browser_profile,
        })

        if on_progress:
            for event in self.activity:
                await on_progress(event)

        if self.responder:
            return self.responder(url=url, goal=goal)

        for name, script in self.scripts.items():
            if name in goal:
                if not script:
                    raise AssertionError(f"No scripted response left for {name}")
                return script.pop(0)

        raise AssertionError(f"No script matches goal: {goal[:80]}")

    async def close(self):
        pass


class RecordingSleep:
    """Records requested backoff delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


def ok(data: Dict[str, Any], run_id: Optional[str] = None) -> AutomationResult:
    return AutomationResult(success=True, data=data, run_id=run_id)


def failed(error: str, run_id: Optional[str] = None) -> AutomationResult:
    return AutomationResult(success=False, error=error, run_id=run_id)


def make_provider(
    provider_id: str,
    provider_name: str,
    steps: List[Dict[str, Any]],
    base_url: Optional[str] = None,
) -> ProviderWorkflowConfig:
    return ProviderWorkflowConfig(
        provider_id=provider_id,
        provider_name=provider_name,
        base_url=base_url or f"https://www.{provider_id}.example/",
        steps=[StepDefinition(**step) for step in steps],
    )


TWO_STEP_WORKFLOW = [
    {
        "name": "Form Discovery",
        "prompt_template": "Open the {{provider_name}} quote form at {{base_url}}",
        "output_kind": "form_discovery",
        "timeout_seconds": 120,
        "max_retries": 2,
    },
    {
        "name": "Quote Extraction",
        "prompt_template": "Read the {{provider_name}} quote for {{firstName}} at {{current_url}}",
        "output_kind": "quote_extraction",
        "timeout_seconds": 300,
        "max_retries": 2,
    },
]


@pytest.fixture
def user_payload() -> Dict[str, Any]:
    """Valid camelCase request body."""
    return {
        "firstName": "Crystal",
        "lastName": "Mcpherson",
        "dateOfBirth": "10/06/1987",
        "email": "crystal@example.com",
        "phone": "3372548478",
        "vin": "2C3CDZAG2GH967639",
        "year": 2016,
        "make": "Dodge",
        "model": "Challenger",
        "employmentStatus": "EMPLOYED",
        "educationLevel": "BACHELORS",
        "policyStartDate": "2025-09-25",
        "mailingAddress": "1304 E Copeland Rd",
        "city": "Arlington",
        "state": "TX",
        "zipcode": "76011",
        "isMailingSameAsGaraging": True,
    }


@pytest.fixture
def user_data(user_payload) -> UserData:
    return UserData.model_validate(user_payload)


@pytest.fixture
def two_step_catalog() -> ProviderCatalog:
    """Three providers sharing a two-step workflow."""
    return ProviderCatalog({
        "alpha": make_provider("alpha", "Alpha Insurance", TWO_STEP_WORKFLOW),
        "bravo": make_provider("bravo", "Bravo Mutual", TWO_STEP_WORKFLOW),
        "charlie": make_provider("charlie", "Charlie Auto", TWO_STEP_WORKFLOW),
    })


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client() -> Callable[..., FakeAutomationClient]:
    return FakeAutomationClient


@pytest.fixture(name="ok")
def ok_fixture() -> Callable[..., AutomationResult]:
    return ok


@pytest.fixture(name="failed")
def failed_fixture() -> Callable[..., AutomationResult]:
    return failed
