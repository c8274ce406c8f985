"""
Single-attempt execution of one workflow step.
"""

import logging
import time
from typing import Any, Dict, Mapping, Optional, Union

from opentelemetry import trace
from pydantic import ValidationError

from ..events import ProgressCallback, dispatch
from ..models.automation import AutomationEvent
from ..models.outcomes import parse_step_outcome
from ..models.user_data import UserData
from ..models.workflow import StepExecutionResult, Workflow, WorkflowStep
from ..tools.automation_client import AutomationClient
from .templating import render_template

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class StepExecutor:
    """Renders a step goal, runs it through the automation client and interprets the output."""

    def __init__(self, automation_client: AutomationClient, browser_profile: str = "lite"):
        self.automation_client = automation_client
        self.browser_profile = browser_profile

    @staticmethod
    def build_variables(
        workflow: Workflow,
        user_data: Union[UserData, Mapping[str, Any]],
    ) -> Dict[str, Any]:
        """Template variables for a step; later sources win."""
        if isinstance(user_data, UserData):
            user_variables = user_data.template_variables()
        else:
            user_variables = dict(user_data)

        return {
            "provider_name": workflow.provider_name,
            "base_url": workflow.base_url,
            **user_variables,
            "current_url": workflow.session_data.get("current_url") or "",
            **workflow.session_data,
        }

    async def execute(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        user_data: Union[UserData, Mapping[str, Any]],
        api_key: str,
        on_activity: Optional[ProgressCallback] = None,
    ) -> StepExecutionResult:
        """
        Run one attempt of a step.

        Does not mutate the workflow or the step.
        """
        start_time = time.monotonic()

        goal, unresolved = render_template(step.goal_template, self.build_variables(workflow, user_data))
        span = trace.get_current_span()
        if unresolved:
            span.set_attribute("step.unresolved_placeholders", ",".join(unresolved))

        target_url = workflow.session_data.get("current_url") or workflow.base_url
        logger.info(
            f"Executing step {step.step}/{workflow.total_steps} '{step.name}' "
            f"for {workflow.provider_id} at {target_url}"
        )

        async def _forward(event: AutomationEvent):
            await dispatch(on_activity, event)

        result = await self.automation_client.run_automation(
            url=target_url,
            goal=goal,
            api_key=api_key,
            timeout=step.timeout_seconds,
            browser_profile=self.browser_profile,
            on_progress=_forward if on_activity else None,
        )

        duration_ms = int((time.monotonic() - start_time) * 1000)

        def _failed(error: str) -> StepExecutionResult:
            return StepExecutionResult(
                success=False,
                error=error,
                duration_ms=duration_ms,
                automation_run_id=result.run_id,
            )

        if not result.success:
            return _failed(result.error or "Failed to parse step output")

        payload = result.data
        if not isinstance(payload, dict):
            return _failed("Failed to parse step output")

        if payload.get("success") is not True:
            error = payload.get("error")
            return _failed(str(error) if error else "Step execution failed")

        try:
            outcome = parse_step_outcome(step.output_kind, payload)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            return _failed(f"Malformed step output: {problems}")

        return StepExecutionResult(
            success=True,
            output_data=payload,
            next_url=outcome.next_url(),
            duration_ms=duration_ms,
            automation_run_id=result.run_id,
        )
