"""
Bounded retries for workflow steps.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from opentelemetry import trace

from ..errors import is_terminal_semantic_error
from ..models.automation import AutomationEvent
from ..models.base import utcnow
from ..models.user_data import UserData
from ..models.workflow import (
    StepExecutionResult,
    StepStatus,
    Workflow,
    WorkflowEventType,
    WorkflowStep,
)
from .step_executor import StepExecutor

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# emit(event_type, step, message, error=None, automation_run_id=None)
StepEmitter = Callable[..., Awaitable[None]]

NAVIGATION_URL_KEYS = ("current_page_url", "form_url")


def merge_session_data(session: Mapping[str, Any], output: Mapping[str, Any]) -> Dict[str, Any]:
    """Shallow merge where keys from the step output win."""
    return {**session, **output}


class RetryController:
    """
    Drives one step through its attempts.

    A step gets at most max_retries + 1 attempts. Between attempts the
    controller sleeps retry_count * base_delay seconds.
    """

    def __init__(
        self,
        executor: StepExecutor,
        base_delay: float = 2.0,
        retry_semantic_failures: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.executor = executor
        self.base_delay = base_delay
        self.retry_semantic_failures = retry_semantic_failures
        self._sleep = sleep

    async def run_step(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        user_data: Union[UserData, Mapping[str, Any]],
        api_key: str,
        emit: StepEmitter,
    ) -> bool:
        """
        Execute a step until it succeeds or its retries are exhausted.

        Returns:
            True when the step succeeded
        """

        async def _on_activity(event: AutomationEvent):
            if event.purpose:
                await emit(
                    WorkflowEventType.STEP_ACTIVITY,
                    step,
                    event.purpose,
                    automation_run_id=event.run_id,
                )

        while True:
            step.status = StepStatus.RUNNING
            step.error = None
            if step.started_at is None:
                step.started_at = utcnow()

            suffix = f" (retry {step.retry_count}/{step.max_retries})" if step.retry_count else ""
            await emit(WorkflowEventType.STEP_STARTED, step, f"Starting step {step.step}: {step.name}{suffix}")

            result = await self._attempt(workflow, step, user_data, api_key, _on_activity)

            if result.success:
                self._record_success(workflow, step, result)
                await emit(
                    WorkflowEventType.STEP_COMPLETED,
                    step,
                    f"Completed step {step.step}: {step.name}",
                    automation_run_id=result.automation_run_id,
                )
                return True

            step.error = result.error
            if result.automation_run_id:
                step.automation_run_id = result.automation_run_id

            terminal = is_terminal_semantic_error(result.error)
            if step.retry_count >= step.max_retries or (terminal and not self.retry_semantic_failures):
                self._finish(step, StepStatus.FAILED)
                logger.error(
                    f"Step {step.step} '{step.name}' failed for {workflow.provider_id} "
                    f"after {step.retry_count + 1} attempt(s): {result.error}"
                )
                await emit(
                    WorkflowEventType.STEP_FAILED,
                    step,
                    f"Step {step.step} failed: {step.name}",
                    error=result.error,
                )
                return False

            step.retry_count += 1
            if terminal:
                logger.warning(
                    f"Retrying step {step.step} for {workflow.provider_id} despite terminal error: {result.error}"
                )
            await emit(
                WorkflowEventType.STEP_FAILED,
                step,
                f"Step {step.step} failed, retrying ({step.retry_count}/{step.max_retries})",
                error=result.error,
            )
            await self._sleep(self.base_delay * step.retry_count)

    async def _attempt(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        user_data: Union[UserData, Mapping[str, Any]],
        api_key: str,
        on_activity,
    ) -> StepExecutionResult:
        with tracer.start_as_current_span("execute_step") as span:
            span.set_attribute("workflow.id", workflow.workflow_id)
            span.set_attribute("provider.id", workflow.provider_id)
            span.set_attribute("step.number", step.step)
            span.set_attribute("step.name", step.name)
            span.set_attribute("step.attempt", step.retry_count + 1)

            try:
                result = await self.executor.execute(workflow, step, user_data, api_key, on_activity=on_activity)
            except Exception as e:
                logger.exception(f"Unexpected error executing step {step.step} for {workflow.provider_id}")
                result = StepExecutionResult(success=False, error=str(e) or type(e).__name__)

            span.set_attribute("step.success", result.success)
            if result.automation_run_id:
                span.set_attribute("automation.run_id", result.automation_run_id)
            if result.error:
                span.set_attribute("step.error", result.error)
            return result

    def _record_success(self, workflow: Workflow, step: WorkflowStep, result: StepExecutionResult):
        output = result.output_data or {}
        step.output_data = output
        step.error = None
        self._finish(step, StepStatus.SUCCESS)

        if result.automation_run_id:
            step.automation_run_id = result.automation_run_id
            workflow.automation_run_ids.append(result.automation_run_id)

        workflow.session_data = merge_session_data(workflow.session_data, output)
        if "current_url" not in output:
            next_url = result.next_url or self._navigation_url(output)
            if next_url:
                workflow.session_data["current_url"] = next_url

    @staticmethod
    def _navigation_url(output: Mapping[str, Any]) -> Optional[str]:
        for key in NAVIGATION_URL_KEYS:
            value = output.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    @staticmethod
    def _finish(step: WorkflowStep, status: StepStatus):
        step.status = status
        step.ended_at = utcnow()
        if step.started_at:
            step.duration_ms = int((step.ended_at - step.started_at).total_seconds() * 1000)
