"""
Per-provider multi-step workflow orchestration.

Each provider quote is broken into steps that run strictly in order. Every
step is retried independently by the RetryController, session data flows
from one step into the next, and the last step's output becomes the
workflow's FinalQuote.
"""

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Union

from opentelemetry import trace

from ..errors import WorkflowNotFoundError
from ..events import ProgressCallback, dispatch
from ..models.base import utcnow
from ..models.user_data import UserData
from ..models.workflow import (
    FinalQuote,
    StepStatus,
    Workflow,
    WorkflowEventType,
    WorkflowProgressEvent,
    WorkflowStatus,
    WorkflowStep,
)
from ..templates.catalog import ProviderCatalog
from ..tools.automation_client import AutomationClient
from .retry import RetryController
from .step_executor import StepExecutor

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def extract_final_quote(output: Optional[Mapping[str, Any]]) -> FinalQuote:
    """Build a FinalQuote from the last step's output; non-numeric amounts become None."""
    output = output or {}
    return FinalQuote(
        quote=_as_number(output.get("quote")),
        estimated_min=_as_number(output.get("estimatedMin", output.get("estimated_min"))),
        estimated_max=_as_number(output.get("estimatedMax", output.get("estimated_max"))),
        details=_as_text(output.get("details")),
        quote_reference=_as_text(output.get("quote_reference", output.get("quoteReference"))),
    )


def compute_progress(current_step: int, total_steps: int) -> int:
    """Percentage of steps reached, rounded half up."""
    if total_steps <= 0:
        return 0
    return max(0, min(100, int(current_step * 100 / total_steps + 0.5)))


class WorkflowOrchestrator:
    """Creates, runs and tracks provider workflows."""

    def __init__(
        self,
        automation_client: AutomationClient,
        catalog: ProviderCatalog,
        retry_base_delay: float = 2.0,
        browser_profile: str = "lite",
        retry_semantic_failures: bool = True,
        retention_seconds: Optional[float] = None,
        sleep=asyncio.sleep,
    ):
        self.catalog = catalog
        self.retention_seconds = retention_seconds
        self.executor = StepExecutor(automation_client, browser_profile=browser_profile)
        self.retry_controller = RetryController(
            self.executor,
            base_delay=retry_base_delay,
            retry_semantic_failures=retry_semantic_failures,
            sleep=sleep,
        )
        self.workflows: Dict[str, Workflow] = {}
        self._running: Dict[str, asyncio.Task] = {}

    def create_workflow(self, provider_id: str, run_id: str) -> Workflow:
        """
        Build and register a workflow from the provider catalog.

        Raises:
            ProviderNotFoundError: if the provider is not configured
        """
        provider = self.catalog.get(provider_id)

        workflow = Workflow(
            workflow_id=str(uuid.uuid4()),
            run_id=run_id,
            provider_id=provider.provider_id,
            provider_name=provider.provider_name,
            base_url=provider.base_url,
            steps=[WorkflowStep.from_definition(i, d) for i, d in enumerate(provider.steps)],
            total_steps=len(provider.steps),
            session_data={"current_url": provider.base_url},
        )
        self.prune_finished()
        self.workflows[workflow.workflow_id] = workflow
        return workflow

    def start_workflow(
        self,
        provider_id: str,
        user_data: Union[UserData, Mapping[str, Any]],
        api_key: str,
        run_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Workflow:
        """
        Create a workflow and schedule its execution.

        Returns immediately with the registered workflow. Must be called from
        a running event loop.
        """
        workflow = self.create_workflow(provider_id, run_id)

        task = asyncio.create_task(self.execute_workflow(workflow, user_data, api_key, on_progress))
        self._running[workflow.workflow_id] = task
        task.add_done_callback(lambda _: self._running.pop(workflow.workflow_id, None))

        logger.info(f"Started workflow {workflow.workflow_id} for {provider_id} (run {run_id})")
        return workflow

    async def execute_workflow(
        self,
        workflow: Workflow,
        user_data: Union[UserData, Mapping[str, Any]],
        api_key: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Workflow:
        """Run a workflow's steps in order until one is exhausted or all succeed."""

        async def _emit_step(
            event_type: WorkflowEventType,
            step: WorkflowStep,
            message: str,
            error: Optional[str] = None,
            automation_run_id: Optional[str] = None,
        ):
            await self._emit(
                on_progress,
                workflow,
                event_type,
                message,
                step=step,
                error=error,
                automation_run_id=automation_run_id,
            )

        with tracer.start_as_current_span("execute_workflow") as span:
            span.set_attribute("workflow.id", workflow.workflow_id)
            span.set_attribute("run.id", workflow.run_id)
            span.set_attribute("provider.id", workflow.provider_id)
            span.set_attribute("workflow.total_steps", workflow.total_steps)

            workflow.status = WorkflowStatus.RUNNING
            workflow.started_at = utcnow()
            await self._emit(
                on_progress,
                workflow,
                WorkflowEventType.WORKFLOW_STARTED,
                f"Starting {workflow.provider_name} workflow ({workflow.total_steps} steps)",
                progress=0,
            )

            failed_step: Optional[WorkflowStep] = None
            try:
                for step in workflow.steps:
                    workflow.current_step = step.step
                    succeeded = await self.retry_controller.run_step(
                        workflow, step, user_data, api_key, _emit_step
                    )
                    if not succeeded:
                        failed_step = step
                        break
            except Exception as e:
                # Errors escaping the retry controller fail the workflow, not the task.
                logger.exception(f"Workflow {workflow.workflow_id} crashed")
                failed_step = workflow.active_step or workflow.steps[0]
                failed_step.status = StepStatus.FAILED
                failed_step.error = failed_step.error or str(e) or type(e).__name__

            workflow.ended_at = utcnow()
            workflow.duration_ms = int((workflow.ended_at - workflow.started_at).total_seconds() * 1000)

            if failed_step is None:
                workflow.status = WorkflowStatus.COMPLETED
                workflow.final_quote = extract_final_quote(workflow.steps[-1].output_data)
                span.set_attribute("workflow.status", "completed")
                if workflow.final_quote.quote is not None:
                    span.set_attribute("workflow.quote", workflow.final_quote.quote)

                logger.info(
                    f"Workflow {workflow.workflow_id} for {workflow.provider_id} completed "
                    f"in {workflow.duration_ms}ms (quote: {workflow.final_quote.quote})"
                )
                await self._emit(
                    on_progress,
                    workflow,
                    WorkflowEventType.WORKFLOW_COMPLETED,
                    f"{workflow.provider_name} workflow completed",
                    progress=100,
                )
            else:
                workflow.status = WorkflowStatus.FAILED
                span.set_attribute("workflow.status", "failed")
                span.set_attribute("workflow.failed_step", failed_step.step)

                logger.error(
                    f"Workflow {workflow.workflow_id} for {workflow.provider_id} failed "
                    f"at step {failed_step.step}: {failed_step.error}"
                )
                await self._emit(
                    on_progress,
                    workflow,
                    WorkflowEventType.WORKFLOW_FAILED,
                    f"{workflow.provider_name} workflow failed at step {failed_step.step}: {failed_step.name}",
                    step=failed_step,
                    error=failed_step.error,
                )

        return workflow

    async def _emit(
        self,
        callback: Optional[ProgressCallback],
        workflow: Workflow,
        event_type: WorkflowEventType,
        message: str,
        step: Optional[WorkflowStep] = None,
        error: Optional[str] = None,
        automation_run_id: Optional[str] = None,
        progress: Optional[int] = None,
    ):
        if callback is None:
            return

        current = step.step if step else (workflow.current_step or None)
        if progress is None:
            progress = compute_progress(workflow.current_step, workflow.total_steps)

        event = WorkflowProgressEvent(
            type=event_type,
            workflow_id=workflow.workflow_id,
            run_id=workflow.run_id,
            provider_id=workflow.provider_id,
            provider_name=workflow.provider_name,
            current_step=current,
            total_steps=workflow.total_steps,
            step_name=step.name if step else None,
            step_status=step.status if step else None,
            progress=progress,
            message=message,
            error=error,
            automation_run_id=automation_run_id or (step.automation_run_id if step else None),
            all_automation_run_ids=list(workflow.automation_run_ids),
        )
        await dispatch(callback, event)

    async def wait_for_completion(self, workflow_id: str, timeout: Optional[float] = None) -> Optional[Workflow]:
        """
        Wait for a workflow to reach a terminal status.

        Returns the workflow, or None if the wait timed out. The workflow keeps
        running after a timeout.

        Raises:
            WorkflowNotFoundError: if the workflow id is unknown
        """
        workflow = self.workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow not found: {workflow_id}")

        task = self._running.get(workflow_id)
        if task is None:
            return workflow if workflow.is_terminal else None

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {timeout}s waiting for workflow {workflow_id}")
            return None
        return workflow

    def prune_finished(self) -> int:
        """Forget workflows that ended more than retention_seconds ago."""
        if not self.retention_seconds:
            return 0

        cutoff = utcnow() - timedelta(seconds=self.retention_seconds)
        expired = [
            workflow_id
            for workflow_id, workflow in self.workflows.items()
            if workflow_id not in self._running
            and workflow.ended_at is not None
            and workflow.ended_at < cutoff
        ]
        for workflow_id in expired:
            del self.workflows[workflow_id]

        if expired:
            logger.debug(f"Pruned {len(expired)} finished workflows")
        return len(expired)

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return self.workflows.get(workflow_id)

    def get_workflows_by_run(self, run_id: str) -> List[Workflow]:
        return [w for w in self.workflows.values() if w.run_id == run_id]

    async def shutdown(self):
        """Cancel any workflows still running."""
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._running.clear()
