"""
Concurrent quote aggregation across providers.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

from ..events import ProgressCallback, dispatch
from ..models.base import utcnow
from ..models.quote import (
    AggregationResult,
    AggregationStatus,
    EstimatedQuote,
    ProgressEvent,
    ProgressEventType,
    Quote,
    QuoteStatus,
)
from ..models.user_data import UserData
from ..models.workflow import Workflow, WorkflowEventType, WorkflowProgressEvent, WorkflowStatus
from .orchestrator import WorkflowOrchestrator

logger = logging.getLogger(__name__)

PROVIDER_DISPLAY_NAMES = {
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


def derive_final_status(quotes: List[Quote]) -> AggregationStatus:
    """completed if every quote completed, failed if every quote failed, partial otherwise."""
    if quotes and all(q.status == QuoteStatus.COMPLETED for q in quotes):
        return AggregationStatus.COMPLETED
    if all(q.status == QuoteStatus.FAILED for q in quotes):
        return AggregationStatus.FAILED
    return AggregationStatus.PARTIAL


class QuoteAggregator:
    """
    Runs one workflow per provider and folds their progress into Quotes.

    A progress snapshot is published after every Quote change, an activity
    event for every workflow notification, and a single complete event at
    the end of the run.
    """

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        api_key: str,
        run_id: str,
        provider_ids: Optional[List[str]] = None,
        on_progress: Optional[ProgressCallback] = None,
        completion_timeout: float = 1500.0,
    ):
        self.orchestrator = orchestrator
        self.api_key = api_key
        self.run_id = run_id
        self.provider_ids = list(provider_ids) if provider_ids is not None else orchestrator.catalog.provider_ids()
        self.on_progress = on_progress
        self.completion_timeout = completion_timeout

        self.quotes: Dict[str, Quote] = {}
        self.workflow_ids: Dict[str, str] = {}
        self.started_at: datetime = utcnow()
        self.status: AggregationStatus = AggregationStatus.PROCESSING
        self._completed_at: Optional[datetime] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    def provider_name(self, provider_id: str) -> str:
        if provider_id in self.orchestrator.catalog:
            return self.orchestrator.catalog.get(provider_id).provider_name
        return PROVIDER_DISPLAY_NAMES.get(provider_id, provider_id.upper())

    async def aggregate(self, user_data: Union[UserData, Mapping[str, Any]]) -> AggregationResult:
        """
        Run every provider workflow concurrently and return the final snapshot.

        Never raises for provider failures; those become failed Quotes.
        """
        self.started_at = utcnow()
        for provider_id in self.provider_ids:
            self.quotes[provider_id] = Quote(
                provider=self.provider_name(provider_id),
                provider_id=provider_id,
                status=QuoteStatus.PENDING,
                progress=0,
            )

        logger.info(f"Aggregating quotes for run {self.run_id} across {len(self.provider_ids)} providers")
        await self._publish_snapshot()

        results = await asyncio.gather(
            *(self._run_provider(provider_id, user_data) for provider_id in self.provider_ids),
            return_exceptions=True,
        )
        for provider_id, result in zip(self.provider_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Provider task for {provider_id} raised: {result!r}")
                await self._update_quote(
                    provider_id,
                    status=QuoteStatus.FAILED,
                    progress=100,
                    activity="Workflow error",
                    error=str(result) or type(result).__name__,
                )

        self.status = derive_final_status(list(self.quotes.values()))
        final = self.snapshot()
        logger.info(
            f"Run {self.run_id} finished with status {self.status.value}: "
            f"{sum(1 for q in final.quotes if q.status == QuoteStatus.COMPLETED)}/{final.total_providers} quotes"
        )
        await self._publish(ProgressEvent(type=ProgressEventType.COMPLETE, aggregation=final))
        return final

    async def stream(self, user_data: Union[UserData, Mapping[str, Any]]) -> AsyncIterator[ProgressEvent]:
        """Run the aggregation and yield every event it publishes, ending with the complete event."""
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self.aggregate(user_data))

        while True:
            event: ProgressEvent = await self._queue.get()
            yield event
            if event.type == ProgressEventType.COMPLETE:
                break

        await self._task

    def snapshot(self) -> AggregationResult:
        """Current aggregation state; quotes are copies."""
        quotes = [q.model_copy() for q in self.quotes.values()]
        completed = sum(1 for q in quotes if q.is_terminal)

        if quotes and completed == len(quotes) and self._completed_at is None:
            self._completed_at = utcnow()

        return AggregationResult(
            run_id=self.run_id,
            status=self.status,
            quotes=quotes,
            started_at=self.started_at,
            completed_at=self._completed_at,
            total_providers=len(quotes),
            completed_providers=completed,
        )

    async def _run_provider(self, provider_id: str, user_data: Union[UserData, Mapping[str, Any]]):
        await self._update_quote(
            provider_id,
            status=QuoteStatus.IN_PROGRESS,
            progress=5,
            activity="Starting multi-step workflow...",
        )

        try:
            workflow = self.orchestrator.start_workflow(
                provider_id,
                user_data,
                self.api_key,
                self.run_id,
                on_progress=self._handle_workflow_progress,
            )
            self.workflow_ids[provider_id] = workflow.workflow_id

            finished = await self.orchestrator.wait_for_completion(
                workflow.workflow_id, timeout=self.completion_timeout
            )
        except Exception as e:
            logger.error(f"Workflow for {provider_id} could not run: {e}")
            await self._update_quote(
                provider_id,
                status=QuoteStatus.FAILED,
                progress=100,
                activity="Workflow error",
                error=str(e) or type(e).__name__,
            )
            return

        if finished is not None and finished.status == WorkflowStatus.COMPLETED:
            await self._complete_quote(provider_id, finished)
        else:
            await self._fail_quote(provider_id, finished or workflow)

    async def _complete_quote(self, provider_id: str, workflow: Workflow):
        final_quote = workflow.final_quote
        estimated = None
        if final_quote and final_quote.estimated_min is not None and final_quote.estimated_max is not None:
            estimated = EstimatedQuote(min=final_quote.estimated_min, max=final_quote.estimated_max)

        await self._update_quote(
            provider_id,
            status=QuoteStatus.COMPLETED,
            progress=100,
            activity="All steps completed successfully!",
            final_quote=final_quote.quote if final_quote else None,
            estimated_quote=estimated,
            details=final_quote.details if final_quote else None,
            all_run_ids=list(workflow.automation_run_ids),
        )

    async def _fail_quote(self, provider_id: str, workflow: Workflow):
        step = workflow.active_step or (workflow.steps[-1] if workflow.steps else None)
        error = step.error if step and step.error else "Workflow did not complete successfully"

        await self._update_quote(
            provider_id,
            status=QuoteStatus.FAILED,
            progress=100,
            activity=f"Failed at step {workflow.current_step}",
            error=error,
            all_run_ids=list(workflow.automation_run_ids),
        )

    async def _handle_workflow_progress(self, event: WorkflowProgressEvent):
        quote = self.quotes.get(event.provider_id)
        if quote is None or quote.is_terminal:
            return

        if event.current_step and event.type == WorkflowEventType.STEP_ACTIVITY:
            activity = f"Step {event.current_step}/{event.total_steps}: {event.message}"
        elif event.current_step and event.step_name:
            activity = f"Step {event.current_step}/{event.total_steps}: {event.step_name}"
        else:
            activity = event.message

        updates = {
            "progress": event.progress,
            "activity": activity,
            "all_run_ids": list(event.all_automation_run_ids),
        }
        if event.automation_run_id:
            updates["current_step_run_id"] = event.automation_run_id
        await self._update_quote(event.provider_id, **updates)

        await self._publish(ProgressEvent(
            type=ProgressEventType.ACTIVITY,
            provider=quote.provider,
            provider_id=event.provider_id,
            activity=activity,
            automation_run_id=event.automation_run_id,
        ))

    async def _update_quote(self, provider_id: str, **updates):
        quote = self.quotes.get(provider_id)
        if quote is None or quote.is_terminal:
            return

        for field, value in updates.items():
            setattr(quote, field, value)
        quote.timestamp = utcnow()
        await self._publish_snapshot()

    async def _publish_snapshot(self):
        await self._publish(ProgressEvent(type=ProgressEventType.PROGRESS, aggregation=self.snapshot()))

    async def _publish(self, event: ProgressEvent):
        await dispatch(self.on_progress, event)
        if self._queue is not None:
            self._queue.put_nowait(event)
