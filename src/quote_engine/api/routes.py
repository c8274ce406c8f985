"""
REST API routes for quote runs.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from fastapi import APIRouter, Body, Header, HTTPException, Query
from fastapi.responses import StreamingResponse

from ..config import config
from ..errors import UserDataValidationError
from ..models.quote import ProgressEvent, ProgressEventType
from ..models.user_data import UserData, validate_user_data
from ..orchestration.aggregator import QuoteAggregator
from ..persistence.registry import RunState, RunStatus
from .websocket import send_run_update

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["quotes"])

TERMINAL_EVENT_TYPES = (ProgressEventType.COMPLETE.value, ProgressEventType.ERROR.value)


# These will be set by the main app
_registry = None
_orchestrator = None
_api_key: Optional[str] = None
_background_tasks: Set[asyncio.Task] = set()


def set_dependencies(registry, orchestrator, api_key: Optional[str] = None):
    """Set dependencies from main app."""
    global _registry, _orchestrator, _api_key
    _registry = registry
    _orchestrator = orchestrator
    _api_key = api_key


def _stream_url(run_id: str) -> str:
    return f"{router.prefix}/quotes/{run_id}/stream"


async def _record_event(run_id: str, event: ProgressEvent):
    payload = event.to_json_dict()
    await _registry.append_event(run_id, payload, ttl=config.run_ttl_seconds)
    await send_run_update(run_id, payload)


async def run_quote_aggregation(
    run_id: str,
    user_data: UserData,
    api_key: str,
    provider_ids: Optional[List[str]] = None,
):
    """Run an aggregation to completion, recording every event and the final result."""

    async def _on_progress(event: ProgressEvent):
        await _record_event(run_id, event)

    aggregator = QuoteAggregator(
        _orchestrator,
        api_key=api_key,
        run_id=run_id,
        provider_ids=provider_ids,
        on_progress=_on_progress,
        completion_timeout=config.workflow_completion_timeout_seconds,
    )

    try:
        result = await aggregator.aggregate(user_data)
        await _registry.set(
            run_id,
            RunState(run_id=run_id, status=RunStatus.COMPLETED, result=result),
            ttl=config.run_ttl_seconds,
        )
    except Exception as e:
        logger.exception(f"Quote run {run_id} failed")
        # The error event must be stored before the run reads as finished
        await _record_event(run_id, ProgressEvent(type=ProgressEventType.ERROR, error=str(e)))
        await _registry.set(
            run_id,
            RunState(run_id=run_id, status=RunStatus.FAILED, error=str(e)),
            ttl=config.run_ttl_seconds,
        )


# Quote runs

@router.post("/quotes")
async def create_quote_run(
    payload: Dict[str, Any] = Body(...),
    providers: Optional[str] = Query(default=None, description="Comma separated provider ids"),
):
    """Validate user data and start a quote run in the background."""
    if not _registry or not _orchestrator:
        raise HTTPException(status_code=503, detail="Service not ready")

    try:
        user_data = validate_user_data(payload)
    except UserDataValidationError as e:
        raise HTTPException(status_code=400, detail={"error": e.message, "details": e.errors})

    api_key = _api_key or config.automation_api_key
    if not api_key:
        logger.error("Automation API key is not configured")
        raise HTTPException(status_code=500, detail="Automation API key not configured")

    provider_ids = None
    if providers:
        provider_ids = [p.strip() for p in providers.split(",") if p.strip()]
        unknown = [p for p in provider_ids if p not in _orchestrator.catalog]
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown providers: {', '.join(unknown)}")

    run_id = str(uuid.uuid4())
    await _registry.set(run_id, RunState(run_id=run_id), ttl=config.run_ttl_seconds)

    task = asyncio.create_task(run_quote_aggregation(run_id, user_data, api_key, provider_ids))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    logger.info(f"Started quote run {run_id}")
    return {"runId": run_id, "status": RunStatus.PROCESSING.value, "streamUrl": _stream_url(run_id)}


@router.get("/quotes/{run_id}")
async def get_quote_run(run_id: str):
    """Get a quote run's final result, or its processing status."""
    if not _registry:
        raise HTTPException(status_code=503, detail="Service not ready")

    state = await _registry.get(run_id)
    if not state:
        raise HTTPException(status_code=404, detail="Run not found")

    if state.status == RunStatus.COMPLETED and state.result:
        return state.result.to_json_dict()
    if state.status == RunStatus.FAILED:
        return {"runId": run_id, "status": RunStatus.FAILED.value, "error": state.error}
    return {"runId": run_id, "status": RunStatus.PROCESSING.value, "streamUrl": _stream_url(run_id)}


def _sse_frame(index: int, event: Dict[str, Any]) -> str:
    return f"id: {index}\ndata: {json.dumps(event, default=str)}\n\n"


async def stream_run_events(run_id: str, start: int = 0) -> AsyncIterator[str]:
    """
    Yield SSE frames for a run's events from index start.

    Replays stored events first, then polls for new ones until a complete or
    error event is sent or the run is finished with nothing left to send.
    """
    next_index = max(start, 0)
    last_sent = time.monotonic()

    while True:
        events = await _registry.get_events(run_id, next_index)
        for event in events:
            yield _sse_frame(next_index, event)
            next_index += 1
            last_sent = time.monotonic()
            if event.get("type") in TERMINAL_EVENT_TYPES:
                return

        if not events:
            state = await _registry.get(run_id)
            if state is None or state.is_finished:
                # Drain events appended between the read and the state check
                if not await _registry.get_events(run_id, next_index):
                    return
                continue

        if time.monotonic() - last_sent >= config.stream_heartbeat_seconds:
            yield ": heartbeat\n\n"
            last_sent = time.monotonic()

        await asyncio.sleep(config.stream_poll_interval_seconds)


@router.get("/quotes/{run_id}/stream")
async def stream_quote_run(run_id: str, last_event_id: Optional[str] = Header(default=None)):
    """Server-sent event stream of a run's progress, replayable with Last-Event-ID."""
    if not _registry:
        raise HTTPException(status_code=503, detail="Service not ready")

    if not await _registry.get(run_id):
        raise HTTPException(status_code=404, detail="Run not found")

    start = 0
    if last_event_id:
        try:
            start = int(last_event_id) + 1
        except ValueError:
            logger.warning(f"Ignoring malformed Last-Event-ID: {last_event_id}")

    return StreamingResponse(
        stream_run_events(run_id, start),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# Workflows

@router.get("/quotes/{run_id}/workflows")
async def get_run_workflows(run_id: str):
    """Get the provider workflows of a run."""
    if not _orchestrator:
        raise HTTPException(status_code=503, detail="Service not ready")

    workflows = _orchestrator.get_workflows_by_run(run_id)
    return {"runId": run_id, "workflows": [w.to_json_dict() for w in workflows]}


@router.get("/workflows/{workflow_id}")
async def get_workflow(workflow_id: str):
    """Get a workflow with its steps and session data."""
    if not _orchestrator:
        raise HTTPException(status_code=503, detail="Service not ready")

    workflow = _orchestrator.get_workflow(workflow_id)
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")

    return workflow.to_json_dict()


# Providers

@router.get("/providers")
async def list_providers():
    """List configured insurance providers."""
    if not _orchestrator:
        raise HTTPException(status_code=503, detail="Service not ready")

    return {"providers": _orchestrator.catalog.summary()}
