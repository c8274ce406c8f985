"""
Browser automation client for the remote automation service.
"""

import asyncio
import json
import logging
from typing import Any, Optional, Set

import httpx
from pydantic import ValidationError

from ..events import ProgressCallback, dispatch
from ..models.automation import (
    AutomationEvent,
    AutomationEventType,
    AutomationResult,
    AutomationRunStatus,
)

logger = logging.getLogger(__name__)


def parse_sse_line(line: str) -> Optional[AutomationEvent]:
    """
    Parse one line of the automation SSE stream.

    Returns None for comments, blank lines, the [DONE] sentinel and
    anything that is not a well-formed event object.
    """
    if not line.startswith("data: "):
        return None

    data = line[6:].strip()
    if not data or data == "[DONE]":
        return None

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Dropping unparseable SSE payload: {data[:200]}")
        return None

    if not isinstance(payload, dict):
        return None

    try:
        return AutomationEvent.model_validate(payload)
    except ValidationError:
        logger.debug(f"Dropping unrecognized SSE event: {data[:200]}")
        return None


def _decode_result(result_json: Any) -> Any:
    """Result payloads sometimes arrive as a JSON encoded string."""
    if isinstance(result_json, str):
        try:
            return json.loads(result_json)
        except json.JSONDecodeError:
            return result_json
    return result_json


class _StreamState:
    """Run id captured so far, readable after the stream is abandoned."""

    def __init__(self):
        self.run_id: Optional[str] = None


class _ProgressRelay:
    """Delivers one run's soft events to its sink in order, off the read loop."""

    def __init__(self, callback: ProgressCallback):
        self._callback = callback
        self._queue: asyncio.Queue = asyncio.Queue()
        self.task = asyncio.create_task(self._deliver())

    def put(self, event: AutomationEvent):
        self._queue.put_nowait(event)

    def finish(self):
        self._queue.put_nowait(None)

    async def _deliver(self):
        while True:
            event = await self._queue.get()
            if event is None:
                return
            await dispatch(self._callback, event)


class AutomationClient:
    """
    Async HTTP client for the browser automation service.

    Issues one automation run per call and demultiplexes its SSE stream
    into a single tagged result. Failures are always returned, never raised.
    """

    def __init__(
        self,
        base_url: str = "https://mino.ai",
        run_path: str = "/v1/automation/run-sse",
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize automation client.

        Args:
            base_url: Automation service URL
            run_path: Path of the streaming run endpoint
            timeout: Default overall run timeout in seconds
            transport: Optional httpx transport (used for testing)
        """
        self.base_url = base_url.rstrip("/")
        self.run_path = run_path
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._relays: Set[asyncio.Task] = set()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
                # The overall run timeout is enforced by run_automation; only
                # connection setup is bounded here.
                timeout=httpx.Timeout(None, connect=30.0),
                transport=self._transport,
            )
        return self._client

    async def drain_progress(self):
        """Wait until every queued soft event has reached its sink."""
        if self._relays:
            await asyncio.gather(*list(self._relays))

    async def close(self):
        """Close the HTTP client and drop undelivered soft events."""
        relays = list(self._relays)
        for task in relays:
            task.cancel()
        await asyncio.gather(*relays, return_exceptions=True)
        self._relays.clear()
        if self._client:
            await self._client.aclose()
            self._client = None

    async def run_automation(
        self,
        url: str,
        goal: str,
        api_key: str,
        timeout: Optional[float] = None,
        browser_profile: str = "lite",
        on_progress: Optional[ProgressCallback] = None,
    ) -> AutomationResult:
        """
        Run an automation and wait for its terminal event.

        Args:
            url: Page the agent starts on
            goal: Natural-language goal for the agent
            api_key: Caller's automation service credential
            timeout: Overall timeout in seconds (defaults to the client timeout)
            browser_profile: Browser profile name ("lite" or "stealth")
            on_progress: Receives STARTED, PROGRESS and STREAMING_URL events in
                order; delivery runs beside the stream and never delays completion

        Returns:
            AutomationResult with success/data or error, plus the run id if seen

        A timeout only abandons the local wait. The remote run has no cancel
        primitive and may keep going after this returns.
        """
        timeout = timeout or self.timeout
        state = _StreamState()

        try:
            return await asyncio.wait_for(
                self._run(url, goal, api_key, browser_profile, on_progress, state),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Automation timeout after {timeout}s (run {state.run_id or 'unknown'})")
            return AutomationResult(
                success=False,
                error=f"Automation timeout after {timeout:g}s",
                run_id=state.run_id,
            )
        except httpx.HTTPError as e:
            logger.error(f"Automation request failed: {e}")
            return AutomationResult(
                success=False,
                error=f"Automation request failed: {e}",
                run_id=state.run_id,
            )

    async def _run(
        self,
        url: str,
        goal: str,
        api_key: str,
        browser_profile: str,
        on_progress: Optional[ProgressCallback],
        state: _StreamState,
    ) -> AutomationResult:
        client = await self._get_client()
        relay = self._start_relay(on_progress) if on_progress else None

        try:
            return await self._read_stream(client, url, goal, api_key, browser_profile, relay, state)
        finally:
            if relay:
                relay.finish()

    def _start_relay(self, callback: ProgressCallback) -> _ProgressRelay:
        relay = _ProgressRelay(callback)
        self._relays.add(relay.task)
        relay.task.add_done_callback(self._relays.discard)
        return relay

    async def _read_stream(
        self,
        client: httpx.AsyncClient,
        url: str,
        goal: str,
        api_key: str,
        browser_profile: str,
        relay: Optional[_ProgressRelay],
        state: _StreamState,
    ) -> AutomationResult:
        async with client.stream(
            "POST",
            self.run_path,
            headers={"X-API-Key": api_key},
            json={
                "url": url,
                "goal": goal,
                "browser_profile": browser_profile,
            },
        ) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode(errors="replace")
                return AutomationResult(
                    success=False,
                    error=f"Automation API error ({response.status_code}): {body}",
                )

            async for line in response.aiter_lines():
                event = parse_sse_line(line)
                if event is None:
                    continue

                if event.run_id and not state.run_id:
                    state.run_id = event.run_id

                if event.is_soft and relay:
                    relay.put(event)

                if event.type == AutomationEventType.COMPLETE:
                    return self._complete(event, state.run_id)

        return AutomationResult(
            success=False,
            error="Stream ended without completion event",
            run_id=state.run_id,
        )

    @staticmethod
    def _complete(event: AutomationEvent, run_id: Optional[str]) -> AutomationResult:
        if event.status == AutomationRunStatus.COMPLETED and event.result_json is not None:
            return AutomationResult(
                success=True,
                data=_decode_result(event.result_json),
                run_id=run_id,
            )
        return AutomationResult(
            success=False,
            error=event.error or f"Automation failed with status: {event.status}",
            run_id=run_id,
        )

    async def check_connection(self, api_key: str, timeout: float = 10.0) -> bool:
        """Run a trivial automation to verify the service and credential."""
        result = await self.run_automation(
            url="https://example.com",
            goal="Get the page title",
            api_key=api_key,
            timeout=timeout,
        )
        return result.success
