"""
WebSocket push of live quote run progress.

Clients watching a run receive every progress event as JSON as it is
recorded. Replay of earlier events is only available from the SSE stream.
"""

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, DefaultDict, Dict, Set

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class RunWatchers:
    """Tracks the sockets watching each quote run."""

    def __init__(self):
        self._watchers: DefaultDict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def add(self, run_id: str, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._watchers[run_id].add(websocket)
        logger.info(f"Watching run {run_id} over WebSocket")

    async def remove(self, run_id: str, *websockets: WebSocket):
        async with self._lock:
            remaining = self._watchers.get(run_id)
            if remaining is None:
                return
            remaining.difference_update(websockets)
            if not remaining:
                del self._watchers[run_id]

    async def publish(self, run_id: str, payload: Dict[str, Any]):
        """Send a payload to every watcher of a run, dropping dead sockets."""
        async with self._lock:
            targets = list(self._watchers.get(run_id, ()))
        if not targets:
            return

        text = json.dumps(payload, default=str)
        results = await asyncio.gather(
            *(ws.send_text(text) for ws in targets), return_exceptions=True
        )

        dead = [ws for ws, result in zip(targets, results) if isinstance(result, Exception)]
        if dead:
            logger.warning(f"Dropping {len(dead)} unreachable watcher(s) of run {run_id}")
            await self.remove(run_id, *dead)


watchers = RunWatchers()


async def websocket_endpoint(websocket: WebSocket, run_id: str, keepalive_seconds: float = 30.0):
    """
    Serve one watcher of /ws/quotes/{run_id}.

    Messages are progress events (progress, activity, complete, error).
    A "ping" text frame is answered with "pong"; an idle socket gets a
    keepalive message every keepalive_seconds.
    """
    await watchers.add(run_id, websocket)

    try:
        await websocket.send_json({
            "type": "connected",
            "runId": run_id,
            "message": "Connected to quote run stream",
        })

        while True:
            try:
                text = await asyncio.wait_for(websocket.receive_text(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "keepalive"})
                continue
            if text == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        logger.info(f"Watcher of run {run_id} disconnected")
    except Exception as e:
        logger.error(f"WebSocket error on run {run_id}: {e}")
    finally:
        await watchers.remove(run_id, websocket)


async def send_run_update(run_id: str, event: Dict[str, Any]):
    """Push a progress event to all clients watching a run."""
    await watchers.publish(run_id, event)
