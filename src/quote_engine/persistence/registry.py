"""
Run registry: quote run state and event log storage.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from pydantic import Field

from ..models.base import CamelModel, utcnow
from ..models.quote import AggregationResult

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Lifecycle of a quote run as seen by API consumers."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RunState(CamelModel):
    """Stored state of a quote run."""
    run_id: str
    status: RunStatus = RunStatus.PROCESSING
    result: Optional[AggregationResult] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_finished(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)


class RunRegistry(ABC):
    """Key-value contract for run state and its ordered event log."""

    @abstractmethod
    async def get(self, run_id: str) -> Optional[RunState]:
        """Get a run's state, or None if unknown or expired."""

    @abstractmethod
    async def set(self, run_id: str, state: RunState, ttl: Optional[int] = None) -> None:
        """Store a run's state."""

    @abstractmethod
    async def append_event(self, run_id: str, event: Dict[str, Any], ttl: Optional[int] = None) -> int:
        """Append an event to a run's log and return its 0-based index."""

    @abstractmethod
    async def get_events(self, run_id: str, start: int = 0) -> List[Dict[str, Any]]:
        """Events from index start onwards."""

    async def close(self) -> None:
        pass


class InMemoryRunRegistry(RunRegistry):
    """
    Process-local registry.

    Entries expire lazily on access; writes also sweep out every expired
    entry, at most once per sweep_interval seconds.
    """

    def __init__(
        self,
        default_ttl: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._next_sweep = clock() + sweep_interval
        self._states: Dict[str, Tuple[RunState, Optional[float]]] = {}
        self._events: Dict[str, Tuple[List[Dict[str, Any]], Optional[float]]] = {}

    def _expiry(self, ttl: Optional[int]) -> Optional[float]:
        ttl = ttl if ttl is not None else self.default_ttl
        return self._clock() + ttl if ttl else None

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def _maybe_sweep(self):
        if self._clock() < self._next_sweep:
            return
        self._next_sweep = self._clock() + self.sweep_interval
        self.sweep()

    def sweep(self) -> int:
        """Drop every expired state and event log; returns how many runs were dropped."""
        expired = [run_id for run_id, (_, expires_at) in self._states.items() if self._expired(expires_at)]
        for run_id in expired:
            del self._states[run_id]

        stale_logs = [run_id for run_id, (_, expires_at) in self._events.items() if self._expired(expires_at)]
        for run_id in stale_logs:
            del self._events[run_id]

        return len(set(expired) | set(stale_logs))

    async def get(self, run_id: str) -> Optional[RunState]:
        entry = self._states.get(run_id)
        if entry is None:
            return None
        state, expires_at = entry
        if self._expired(expires_at):
            self._states.pop(run_id, None)
            self._events.pop(run_id, None)
            return None
        return state.model_copy(deep=True)

    async def set(self, run_id: str, state: RunState, ttl: Optional[int] = None) -> None:
        self._maybe_sweep()
        state.updated_at = utcnow()
        self._states[run_id] = (state.model_copy(deep=True), self._expiry(ttl))

    async def append_event(self, run_id: str, event: Dict[str, Any], ttl: Optional[int] = None) -> int:
        self._maybe_sweep()
        events, expires_at = self._events.get(run_id, ([], None))
        if self._expired(expires_at):
            events = []
        events.append(event)
        self._events[run_id] = (events, self._expiry(ttl))
        return len(events) - 1

    async def get_events(self, run_id: str, start: int = 0) -> List[Dict[str, Any]]:
        entry = self._events.get(run_id)
        if entry is None:
            return []
        events, expires_at = entry
        if self._expired(expires_at):
            self._events.pop(run_id, None)
            return []
        return list(events[max(start, 0):])


class RedisRunRegistry(RunRegistry):
    """Redis-backed registry with JSON values and per-key TTLs."""

    STATE_KEY = "quote_run:{run_id}"
    EVENTS_KEY = "quote_run:{run_id}:events"

    def __init__(self, client: "redis.Redis", default_ttl: Optional[int] = None):
        self.client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, redis_url: str, default_ttl: Optional[int] = None) -> "RedisRunRegistry":
        return cls(redis.from_url(redis_url, decode_responses=True), default_ttl=default_ttl)

    def _ttl(self, ttl: Optional[int]) -> Optional[int]:
        return ttl if ttl is not None else self.default_ttl

    async def get(self, run_id: str) -> Optional[RunState]:
        raw = await self.client.get(self.STATE_KEY.format(run_id=run_id))
        if raw is None:
            return None
        return RunState.model_validate_json(raw)

    async def set(self, run_id: str, state: RunState, ttl: Optional[int] = None) -> None:
        state.updated_at = utcnow()
        await self.client.set(
            self.STATE_KEY.format(run_id=run_id),
            state.model_dump_json(by_alias=True),
            ex=self._ttl(ttl),
        )

    async def append_event(self, run_id: str, event: Dict[str, Any], ttl: Optional[int] = None) -> int:
        key = self.EVENTS_KEY.format(run_id=run_id)
        length = await self.client.rpush(key, json.dumps(event, default=str))
        expire = self._ttl(ttl)
        if expire:
            await self.client.expire(key, expire)
        return length - 1

    async def get_events(self, run_id: str, start: int = 0) -> List[Dict[str, Any]]:
        raw_events = await self.client.lrange(self.EVENTS_KEY.format(run_id=run_id), max(start, 0), -1)
        return [json.loads(raw) for raw in raw_events]

    async def close(self) -> None:
        await self.client.aclose()


async def create_run_registry(redis_url: Optional[str], default_ttl: Optional[int] = None) -> RunRegistry:
    """
    Create a Redis registry, falling back to memory when Redis is unreachable.
    """
    if redis_url:
        registry = RedisRunRegistry.from_url(redis_url, default_ttl=default_ttl)
        try:
            await registry.client.ping()
            logger.info("Redis connection established")
            return registry
        except Exception as e:
            logger.warning(f"Could not connect to Redis, using in-memory run registry: {e}")
            await registry.close()

    return InMemoryRunRegistry(default_ttl=default_ttl)
