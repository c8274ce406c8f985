"""
Automation service stream events and results.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import ConfigDict

from .base import CamelModel


class AutomationEventType(str, Enum):
    """SSE event types sent by the automation service."""
    STARTED = "STARTED"
    STREAMING_URL = "STREAMING_URL"
    PROGRESS = "PROGRESS"
    COMPLETE = "COMPLETE"
    HEARTBEAT = "HEARTBEAT"


class AutomationRunStatus(str, Enum):
    """Terminal status carried by a COMPLETE event."""
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


SOFT_EVENT_TYPES = (
    AutomationEventType.STARTED,
    AutomationEventType.PROGRESS,
    AutomationEventType.STREAMING_URL,
)


class AutomationEvent(CamelModel):
    """One event of an automation run stream."""
    model_config = ConfigDict(extra="ignore")

    type: AutomationEventType
    run_id: Optional[str] = None
    timestamp: Optional[str] = None
    streaming_url: Optional[str] = None
    purpose: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    result_json: Any = None

    @property
    def is_soft(self) -> bool:
        return self.type in SOFT_EVENT_TYPES


class AutomationResult(CamelModel):
    """Normalized outcome of one automation request."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    run_id: Optional[str] = None
