"""
Per-provider quote records and cross-provider aggregation snapshots.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .base import CamelModel, utcnow


class QuoteStatus(str, Enum):
    """Status of a quote request for a single provider."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_QUOTE_STATUSES = (QuoteStatus.COMPLETED, QuoteStatus.FAILED)


class EstimatedQuote(BaseModel):
    """Estimated premium range."""
    min: float
    max: float


class Quote(CamelModel):
    """Quote result from a single insurance provider."""
    provider: str
    provider_id: str
    status: QuoteStatus = QuoteStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    activity: Optional[str] = None
    estimated_quote: Optional[EstimatedQuote] = None
    final_quote: Optional[float] = None
    details: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    current_step_run_id: Optional[str] = None
    all_run_ids: List[str] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_QUOTE_STATUSES


class AggregationStatus(str, Enum):
    """Overall status of a quote run."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class AggregationResult(CamelModel):
    """Aggregated quote snapshot across all providers."""
    run_id: str
    status: AggregationStatus = AggregationStatus.PROCESSING
    quotes: List[Quote] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_providers: int = 0
    completed_providers: int = 0


class ProgressEventType(str, Enum):
    """Event types streamed to quote run consumers."""
    PROGRESS = "progress"
    ACTIVITY = "activity"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressEvent(CamelModel):
    """Progress update event for streaming to clients."""
    type: ProgressEventType
    aggregation: Optional[AggregationResult] = None
    provider: Optional[str] = None
    provider_id: Optional[str] = None
    activity: Optional[str] = None
    automation_run_id: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
