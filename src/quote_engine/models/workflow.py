"""
Multi-step quote workflow models.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import CamelModel, utcnow


class StepStatus(str, Enum):
    """Status of a single workflow step."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class WorkflowStatus(str, Enum):
    """Overall workflow status."""
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


TERMINAL_WORKFLOW_STATUSES = (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)


class StepOutputKind(str, Enum):
    """Expected output shape of a step, used to pick its outcome model."""
    FORM_DISCOVERY = "form_discovery"
    PAGE_PROGRESS = "page_progress"
    QUOTE_EXTRACTION = "quote_extraction"
    GENERIC = "generic"


class StepDefinition(CamelModel):
    """Catalog definition of one step of a provider workflow."""
    name: str = Field(..., description="Human readable step name")
    description: str = ""
    prompt_template: str = Field(..., description="Goal text with {{placeholder}} tokens")
    output_kind: StepOutputKind = StepOutputKind.GENERIC
    expected_output: Dict[str, Any] = Field(
        default_factory=dict,
        description="Documentation of the expected result payload, not enforced",
    )
    timeout_seconds: float = Field(default=300.0, gt=0)
    max_retries: int = Field(default=2, ge=0)


class ProviderWorkflowConfig(CamelModel):
    """Catalog configuration for one insurance provider."""
    provider_id: str
    provider_name: str
    base_url: str
    steps: List[StepDefinition] = Field(..., min_length=1)
    requires_agent_contact: bool = False
    special_handling: Optional[str] = None


class WorkflowStep(CamelModel):
    """Runtime state of one step within a workflow."""
    step: int
    name: str
    description: str = ""
    goal_template: str
    output_kind: StepOutputKind = StepOutputKind.GENERIC
    timeout_seconds: float = 300.0
    output_data: Optional[Dict[str, Any]] = None
    status: StepStatus = StepStatus.PENDING
    retry_count: int = 0
    max_retries: int = 2
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    automation_run_id: Optional[str] = None

    @classmethod
    def from_definition(cls, index: int, definition: StepDefinition) -> "WorkflowStep":
        return cls(
            step=index + 1,
            name=definition.name,
            description=definition.description,
            goal_template=definition.prompt_template,
            output_kind=definition.output_kind,
            timeout_seconds=definition.timeout_seconds,
            max_retries=definition.max_retries,
        )


class FinalQuote(CamelModel):
    """Quote extracted from the last step of a completed workflow."""
    quote: Optional[float] = None
    estimated_min: Optional[float] = None
    estimated_max: Optional[float] = None
    details: Optional[str] = None
    quote_reference: Optional[str] = None


class Workflow(CamelModel):
    """One provider's end-to-end quote attempt."""
    workflow_id: str
    run_id: str
    provider_id: str
    provider_name: str
    base_url: str
    steps: List[WorkflowStep] = Field(default_factory=list)
    current_step: int = 0
    total_steps: int = 0
    session_data: Dict[str, Any] = Field(default_factory=dict)
    status: WorkflowStatus = WorkflowStatus.INITIALIZING
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    final_quote: Optional[FinalQuote] = None
    automation_run_ids: List[str] = Field(default_factory=list)

    @property
    def active_step(self) -> Optional[WorkflowStep]:
        """The step at the current index, if any has started."""
        if 1 <= self.current_step <= len(self.steps):
            return self.steps[self.current_step - 1]
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKFLOW_STATUSES


class StepExecutionResult(CamelModel):
    """Outcome of a single attempt at a step."""
    success: bool
    output_data: Optional[Dict[str, Any]] = None
    next_url: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = 0
    automation_run_id: Optional[str] = None


class WorkflowEventType(str, Enum):
    """Workflow progress notification types."""
    WORKFLOW_STARTED = "workflow_started"
    STEP_STARTED = "step_started"
    STEP_ACTIVITY = "step_activity"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_FAILED = "workflow_failed"


class WorkflowProgressEvent(CamelModel):
    """Progress notification emitted by a running workflow."""
    type: WorkflowEventType
    workflow_id: str
    run_id: str
    provider_id: str
    provider_name: str
    current_step: Optional[int] = None
    total_steps: int
    step_name: Optional[str] = None
    step_status: Optional[StepStatus] = None
    progress: int = Field(default=0, ge=0, le=100)
    message: str
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    automation_run_id: Optional[str] = None
    all_automation_run_ids: List[str] = Field(default_factory=list)
