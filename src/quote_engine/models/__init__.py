"""
Quote engine data models.
"""

from .automation import (
    AutomationEvent,
    AutomationEventType,
    AutomationResult,
    AutomationRunStatus,
)
from .outcomes import (
    FormDiscoveryOutcome,
    GenericOutcome,
    PageProgressOutcome,
    QuoteExtractionOutcome,
    StepOutcome,
    parse_step_outcome,
)
from .quote import (
    AggregationResult,
    AggregationStatus,
    EstimatedQuote,
    ProgressEvent,
    ProgressEventType,
    Quote,
    QuoteStatus,
)
from .user_data import (
    EducationLevel,
    EmploymentStatus,
    UserData,
    validate_user_data,
)
from .workflow import (
    FinalQuote,
    ProviderWorkflowConfig,
    StepDefinition,
    StepExecutionResult,
    StepOutputKind,
    StepStatus,
    Workflow,
    WorkflowEventType,
    WorkflowProgressEvent,
    WorkflowStatus,
    WorkflowStep,
)

__all__ = [
    "AutomationEvent",
    "AutomationEventType",
    "AutomationResult",
    "AutomationRunStatus",
    "FormDiscoveryOutcome",
    "GenericOutcome",
    "PageProgressOutcome",
    "QuoteExtractionOutcome",
    "StepOutcome",
    "parse_step_outcome",
    "AggregationResult",
    "AggregationStatus",
    "EstimatedQuote",
    "ProgressEvent",
    "ProgressEventType",
    "Quote",
    "QuoteStatus",
    "EducationLevel",
    "EmploymentStatus",
    "UserData",
    "validate_user_data",
    "FinalQuote",
    "ProviderWorkflowConfig",
    "StepDefinition",
    "StepExecutionResult",
    "StepOutputKind",
    "StepStatus",
    "Workflow",
    "WorkflowEventType",
    "WorkflowProgressEvent",
    "WorkflowStatus",
    "WorkflowStep",
]
