"""
Multi-step workflow orchestration and quote aggregation.
"""

from .aggregator import QuoteAggregator, derive_final_status
from .orchestrator import WorkflowOrchestrator, compute_progress, extract_final_quote
from .retry import RetryController, merge_session_data
from .step_executor import StepExecutor
from .templating import find_placeholders, missing_placeholders, render_template

__all__ = [
    "QuoteAggregator",
    "derive_final_status",
    "WorkflowOrchestrator",
    "compute_progress",
    "extract_final_quote",
    "RetryController",
    "merge_session_data",
    "StepExecutor",
    "find_placeholders",
    "missing_placeholders",
    "render_template",
]
