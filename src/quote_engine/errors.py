"""
Quote engine error types.
"""

from typing import List, Optional


class QuoteEngineError(Exception):
    """Base exception for quote engine errors."""

    def __init__(self, message: str, provider_id: Optional[str] = None):
        self.message = message
        self.provider_id = provider_id
        super().__init__(message)


class ProviderNotFoundError(QuoteEngineError):
    """Raised when no workflow configuration exists for a provider."""
    pass


class WorkflowNotFoundError(QuoteEngineError):
    """Raised when a workflow id is unknown."""
    pass


class CatalogError(QuoteEngineError):
    """Raised when the provider catalog cannot be loaded."""
    pass


class UserDataValidationError(QuoteEngineError):
    """Raised when submitted user data fails validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


# Error tags the automation agent reports for outcomes that no retry can change.
REQUIRES_AGENT_CONTACT = "REQUIRES_AGENT_CONTACT"
NO_COVERAGE_AVAILABLE = "NO_COVERAGE_AVAILABLE"
ADDITIONAL_INFO_REQUIRED = "ADDITIONAL_INFO_REQUIRED"
QUOTE_NOT_FOUND_TIMEOUT = "QUOTE_NOT_FOUND_TIMEOUT"

TERMINAL_SEMANTIC_ERRORS = frozenset({
    REQUIRES_AGENT_CONTACT,
    NO_COVERAGE_AVAILABLE,
    ADDITIONAL_INFO_REQUIRED,
})


def is_terminal_semantic_error(error: Optional[str]) -> bool:
    """Check whether a step error carries one of the terminal semantic tags."""
    if not error:
        return False
    return any(tag in error for tag in TERMINAL_SEMANTIC_ERRORS)
