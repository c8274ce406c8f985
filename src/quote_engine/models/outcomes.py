"""
Typed step outcomes.

Each step declares the shape of the JSON its goal asks the agent to return.
Navigation steps get typed models; quote extraction keeps a free-form payload.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .workflow import StepOutputKind


class StepOutcome(BaseModel):
    """Fields shared by every step result payload."""
    model_config = ConfigDict(extra="allow")

    success: bool = False
    error: Optional[Any] = None

    def next_url(self) -> Optional[str]:
        """URL the browser ended on, when the payload reports one."""
        return None


class FormDiscoveryOutcome(StepOutcome):
    kind: Literal["form_discovery"] = "form_discovery"
    form_url: Optional[str] = None
    form_accessible: Optional[bool] = None
    form_type: Optional[str] = None
    initial_fields_visible: List[str] = Field(default_factory=list)

    def next_url(self) -> Optional[str]:
        return self.form_url


class PageProgressOutcome(StepOutcome):
    kind: Literal["page_progress"] = "page_progress"
    current_page_url: Optional[str] = None
    fields_filled: List[str] = Field(default_factory=list)
    next_page_loaded: Optional[bool] = None
    next_section: Optional[str] = None
    next_section_name: Optional[str] = None
    validation_errors: List[Any] = Field(default_factory=list)

    def next_url(self) -> Optional[str]:
        return self.current_page_url


class QuoteExtractionOutcome(StepOutcome):
    kind: Literal["quote_extraction"] = "quote_extraction"


class GenericOutcome(StepOutcome):
    kind: Literal["generic"] = "generic"


AnyStepOutcome = Annotated[
    Union[FormDiscoveryOutcome, PageProgressOutcome, QuoteExtractionOutcome, GenericOutcome],
    Field(discriminator="kind"),
]

_outcome_adapter: TypeAdapter = TypeAdapter(AnyStepOutcome)


def parse_step_outcome(kind: Union[StepOutputKind, str], payload: Dict[str, Any]) -> StepOutcome:
    """
    Validate a result payload against the outcome model for its step kind.

    Raises:
        pydantic.ValidationError: if the payload violates the typed shape
    """
    kind_value = kind.value if isinstance(kind, StepOutputKind) else str(kind)
    return _outcome_adapter.validate_python({**payload, "kind": kind_value})
