"""
Schema definitions for planner <-> pipeline <-> tool messages.

These data models serve as the contract between the planner LLM, the plan executor, and the tool
runtime.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

import json
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
)

from toolplan.core.errors import PlanParseError


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------
class PlannedCall(BaseModel):
    """One tool invocation the planner wants the pipeline to execute."""

    model_config = ConfigDict(frozen=True)

    tool_name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(
        default_factory=dict, description="Tool arguments; string leaves may be templates"
    )


class DirectResponse(BaseModel):
    """The planner answered without tools."""

    model_config = ConfigDict(frozen=True)

    type: Literal["direct_response"] = "direct_response"
    content: str


class ToolCalls(BaseModel):
    """An ordered list of calls.  The position of a call is its reference index."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_calls"] = "tool_calls"
    reasoning: str = ""
    calls: List[PlannedCall] = Field(default_factory=list)


Plan = Annotated[Union[DirectResponse, ToolCalls], Field(discriminator="type")]

_PLAN_ADAPTER: TypeAdapter[Plan] = TypeAdapter(Plan)


def parse_plan(data: str | Mapping[str, Any]) -> Union[DirectResponse, ToolCalls]:
    """
    Parse a plan document produced by the planner.

    Raises
    ------
    PlanParseError
        If *data* is not valid JSON or does not match either plan variant.
    """
    try:
        if isinstance(data, str):
            return _PLAN_ADAPTER.validate_json(data)
        return _PLAN_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise PlanParseError(f"Invalid plan: {exc}") from exc


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------
class ToolSchema(BaseModel):
    """Input and output JSON Schemas declared by a tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object"})
    output_schema: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------
class ContentBlock(BaseModel):
    """Unstructured content returned next to the structured result (usually text)."""

    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: Optional[str] = None


class ToolCallResult(BaseModel):
    """What a :class:`~toolplan.core.executor.ToolInvoker` returns for one call."""

    structured_content: Any = None
    content: List[ContentBlock] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def error(cls, message: str) -> "ToolCallResult":
        """Build a tool-level failure carrying *message* as text."""
        return cls(
            structured_content={"error": message},
            content=[ContentBlock(text=message)],
            is_error=True,
        )


class ExecutionResult(BaseModel):
    """The recorded result of one executed call."""

    tool_index: int
    tool_name: str
    structured_content: Any = None
    content: List[ContentBlock] = Field(default_factory=list)
    is_error: bool = False
    duration_ms: int = 0

    @property
    def text(self) -> str:
        """Concatenated text blocks."""
        return "\n".join(block.text for block in self.content if block.text)

    @property
    def error_message(self) -> Optional[str]:
        """Best-effort failure description, ``None`` for successful calls."""
        if not self.is_error:
            return None
        if self.text:
            return self.text
        if isinstance(self.structured_content, dict) and "error" in self.structured_content:
            return str(self.structured_content["error"])
        return json.dumps(self.structured_content, default=str)


class ExecutionOutcome(BaseModel):
    """
    Ordered, possibly truncated record of an executed plan.

    ``halted_at`` depends on ``halt_reason``:

    * ``"tool_error"``: call ``halted_at`` ran and failed; ``results[halted_at]`` is its error
      result and ``len(results) == halted_at + 1``.
    * ``"cancelled"``: call ``halted_at`` never started, so ``len(results) == halted_at`` and
      ``results[halted_at]`` does not exist.
    """

    results: List[ExecutionResult] = Field(default_factory=list)
    halted_at: Optional[int] = None
    halt_reason: Optional[Literal["tool_error", "cancelled"]] = None

    @property
    def completed(self) -> bool:
        """True when every planned call ran."""
        return self.halted_at is None

    @property
    def successful_results(self) -> List[ExecutionResult]:
        return [r for r in self.results if not r.is_error]

    @property
    def failed_results(self) -> List[ExecutionResult]:
        return [r for r in self.results if r.is_error]
