"""
Pydantic models for toolplan API requests and responses.
This module defines the request and response schemas used by the toolplan API.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
)

from toolplan.core.schema import (
    DirectResponse,
    ExecutionOutcome,
    ToolCalls,
    ToolSchema,
)
from toolplan.core.tracking import ExecutionStep


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for the agent")
    context_id: Optional[str] = Field(None, description="Conversation context stamped on outputs")
    user_id: Optional[str] = Field(None, description="User stamped on tool outputs")


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    plan_type: str
    validation_error: Optional[Dict[str, Any]] = None
    outcome: Optional[ExecutionOutcome] = None
    steps: List[ExecutionStep] = Field(default_factory=list)


class ValidatePlanRequest(BaseModel):
    """A plan document to check against the registered tools."""

    plan: Union[DirectResponse, ToolCalls] = Field(..., discriminator="type")


class ValidatePlanResponse(BaseModel):
    """Validation verdict; ``error`` holds the first violation."""

    valid: bool
    error: Optional[Dict[str, Any]] = None


class ToolListResponse(BaseModel):
    """Registered tool schemas."""

    tools: List[ToolSchema]
