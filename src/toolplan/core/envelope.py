"""
Standardised tool response envelope.

Every artifact-producing tool returns::

    {"artifact_id": "...", "artifact": {...}, "_metadata": {...}}

Templates such as ``$0.output.artifact_id`` dereference into this shape, so producers and
consumers must agree on it exactly.
"""

import json
import uuid
from datetime import (
    datetime,
    timezone,
)
from typing import (
    Any,
    Dict,
    Generic,
    Optional,
    TypeVar,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from toolplan.core.schema import (
    ContentBlock,
    ToolCallResult,
)

T = TypeVar("T")

ENVELOPE_KEYS = ("artifact_id", "artifact", "_metadata")


class ExecutionMetadata(BaseModel):
    """Execution context stamped on every tool response."""

    # Extra keys (e.g. ``skill_id``) are preserved for downstream consumers.
    model_config = ConfigDict(extra="allow")

    context_id: str = ""
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: str = ""
    user_id: str = ""
    tool_name: str
    executed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ToolResponse(BaseModel, Generic[T]):
    """The wire envelope.  ``metadata`` is serialised as ``_metadata``."""

    model_config = ConfigDict(populate_by_name=True)

    artifact_id: str
    artifact: T
    metadata: ExecutionMetadata = Field(alias="_metadata")


def wrap(artifact_id: str, artifact: T, metadata: ExecutionMetadata) -> ToolResponse[T]:
    """Build an envelope around *artifact*."""
    return ToolResponse[Any](artifact_id=artifact_id, artifact=artifact, metadata=metadata)


def to_json(response: ToolResponse[Any]) -> str:
    """Serialise an envelope for wire transport."""
    return response.model_dump_json(by_alias=True)


def to_dict(response: ToolResponse[Any]) -> Dict[str, Any]:
    """JSON-compatible dict form of an envelope (``_metadata`` key, ISO timestamps)."""
    return response.model_dump(mode="json", by_alias=True)


def from_json(data: str | bytes) -> ToolResponse[Any]:
    """Parse an envelope.  Raises :class:`pydantic.ValidationError` on a malformed payload."""
    return ToolResponse[Any].model_validate_json(data)


def is_wrapped(value: Any) -> bool:
    """True if *value* has all three envelope keys."""
    return isinstance(value, dict) and all(key in value for key in ENVELOPE_KEYS)


def unwrap_if_wrapped(value: Any) -> Any:
    """Return the inner artifact of an envelope, or *value* unchanged."""
    if is_wrapped(value):
        return value["artifact"]
    return value


def extract_skill_id(value: Any) -> Optional[str]:
    """
    Find the skill a tool execution is associated with.

    The top-level ``skill_id`` wins over ``_metadata.skill_id``; both locations are in use, so
    neither is authoritative on its own.
    """
    if not isinstance(value, dict):
        return None
    skill_id = value.get("skill_id")
    if isinstance(skill_id, str):
        return skill_id
    metadata = value.get("_metadata")
    if isinstance(metadata, dict):
        skill_id = metadata.get("skill_id")
        if isinstance(skill_id, str):
            return skill_id
    return None


def to_call_tool_result(response: ToolResponse[Any]) -> ToolCallResult:
    """
    Convert an envelope into a successful tool result.

    The structured content is the envelope itself; a text block duplicates it for consumers that
    only read unstructured content.
    """
    structured = to_dict(response)
    text = json.dumps(structured, ensure_ascii=False)
    return ToolCallResult(structured_content=structured, content=[ContentBlock(text=text)])


def envelope_output_schema(artifact_schema: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """JSON Schema of an envelope whose artifact follows *artifact_schema*."""
    return {
        "type": "object",
        "properties": {
            "artifact_id": {"type": "string"},
            "artifact": artifact_schema or {"type": "object"},
            "_metadata": {
                "type": "object",
                "properties": {
                    "context_id": {"type": "string"},
                    "request_id": {"type": "string"},
                    "trace_id": {"type": "string"},
                    "user_id": {"type": "string"},
                    "tool_name": {"type": "string"},
                    "executed_at": {"type": "string", "format": "date-time"},
                },
            },
        },
        "required": list(ENVELOPE_KEYS),
    }
