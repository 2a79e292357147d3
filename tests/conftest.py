"""Shared fixtures: a small schema registry and a scripted tool invoker."""

from typing import (
    Any,
    Callable,
    Dict,
    List,
    Tuple,
)

import pytest

from toolplan.core.envelope import envelope_output_schema
from toolplan.core.registry import SchemaRegistry
from toolplan.core.schema import (
    ContentBlock,
    ToolCallResult,
    ToolSchema,
)

BLOG_ARTIFACT = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "sections": {"type": "array", "items": {"type": "string"}},
        "metadata": {
            "type": "object",
            "properties": {"title": {"type": "string"}, "word_count": {"type": "integer"}},
        },
    },
}


def _schema(name: str, properties: Dict[str, Any], output: Dict[str, Any]) -> ToolSchema:
    return ToolSchema(
        name=name,
        input_schema={"type": "object", "properties": properties},
        output_schema=output,
    )


@pytest.fixture
def registry() -> SchemaRegistry:
    """Tools used across the validator, executor and pipeline tests."""
    return SchemaRegistry(
        [
            _schema(
                "research_blog",
                {"topic": {"type": "string"}},
                envelope_output_schema(BLOG_ARTIFACT),
            ),
            _schema(
                "create_blog_post",
                {
                    "artifact_id": {"type": "string"},
                    "instructions": {"type": "string"},
                    "word_count": {"type": "integer"},
                    "outline": {"type": "object"},
                    "sources": {"type": "array", "items": {"type": "string"}},
                },
                envelope_output_schema(),
            ),
            _schema("a", {}, {"type": "object", "properties": {"value": {"type": "string"}}}),
            _schema("b", {"value": {"type": "string"}}, {"type": "object", "properties": {}}),
            _schema("c", {}, {}),
        ]
    )


Handler = Callable[[Dict[str, Any]], ToolCallResult]


class RecordingInvoker:
    """Returns scripted results per tool and records every call."""

    def __init__(self, handlers: Dict[str, Handler] | None = None) -> None:
        self.handlers = handlers or {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def call(self, tool_name: str, arguments: Dict[str, Any]) -> ToolCallResult:
        self.calls.append((tool_name, arguments))
        handler = self.handlers.get(tool_name)
        if handler is None:
            return ToolCallResult(structured_content={"ok": True})
        return handler(arguments)


def ok(structured: Any) -> Handler:
    """Handler returning a successful result."""
    return lambda _args: ToolCallResult(
        structured_content=structured, content=[ContentBlock(text=str(structured))]
    )


def failing(message: str) -> Handler:
    """Handler returning a tool-level failure."""
    return lambda _args: ToolCallResult.error(message)
