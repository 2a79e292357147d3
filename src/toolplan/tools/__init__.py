"""
Tool registry for toolplan.

This module provides a decorator to register in-process tools together with their input/output
JSON Schemas.  Functions land in :data:`TOOL_REGISTRY`; schemas land in :data:`SCHEMA_STORE`, whose
snapshots are what plans are validated against.
"""

import inspect
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Mapping,
    Optional,
    get_type_hints,
)

from toolplan.core.envelope import envelope_output_schema
from toolplan.core.registry import (
    SchemaRegistry,
    SchemaRegistryStore,
)
from toolplan.core.schema import ToolSchema

logger = logging.getLogger(__name__)

TOOL_REGISTRY: Dict[str, Callable[..., Any]] = {}
"""Global registry of tool functions."""

SCHEMA_STORE = SchemaRegistryStore()
"""Schemas of every registered tool."""

_JSON_TYPES: Mapping[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


def input_schema_from_signature(fn: Callable[..., Any]) -> Dict[str, Any]:
    """Derive an object schema from *fn*'s parameters and type hints."""
    sig = inspect.signature(fn)
    type_hints = get_type_hints(fn)
    properties: Dict[str, Any] = {}
    required = []
    for param_name, param in sig.parameters.items():
        hint = type_hints.get(param_name)
        origin = getattr(hint, "__origin__", hint)
        json_type = _JSON_TYPES.get(origin)
        properties[param_name] = {"type": json_type} if json_type else {}
        if param.default is inspect.Parameter.empty:
            required.append(param_name)
    return {"type": "object", "properties": properties, "required": required}


def register_tool(
    name: str,
    *,
    description: Optional[str] = None,
    input_schema: Optional[Dict[str, Any]] = None,
    output_schema: Optional[Dict[str, Any]] = None,
    artifact_schema: Optional[Dict[str, Any]] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Register a tool function with the given name.

    The function must accept keyword arguments.  It may return a
    :class:`~toolplan.core.envelope.ToolResponse`, an already wrapped dict, or any JSON value,
    which the local invoker wraps as the envelope's ``artifact``.

        @register_tool("my_tool", artifact_schema={"type": "object", "properties": {...}})
        def my_tool_function(arg1: str) -> dict:
            ...

    Parameters
    ----------
    name:
        Unique tool name used in plans.
    description:
        Shown to the planner; defaults to the function docstring.
    input_schema:
        JSON Schema of the arguments; derived from the signature when omitted.
    output_schema:
        JSON Schema of the structured output.  Defaults to the standard envelope around
        *artifact_schema*.

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")

    def wrapper(fn: Callable[..., Any]) -> Callable[..., Any]:
        TOOL_REGISTRY[name] = fn
        SCHEMA_STORE.register(
            ToolSchema(
                name=name,
                description=description if description is not None else (fn.__doc__ or "").strip(),
                input_schema=input_schema or input_schema_from_signature(fn),
                output_schema=output_schema or envelope_output_schema(artifact_schema),
            )
        )
        logger.debug("Registered tool '%s'", name)
        return fn

    return wrapper


def unregister_tool(name: str) -> None:
    """Remove a tool and its schema (no-op for unknown names)."""
    TOOL_REGISTRY.pop(name, None)
    SCHEMA_STORE.unregister(name)


def get_tool_schemas() -> SchemaRegistry:
    """Current snapshot of registered tool schemas."""
    return SCHEMA_STORE.snapshot()


@register_tool(
    "echo",
    artifact_schema={"type": "object", "properties": {"text": {"type": "string"}}},
)
def echo_tool(text: str) -> Dict[str, str]:
    """Echo the input text back to the caller."""
    return {"text": text}
