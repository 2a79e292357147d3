"""
Static validation of a tool-call plan.

Every template reference is checked against the registered schemas before anything runs:

1. the called tool must be registered;
2. a reference may only point at an earlier call;
3. the referenced field path must exist in the source tool's ``output_schema``;
4. the field's JSON Schema ``type`` must equal the consuming argument's declared ``type``.

Calls are checked in plan order and references in argument order; the first violation is raised.
Validation is pure: no I/O, no tool invocations.
"""

import logging
from typing import (
    Any,
    Dict,
    FrozenSet,
    Optional,
    Tuple,
)

from toolplan.core.errors import (
    FieldNotFoundError,
    IndexOutOfBoundsError,
    InvalidTemplateSyntaxError,
    TypeMismatchError,
)
from toolplan.core.registry import SchemaRegistry
from toolplan.core.schema import (
    PlannedCall,
    ToolCalls,
)
from toolplan.core.templates import (
    JsonPath,
    TemplateReference,
    find_template_strings,
    format_path,
    parse_reference,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Schema helpers
# ---------------------------------------------------------------------------
def _properties(schema: Any) -> Dict[str, Any]:
    if isinstance(schema, dict) and isinstance(schema.get("properties"), dict):
        return schema["properties"]
    return {}


def _is_array(schema: Any) -> bool:
    return isinstance(schema, dict) and normalize_type(schema.get("type")) == frozenset({"array"})


def normalize_type(declared: Any) -> Optional[FrozenSet[str]]:
    """``"string"`` -> ``{"string"}``, ``["string", "null"]`` -> set; ``None`` if undeclared."""
    if isinstance(declared, str):
        return frozenset({declared})
    if isinstance(declared, (list, tuple)) and declared:
        return frozenset(str(t) for t in declared)
    return None


def _walk_output(
    schema: Dict[str, Any], field_path: Tuple[str, ...]
) -> Tuple[Optional[Dict[str, Any]], str, FrozenSet[str]]:
    """
    Follow *field_path* through nested ``properties``.

    Returns ``(field_schema, "", ())`` on success or ``(None, failing_segment, siblings)``.
    """
    current: Any = schema
    for segment in field_path:
        props = {} if _is_array(current) else _properties(current)
        if segment not in props:
            return None, segment, frozenset(props)
        current = props[segment]
    return current, "", frozenset()


def resolve_output_field(
    output_schema: Dict[str, Any], field_path: Tuple[str, ...]
) -> Tuple[Optional[Dict[str, Any]], str, FrozenSet[str]]:
    """
    Locate *field_path* in an output schema.

    Mirrors runtime resolution: the path is tried at the top level, then, when the schema is an
    envelope and the first segment is unknown there, inside the ``artifact`` schema.  Errors at the
    first segment report the top-level keys.
    """
    found, segment, siblings = _walk_output(output_schema, field_path)
    if found is not None:
        return found, "", frozenset()
    top = _properties(output_schema)
    if segment == field_path[0] and "artifact" in top and field_path[0] not in top:
        nested, nested_segment, nested_siblings = _walk_output(top["artifact"], field_path)
        if nested is not None:
            return nested, "", frozenset()
        if nested_segment != field_path[0]:
            return None, nested_segment, nested_siblings
    return None, segment, siblings


def expected_input_type(input_schema: Dict[str, Any], location: JsonPath) -> Optional[FrozenSet[str]]:
    """Declared ``type`` at *location* of the arguments, ``None`` if the schema is silent."""
    current: Any = input_schema
    for part in location:
        if isinstance(part, int):
            current = current.get("items") if isinstance(current, dict) else None
        else:
            current = _properties(current).get(part)
        if not isinstance(current, dict):
            return None
    return normalize_type(current.get("type"))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _check_reference(
    index: int,
    location: JsonPath,
    ref: TemplateReference,
    plan: ToolCalls,
    registry: SchemaRegistry,
    input_schema: Dict[str, Any],
) -> None:
    argument = format_path(location)

    if ref.source_index >= index:
        raise IndexOutOfBoundsError(
            index, argument, ref.raw, referenced_index=ref.source_index
        )

    source_name = plan.calls[ref.source_index].tool_name
    source = registry.lookup(source_name)
    output_schema = source.output_schema if source is not None else {}

    field_schema, segment, siblings = resolve_output_field(output_schema, ref.field_path)
    if field_schema is None:
        raise FieldNotFoundError(
            index,
            argument,
            ref.raw,
            tool_name=source_name,
            field=segment,
            available_fields=siblings,
        )

    found = normalize_type(field_schema.get("type"))
    expected = expected_input_type(input_schema, location)
    if found is not None and expected is not None and found != expected:
        raise TypeMismatchError(
            index,
            argument,
            ref.raw,
            expected=_display_type(expected),
            found=_display_type(found),
        )


def _display_type(types: FrozenSet[str]) -> str | list[str]:
    return next(iter(types)) if len(types) == 1 else sorted(types)


def _check_call(index: int, call: PlannedCall, plan: ToolCalls, registry: SchemaRegistry) -> None:
    schema = registry.lookup(call.tool_name)
    if schema is None:
        raise FieldNotFoundError(
            index,
            "",
            "",
            tool_name=call.tool_name,
            field=call.tool_name,
            available_fields=registry.names(),
        )

    for location, text in find_template_strings(call.arguments):
        ref = parse_reference(text)
        if ref is None:
            raise InvalidTemplateSyntaxError(index, format_path(location), text)
        _check_reference(index, location, ref, plan, registry, schema.input_schema)


def validate_plan(plan: ToolCalls, registry: SchemaRegistry) -> None:
    """
    Check every template reference in *plan* against *registry*.

    Parameters
    ----------
    plan:
        The tool-call plan to check.
    registry:
        Snapshot of the registered tool schemas.

    Raises
    ------
    PlanValidationError
        The first violation found (one of its subclasses).
    """
    for index, call in enumerate(plan.calls):
        _check_call(index, call, plan, registry)
    logger.debug("Plan with %d call(s) passed validation", len(plan.calls))
