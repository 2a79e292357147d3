"""
Exception hierarchy for toolplan.

Validation errors carry enough structure (tool index, argument path, template string) for the
response step to explain to the user what went wrong with a plan.
"""

from typing import (
    Any,
    Dict,
    Iterable,
    List,
)


class ToolplanError(RuntimeError):
    """Base class for every error raised by toolplan."""


class PlannerError(ToolplanError):
    """Raised when the planning or synthesis model call fails."""


class PlanParseError(PlannerError):
    """Raised when the planner output is not a valid plan document."""


class ToolInvocationError(ToolplanError):
    """Transport-level failure: the tool runtime could not be reached at all."""


class ToolExecutionError(ToolplanError):
    """Raised when a requested in-process tool cannot run or fails."""


class ReferenceResolutionError(ToolplanError):
    """A template reference was resolved against an outcome it was not validated for."""


# ---------------------------------------------------------------------------
# Plan validation
# ---------------------------------------------------------------------------
class PlanValidationError(ToolplanError):
    """
    A template reference in a plan cannot be satisfied.

    Parameters
    ----------
    tool_index:
        Index of the planned call that holds the offending argument.
    argument:
        Location of the argument inside the call (``"a.b"`` or ``"items[0]"``).
    template:
        The raw template string.
    """

    kind: str = "validation_error"

    def __init__(self, tool_index: int, argument: str, template: str) -> None:
        self.tool_index = tool_index
        self.argument = argument
        self.template = template
        super().__init__(self.describe())

    def describe(self) -> str:
        """Return a human readable message."""
        return f"Tool {self.tool_index}: invalid template '{self.template}' for '{self.argument}'"

    def details(self) -> Dict[str, Any]:
        """Kind-specific fields."""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialisable form for API responses and synthesis prompts."""
        return {
            "tool_index": self.tool_index,
            "argument": self.argument,
            "template": self.template,
            "kind": self.kind,
            **self.details(),
        }


class InvalidTemplateSyntaxError(PlanValidationError):
    """The string looks like a template but does not match ``$N.output.path``."""

    kind = "invalid_template_syntax"

    def describe(self) -> str:
        return (
            f"Tool {self.tool_index}: Invalid template syntax '{self.template}' "
            f"for argument '{self.argument}'"
        )


class IndexOutOfBoundsError(PlanValidationError):
    """The template points at the consuming call itself or at a later call."""

    kind = "index_out_of_bounds"

    def __init__(
        self,
        tool_index: int,
        argument: str,
        template: str,
        *,
        referenced_index: int,
    ) -> None:
        self.referenced_index = referenced_index
        super().__init__(tool_index, argument, template)

    @property
    def max_valid_index(self) -> int | None:
        """Highest index the call may reference, ``None`` for the first call."""
        return self.tool_index - 1 if self.tool_index > 0 else None

    def describe(self) -> str:
        if self.max_valid_index is None:
            available = "no earlier tools are available"
        else:
            available = f"only tools 0-{self.max_valid_index} have executed before it"
        return (
            f"Tool {self.tool_index}: Template '{self.template}' references tool "
            f"{self.referenced_index} but {available}"
        )

    def details(self) -> Dict[str, Any]:
        return {"referenced_index": self.referenced_index, "max_valid_index": self.max_valid_index}


class FieldNotFoundError(PlanValidationError):
    """A path segment (or the tool itself) does not exist in the registry."""

    kind = "field_not_found"

    def __init__(
        self,
        tool_index: int,
        argument: str,
        template: str,
        *,
        tool_name: str,
        field: str,
        available_fields: Iterable[str],
    ) -> None:
        self.tool_name = tool_name
        self.field = field
        self.available_fields: List[str] = sorted(available_fields)
        super().__init__(tool_index, argument, template)

    def describe(self) -> str:
        available = ", ".join(self.available_fields)
        if not self.template:
            return (
                f"Tool {self.tool_index}: '{self.tool_name}' is not a registered tool "
                f"(available: [{available}])"
            )
        return (
            f"Tool {self.tool_index}: Template '{self.template}' references field "
            f"'{self.field}' but tool '{self.tool_name}' outputs: [{available}]"
        )

    def details(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "field": self.field,
            "available_fields": self.available_fields,
        }


class TypeMismatchError(PlanValidationError):
    """The referenced output field and the consuming argument declare different types."""

    kind = "type_mismatch"

    def __init__(
        self,
        tool_index: int,
        argument: str,
        template: str,
        *,
        expected: Any,
        found: Any,
    ) -> None:
        self.expected = expected
        self.found = found
        super().__init__(tool_index, argument, template)

    def describe(self) -> str:
        return (
            f"Tool {self.tool_index}: Template '{self.template}' yields type '{self.found}' "
            f"but argument '{self.argument}' expects '{self.expected}'"
        )

    def details(self) -> Dict[str, Any]:
        return {"expected": self.expected, "found": self.found}
