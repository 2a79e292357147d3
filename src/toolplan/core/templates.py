"""
Template references between planned calls.

A string argument of the exact form ``$<index>.output.<field.path>`` is replaced, before the call
runs, by the value found at *field.path* in the structured output of call *index*.  The grammar is
deliberately narrow: dotted object keys only, no array indices, no expressions.
"""

import copy
import re
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Tuple,
    Union,
)

from toolplan.core.envelope import is_wrapped
from toolplan.core.errors import ReferenceResolutionError
from toolplan.core.schema import ExecutionOutcome

TEMPLATE_RE = re.compile(r"^\$(\d+)\.output\.([A-Za-z0-9_.]+)$")
# Anything that starts like a template; used to report malformed ones instead of passing them on.
TEMPLATE_LIKE_RE = re.compile(r"^\$\d+\.output\.")

JsonPath = Tuple[Union[str, int], ...]


@dataclass(frozen=True)
class TemplateReference:
    """A parsed ``$N.output.a.b`` reference."""

    source_index: int
    field_path: Tuple[str, ...]
    raw: str

    def __str__(self) -> str:
        return self.raw


def parse_reference(text: str) -> Optional[TemplateReference]:
    """Parse *text*, returning ``None`` if it is not a template reference."""
    match = TEMPLATE_RE.match(text)
    if match is None:
        return None
    segments = tuple(match.group(2).split("."))
    if any(not segment for segment in segments):
        # "$0.output.a..b" or a trailing dot
        return None
    return TemplateReference(source_index=int(match.group(1)), field_path=segments, raw=text)


def looks_like_template(text: str) -> bool:
    """True for strings that were meant as templates, well-formed or not."""
    return bool(TEMPLATE_LIKE_RE.match(text))


def format_path(path: JsonPath) -> str:
    """Render a JSON location as ``key.sub[0].leaf``."""
    out = ""
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else part
    return out


# ---------------------------------------------------------------------------
# Generic JSON visitor
# ---------------------------------------------------------------------------
def transform_strings(value: Any, fn: Callable[[JsonPath, str], Any], path: JsonPath = ()) -> Any:
    """
    Rebuild *value*, replacing every string leaf ``s`` at location ``p`` by ``fn(p, s)``.

    Containers are copied; non-string leaves are deep-copied so the result shares nothing with the
    input.
    """
    if isinstance(value, dict):
        return {key: transform_strings(item, fn, path + (key,)) for key, item in value.items()}
    if isinstance(value, list):
        return [transform_strings(item, fn, path + (idx,)) for idx, item in enumerate(value)]
    if isinstance(value, str):
        return fn(path, value)
    return copy.deepcopy(value)


def iter_strings(value: Any, path: JsonPath = ()) -> Iterator[Tuple[JsonPath, str]]:
    """Yield ``(location, string)`` for every string leaf, depth first, in key order."""
    if isinstance(value, dict):
        for key, item in value.items():
            yield from iter_strings(item, path + (key,))
    elif isinstance(value, list):
        for idx, item in enumerate(value):
            yield from iter_strings(item, path + (idx,))
    elif isinstance(value, str):
        yield path, value


def find_template_strings(value: Any) -> List[Tuple[JsonPath, str]]:
    """Every string leaf that looks like a template, including malformed ones."""
    return [(path, text) for path, text in iter_strings(value) if looks_like_template(text)]


def find_references(value: Any) -> List[Tuple[JsonPath, TemplateReference]]:
    """Every well-formed template reference in *value*, with its location."""
    found = []
    for path, text in iter_strings(value):
        ref = parse_reference(text)
        if ref is not None:
            found.append((path, ref))
    return found


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
_MISSING = object()


def _lookup(value: Any, field_path: Tuple[str, ...]) -> Any:
    for segment in field_path:
        if not isinstance(value, dict) or segment not in value:
            return _MISSING
        value = value[segment]
    return value


def lookup_field(structured_content: Any, field_path: Tuple[str, ...]) -> Any:
    """
    Navigate *field_path* inside a tool's structured content.

    Paths are tried against the content as-is first; for an envelope whose top level lacks the
    first segment, the path is tried against the wrapped ``artifact``.  Raises :class:`KeyError`
    when neither location has it.
    """
    found = _lookup(structured_content, field_path)
    if found is _MISSING and is_wrapped(structured_content):
        found = _lookup(structured_content["artifact"], field_path)
    if found is _MISSING:
        raise KeyError(".".join(field_path))
    return found


def resolve(reference: TemplateReference, outcome: ExecutionOutcome) -> Any:
    """Return the value *reference* points at in an (in-progress) execution outcome."""
    if reference.source_index >= len(outcome.results):
        raise ReferenceResolutionError(
            f"'{reference}' references call {reference.source_index} but only "
            f"{len(outcome.results)} result(s) exist"
        )
    result = outcome.results[reference.source_index]
    try:
        return copy.deepcopy(lookup_field(result.structured_content, reference.field_path))
    except KeyError as exc:
        raise ReferenceResolutionError(
            f"'{reference}' does not exist in the output of '{result.tool_name}'"
        ) from exc


def substitute(arguments: Dict[str, Any], outcome: ExecutionOutcome) -> Dict[str, Any]:
    """Deep copy of *arguments* with every template replaced by its resolved value."""

    def _replace(_path: JsonPath, text: str) -> Any:
        ref = parse_reference(text)
        return text if ref is None else resolve(ref, outcome)

    return transform_strings(arguments, _replace)
