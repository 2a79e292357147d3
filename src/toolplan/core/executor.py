"""
Plan executor.

Runs a validated :class:`ToolCalls` plan call by call, substituting template references with
earlier outputs.  There is no model call in here: the plan is a fixed instruction list and the
executor only interprets it.  The first tool failure halts the run; results gathered so far are
kept.  A reference that cannot be resolved at run time fails the consuming call the same way.
"""

import logging
import threading
import time
from typing import (
    Any,
    Dict,
    Optional,
    Protocol,
)

from toolplan.core.envelope import extract_skill_id
from toolplan.core.errors import ReferenceResolutionError
from toolplan.core.schema import (
    ExecutionOutcome,
    ExecutionResult,
    ToolCallResult,
    ToolCalls,
)
from toolplan.core.templates import substitute
from toolplan.core.tracking import ExecutionTracker

logger = logging.getLogger(__name__)


class ToolInvoker(Protocol):
    """Runs one named tool.  Tool-level failures come back as ``is_error=True`` results."""

    def call(self, tool_name: str, arguments: Dict[str, Any]) -> ToolCallResult:
        """
        Invoke *tool_name* with fully resolved *arguments*.

        Implementations raise :class:`~toolplan.core.errors.ToolInvocationError` only when the tool
        runtime itself is unavailable.
        """


def _cancelled(cancel_event: Optional[threading.Event], deadline: Optional[float]) -> bool:
    if cancel_event is not None and cancel_event.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline


def execute_plan(
    plan: ToolCalls,
    invoker: ToolInvoker,
    *,
    cancel_event: Optional[threading.Event] = None,
    deadline: Optional[float] = None,
    tracker: Optional[ExecutionTracker] = None,
) -> ExecutionOutcome:
    """
    Execute *plan* sequentially.

    The plan must already have passed :func:`~toolplan.core.validator.validate_plan`; it is not
    re-checked here.

    Parameters
    ----------
    plan:
        Validated plan.
    invoker:
        The tool runtime.
    cancel_event, deadline:
        Checked before each call (``deadline`` is a :func:`time.monotonic` timestamp).  Once
        either fires no further call starts; the call in flight is allowed to settle.
    tracker:
        Optional step tracker; receives one tool-execution step per call.

    Returns
    -------
    ExecutionOutcome
        ``halted_at`` is the failing call's index (``halt_reason="tool_error"``), or the index of
        the first call that never started (``halt_reason="cancelled"``), or ``None``.
    """
    outcome = ExecutionOutcome()

    for index, call in enumerate(plan.calls):
        if _cancelled(cancel_event, deadline):
            logger.warning(
                "Execution cancelled before call %d/%d (%s)", index, len(plan.calls), call.tool_name
            )
            outcome.halted_at = index
            outcome.halt_reason = "cancelled"
            break

        try:
            arguments = substitute(call.arguments, outcome)
        except ReferenceResolutionError as exc:
            # declared but optional output fields can be absent at run time
            logger.warning(
                "Call %d (%s) could not be resolved, halting: %s", index, call.tool_name, exc
            )
            if tracker:
                tracker.fail(tracker.track_tool_execution(call.tool_name, call.arguments), str(exc))
            failed = ToolCallResult.error(str(exc))
            outcome.results.append(
                ExecutionResult(
                    tool_index=index,
                    tool_name=call.tool_name,
                    structured_content=failed.structured_content,
                    content=failed.content,
                    is_error=True,
                )
            )
            outcome.halted_at = index
            outcome.halt_reason = "tool_error"
            break

        step = tracker.track_tool_execution(call.tool_name, arguments) if tracker else None

        logger.info("Executing call %d: %s", index, call.tool_name)
        logger.debug("Call %d arguments: %s", index, arguments)
        started = time.perf_counter()
        try:
            returned = invoker.call(call.tool_name, arguments)
        except Exception as exc:
            if tracker and step:
                tracker.fail(step, str(exc))
            raise
        duration_ms = int((time.perf_counter() - started) * 1000)

        result = ExecutionResult(
            tool_index=index,
            tool_name=call.tool_name,
            structured_content=returned.structured_content,
            content=returned.content,
            is_error=returned.is_error,
            duration_ms=duration_ms,
        )
        outcome.results.append(result)

        if result.is_error:
            logger.warning(
                "Call %d (%s) failed after %d ms, halting: %s",
                index,
                call.tool_name,
                duration_ms,
                result.error_message,
            )
            if tracker and step:
                tracker.fail(step, result.error_message or "tool error")
            outcome.halted_at = index
            outcome.halt_reason = "tool_error"
            break

        logger.info("Call %d (%s) succeeded in %d ms", index, call.tool_name, duration_ms)
        if tracker and step:
            tracker.complete(step, result.structured_content)
            skill_id = extract_skill_id(result.structured_content)
            if skill_id:
                tracker.track_skill_usage(skill_id, _skill_name(result.structured_content))

    logger.info(
        "Execution finished: %d succeeded, %d failed, halted_at=%s",
        len(outcome.successful_results),
        len(outcome.failed_results),
        outcome.halted_at,
    )
    return outcome


def _skill_name(structured_content: Any) -> Optional[str]:
    metadata = structured_content.get("_metadata") if isinstance(structured_content, dict) else None
    if isinstance(metadata, dict) and isinstance(metadata.get("skill_name"), str):
        return metadata["skill_name"]
    return None
