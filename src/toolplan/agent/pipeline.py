"""
PLAN -> VALIDATE -> EXECUTE -> RESPOND.

One call to :func:`run_turn` handles one conversational turn::

    PLANNING --direct_response--> DONE                 (1 model call)
    PLANNING --tool_calls--> VALIDATING
    VALIDATING --error--> RESPONDING                   (execution skipped)
    VALIDATING --ok--> EXECUTING --> RESPONDING        (2 model calls)

Validation failures and tool failures are never returned as bare errors; they go to the
responding step so the user gets an explanation.  Model failures are fatal to the turn.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Union,
    cast,
)

from pydantic import (
    BaseModel,
    Field,
)

from toolplan.core.errors import (
    PlannerError,
    PlanValidationError,
)
from toolplan.core.executor import (
    ToolInvoker,
    execute_plan,
)
from toolplan.core.registry import SchemaRegistry
from toolplan.core.schema import (
    DirectResponse,
    ExecutionOutcome,
    ToolCalls,
)
from toolplan.core.tracking import (
    ExecutionStep,
    ExecutionTracker,
)
from toolplan.core.validator import validate_plan

logger = logging.getLogger(__name__)

_MAX_OUTPUT_CHARS = 4000


class AiPlanner(Protocol):
    """Produces the plan for a turn."""

    def plan(
        self, user_msg: str, tool_schemas: SchemaRegistry | None = None
    ) -> Union[DirectResponse, ToolCalls]: ...


class AiSynthesizer(Protocol):
    """Writes the final reply from an execution summary."""

    def respond(self, user_msg: str, execution_summary: str) -> str: ...


class TurnResult(BaseModel):
    """Everything a turn produced."""

    reply: str
    plan: Union[DirectResponse, ToolCalls] = Field(discriminator="type")
    validation_error: Optional[Dict[str, Any]] = None
    outcome: Optional[ExecutionOutcome] = None
    ai_calls: int = 1
    steps: List[ExecutionStep] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Summaries handed to the responding step
# ---------------------------------------------------------------------------
def _render_output(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False, default=str)
    if len(text) > _MAX_OUTPUT_CHARS:
        text = text[:_MAX_OUTPUT_CHARS] + "..."
    return text


def format_results_for_response(plan: ToolCalls, outcome: ExecutionOutcome) -> str:
    """Plain-text account of what ran, what failed and what never ran."""
    lines = ["Tool execution results:"]
    for result in outcome.results:
        if result.is_error:
            lines.append(
                f"[{result.tool_index}] {result.tool_name} (error, {result.duration_ms} ms): "
                f"{result.error_message}"
            )
        else:
            lines.append(
                f"[{result.tool_index}] {result.tool_name} (success, {result.duration_ms} ms): "
                f"{_render_output(result.structured_content)}"
            )

    if outcome.halted_at is not None:
        first_skipped = len(outcome.results)
        skipped = [call.tool_name for call in plan.calls[first_skipped:]]
        reason = "was cancelled" if outcome.halt_reason == "cancelled" else "halted"
        lines.append(f"Execution {reason} at step {outcome.halted_at}.")
        if skipped:
            lines.append(f"{len(skipped)} planned call(s) did not run: {', '.join(skipped)}")
    return "\n".join(lines)


def format_validation_failure(error: PlanValidationError) -> str:
    return f"Plan validation failed:\n- {error}"


# ---------------------------------------------------------------------------
# Turn
# ---------------------------------------------------------------------------
def run_turn(
    user_msg: str,
    *,
    planner: AiPlanner,
    synthesizer: Optional[AiSynthesizer] = None,
    invoker: ToolInvoker,
    registry: SchemaRegistry,
    tracker: Optional[ExecutionTracker] = None,
    cancel_event: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
) -> TurnResult:
    """
    Run one turn end to end.

    Parameters
    ----------
    user_msg:
        The user's request (already merged with any conversation context).
    planner, synthesizer:
        Model collaborators.  A :class:`~toolplan.agent.planner_interface.BasePlanner` is both;
        *synthesizer* defaults to *planner*.
    invoker:
        Tool runtime used during execution.
    registry:
        Schema snapshot used for both the planning prompt and validation.
    tracker:
        Receives the turn's execution steps.
    cancel_event, timeout:
        Stop starting new tool calls once the event is set or *timeout* seconds have passed.

    Raises
    ------
    PlannerError
        Planning or synthesis failed.
    ToolInvocationError
        The tool runtime was unreachable.
    """
    responder = synthesizer or cast(AiSynthesizer, planner)
    tracker = tracker or ExecutionTracker()
    deadline = time.monotonic() + timeout if timeout else None

    tracker.track_understanding()
    plan = planner.plan(user_msg, registry)

    if isinstance(plan, DirectResponse):
        logger.info("Direct response (no tools needed)")
        tracker.track_planning("Direct response - no tools needed")
        tracker.track_completion()
        return TurnResult(reply=plan.content, plan=plan, ai_calls=1, steps=tracker.steps)

    logger.info("Tool calls planned: %d (%s)", len(plan.calls), plan.reasoning)
    tracker.track_planning(plan.reasoning, list(plan.calls))

    try:
        validate_plan(plan, registry)
    except PlanValidationError as exc:
        logger.error("Template validation failed: %s", exc)
        reply = responder.respond(user_msg, format_validation_failure(exc))
        tracker.track_completion()
        return TurnResult(
            reply=reply,
            plan=plan,
            validation_error=exc.to_dict(),
            ai_calls=2,
            steps=tracker.steps,
        )
    logger.info("Template validation passed")

    outcome = execute_plan(
        plan, invoker, cancel_event=cancel_event, deadline=deadline, tracker=tracker
    )
    tracker.track_completion()

    summary = format_results_for_response(plan, outcome)
    try:
        reply = responder.respond(user_msg, summary)
    except PlannerError as exc:
        if outcome.failed_results:
            tool_errors = "; ".join(r.error_message or "" for r in outcome.failed_results)
            logger.warning(
                "Synthesis failed after tool errors (ai_error=%s, tool_error=%s)", exc, tool_errors
            )
            raise PlannerError(f"Tool execution failed: {tool_errors}") from exc
        raise

    return TurnResult(reply=reply, plan=plan, outcome=outcome, ai_calls=2, steps=tracker.steps)
