"""Tests for the PLAN -> VALIDATE -> EXECUTE -> RESPOND turn."""

from typing import (
    List,
    Tuple,
    Union,
)

import pytest
from conftest import (
    RecordingInvoker,
    failing,
    ok,
)

from toolplan.agent.pipeline import (
    format_results_for_response,
    format_validation_failure,
    run_turn,
)
from toolplan.core.errors import (
    IndexOutOfBoundsError,
    PlannerError,
)
from toolplan.core.registry import SchemaRegistry
from toolplan.core.schema import (
    DirectResponse,
    ExecutionOutcome,
    ExecutionResult,
    PlannedCall,
    ToolCalls,
)
from toolplan.core.tracking import (
    ExecutionTracker,
    StepType,
)


class FakePlanner:
    """Returns a fixed plan and records synthesis requests."""

    def __init__(
        self, plan: Union[DirectResponse, ToolCalls], fail_respond: bool = False
    ) -> None:
        self._plan = plan
        self.fail_respond = fail_respond
        self.plan_calls = 0
        self.summaries: List[Tuple[str, str]] = []

    def plan(
        self, user_msg: str, tool_schemas: SchemaRegistry | None = None
    ) -> Union[DirectResponse, ToolCalls]:
        self.plan_calls += 1
        return self._plan

    def respond(self, user_msg: str, execution_summary: str) -> str:
        self.summaries.append((user_msg, execution_summary))
        if self.fail_respond:
            raise PlannerError("model unavailable")
        return "final answer"


def _blog_plan(ref: str = "$0.output.artifact_id") -> ToolCalls:
    return ToolCalls(
        reasoning="research first",
        calls=[
            PlannedCall(tool_name="research_blog", arguments={"topic": "AI trends 2025"}),
            PlannedCall(
                tool_name="create_blog_post",
                arguments={"artifact_id": ref, "instructions": "Write a post"},
            ),
        ],
    )


def test_direct_response_short_circuits(registry: SchemaRegistry) -> None:
    """A direct response runs no tools and needs one model call."""
    planner = FakePlanner(DirectResponse(content="Hi there"))
    invoker = RecordingInvoker()

    turn = run_turn("hello", planner=planner, invoker=invoker, registry=registry)

    assert turn.reply == "Hi there"
    assert turn.ai_calls == 1
    assert invoker.calls == []
    assert planner.summaries == []
    assert turn.outcome is None


def test_direct_response_skips_validation(
    registry: SchemaRegistry, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Validation is never called for a direct response."""
    calls = []
    monkeypatch.setattr(
        "toolplan.agent.pipeline.validate_plan", lambda *args: calls.append(args)
    )
    run_turn(
        "hello",
        planner=FakePlanner(DirectResponse(content="Hi")),
        invoker=RecordingInvoker(),
        registry=registry,
    )
    assert calls == []


def test_tool_plan_executes_and_synthesises(registry: SchemaRegistry) -> None:
    """Valid plans run every call and hand a summary to the responder."""
    research = {"artifact_id": "abc-123", "artifact": {"title": "AI"}, "_metadata": {}}
    invoker = RecordingInvoker({"research_blog": ok(research)})
    planner = FakePlanner(_blog_plan())

    turn = run_turn("write a blog", planner=planner, invoker=invoker, registry=registry)

    assert turn.reply == "final answer"
    assert turn.ai_calls == 2
    assert turn.outcome is not None and turn.outcome.completed
    assert invoker.calls[1][1]["artifact_id"] == "abc-123"
    user_msg, summary = planner.summaries[0]
    assert user_msg == "write a blog"
    assert "[0] research_blog (success" in summary
    assert "abc-123" in summary


def test_validation_failure_skips_execution(registry: SchemaRegistry) -> None:
    """Scenario B through the pipeline: no tool runs, the error reaches the responder."""
    plan = ToolCalls(
        calls=[
            PlannedCall(
                tool_name="create_blog_post", arguments={"artifact_id": "$1.output.artifact_id"}
            )
        ]
    )
    planner = FakePlanner(plan)
    invoker = RecordingInvoker()

    turn = run_turn("write", planner=planner, invoker=invoker, registry=registry)

    assert invoker.calls == []
    assert turn.outcome is None
    assert turn.validation_error["kind"] == "index_out_of_bounds"
    assert turn.validation_error["tool_index"] == 0
    assert planner.summaries[0][1].startswith("Plan validation failed:\n- Tool 0:")
    assert turn.reply == "final answer"


def test_partial_failure_reaches_responder(registry: SchemaRegistry) -> None:
    """A tool failure halts execution but the turn still produces a reply."""
    invoker = RecordingInvoker({"research_blog": failing("search quota exceeded")})
    planner = FakePlanner(_blog_plan())

    turn = run_turn("write", planner=planner, invoker=invoker, registry=registry)

    assert turn.outcome.halted_at == 0
    assert len(invoker.calls) == 1
    summary = planner.summaries[0][1]
    assert "search quota exceeded" in summary
    assert "did not run: create_blog_post" in summary


def test_unresolvable_reference_reaches_responder(registry: SchemaRegistry) -> None:
    """A declared-but-absent output field is reported in the reply, not raised."""
    plan = ToolCalls(
        calls=[
            PlannedCall(tool_name="a"),
            PlannedCall(tool_name="b", arguments={"value": "$0.output.value"}),
        ]
    )
    invoker = RecordingInvoker({"a": ok({"id": "x"})})
    planner = FakePlanner(plan)

    turn = run_turn("go", planner=planner, invoker=invoker, registry=registry)

    assert turn.reply == "final answer"
    assert turn.outcome.halted_at == 1
    assert [r.tool_name for r in turn.outcome.successful_results] == ["a"]
    summary = planner.summaries[0][1]
    assert "[1] b (error" in summary
    assert "$0.output.value" in summary


def test_synthesis_failure_after_tool_error_names_tool_error(registry: SchemaRegistry) -> None:
    """When the responder fails after a tool error, the tool error is surfaced."""
    invoker = RecordingInvoker({"research_blog": failing("search quota exceeded")})
    planner = FakePlanner(_blog_plan(), fail_respond=True)

    with pytest.raises(PlannerError, match="search quota exceeded"):
        run_turn("write", planner=planner, invoker=invoker, registry=registry)


def test_synthesis_failure_is_fatal(registry: SchemaRegistry) -> None:
    """Without tool errors, the model error propagates as is."""
    invoker = RecordingInvoker({"research_blog": ok({"artifact_id": "x"})})
    planner = FakePlanner(_blog_plan(), fail_respond=True)

    with pytest.raises(PlannerError, match="model unavailable"):
        run_turn("write", planner=planner, invoker=invoker, registry=registry)


def test_steps_are_tracked_and_streamed(registry: SchemaRegistry) -> None:
    """Understanding, planning, tool and completion steps reach the sink in order."""
    streamed = []
    tracker = ExecutionTracker(sink=streamed.append)
    invoker = RecordingInvoker({"research_blog": ok({"artifact_id": "x"})})

    turn = run_turn(
        "write",
        planner=FakePlanner(_blog_plan()),
        invoker=invoker,
        registry=registry,
        tracker=tracker,
    )

    types = [step.step_type for step in turn.steps]
    assert types == [
        StepType.UNDERSTANDING,
        StepType.PLANNING,
        StepType.TOOL_EXECUTION,
        StepType.TOOL_EXECUTION,
        StepType.COMPLETION,
    ]
    assert turn.steps[1].reasoning == "research first"
    assert len(turn.steps[1].planned_tools) == 2
    # tool steps are emitted on start and again on completion
    assert len(streamed) == 7


def test_format_results_for_cancelled_outcome() -> None:
    """Cancelled runs say so and list the calls that never started."""
    plan = ToolCalls(calls=[PlannedCall(tool_name=n) for n in ("a", "b", "c")])
    outcome = ExecutionOutcome(
        results=[ExecutionResult(tool_index=0, tool_name="a", structured_content={"v": 1})],
        halted_at=1,
        halt_reason="cancelled",
    )
    summary = format_results_for_response(plan, outcome)
    assert "Execution was cancelled at step 1." in summary
    assert "2 planned call(s) did not run: b, c" in summary


def test_format_validation_failure() -> None:
    """Validation summaries use the error's readable message."""
    err = IndexOutOfBoundsError(0, "artifact_id", "$1.output.artifact_id", referenced_index=1)
    assert format_validation_failure(err) == f"Plan validation failed:\n- {err}"
