"""Tests for planner prompt building, response parsing and the TGI back-end."""

import json

import httpx
import pytest

from toolplan.agent import planner_interface
from toolplan.agent.planner_interface import (
    BasePlanner,
    TGIPlanner,
    _sanitize_json_string,
    load_planner,
)
from toolplan.core.errors import (
    PlanParseError,
    PlannerError,
)
from toolplan.core.registry import SchemaRegistry
from toolplan.core.schema import (
    DirectResponse,
    ToolCalls,
)


class CannedPlanner(BasePlanner):
    """Returns a fixed completion and remembers the prompts it saw."""

    def __init__(self, completion: str) -> None:
        self.completion = completion
        self.prompts: list[tuple[str, str, bool]] = []

    def _complete(self, system_prompt: str, user_msg: str, *, json_mode: bool) -> str:
        self.prompts.append((system_prompt, user_msg, json_mode))
        return self.completion


def test_plan_parses_tool_calls(registry: SchemaRegistry) -> None:
    """A tool_calls document becomes a ToolCalls plan."""
    doc = {
        "type": "tool_calls",
        "reasoning": "need research",
        "calls": [{"tool_name": "research_blog", "arguments": {"topic": "AI"}}],
    }
    planner = CannedPlanner(json.dumps(doc))

    plan = planner.plan("write a blog", registry)

    assert isinstance(plan, ToolCalls)
    assert plan.calls[0].tool_name == "research_blog"
    system_prompt, user_msg, json_mode = planner.prompts[0]
    assert "research_blog" in system_prompt
    assert "output_schema" in system_prompt
    assert user_msg == "write a blog"
    assert json_mode is True


def test_plan_parses_fenced_direct_response() -> None:
    """Markdown fences and surrounding chatter are stripped."""
    planner = CannedPlanner(
        'Sure!\n```json\n{"type": "direct_response", "content": "use {braces}"}\n```'
    )
    plan = planner.plan("hi")
    assert plan == DirectResponse(content="use {braces}")


def test_plan_rejects_unknown_shape() -> None:
    """Documents that are neither variant fail to parse."""
    with pytest.raises(PlanParseError):
        CannedPlanner('{"type": "something_else"}').plan("hi")
    with pytest.raises(PlanParseError):
        CannedPlanner("no json here").plan("hi")


def test_respond_uses_summary() -> None:
    """The responder sees the request and the execution summary in plain-text mode."""
    planner = CannedPlanner("  Here you go.  ")
    assert planner.respond("question", "Tool execution results:") == "Here you go."
    _, user_msg, json_mode = planner.prompts[0]
    assert "question" in user_msg and "Tool execution results:" in user_msg
    assert json_mode is False


def test_respond_rejects_empty_reply() -> None:
    """An empty synthesis is a planner failure."""
    with pytest.raises(PlannerError):
        CannedPlanner("   ").respond("q", "summary")


def test_sanitize_json_string_ignores_braces_in_strings() -> None:
    """Brace matching skips string literals."""
    text = 'prefix {"content": "a } b", "n": {"x": 1}} suffix'
    assert json.loads(_sanitize_json_string(text)) == {"content": "a } b", "n": {"x": 1}}


def test_load_planner() -> None:
    """Registered names load; unknown names raise."""
    assert isinstance(load_planner("tgi"), TGIPlanner)
    with pytest.raises(ValueError):
        load_planner("does-not-exist")


def test_tgi_planner_over_http(monkeypatch: pytest.MonkeyPatch) -> None:
    """The TGI back-end posts the prompt and parses generated_text."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"generated_text": '{"type": "direct_response", "content": "hi"}'}
        )

    real_client = httpx.Client
    monkeypatch.setattr(
        planner_interface.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    plan = TGIPlanner().plan("hello")

    assert plan == DirectResponse(content="hi")
    assert "User: hello" in seen["body"]["inputs"]


def test_tgi_planner_http_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """HTTP failures surface as PlannerError."""
    real_client = httpx.Client
    monkeypatch.setattr(
        planner_interface.httpx,
        "Client",
        lambda **kwargs: real_client(
            transport=httpx.MockTransport(lambda request: httpx.Response(500)), **kwargs
        ),
    )
    with pytest.raises(PlannerError):
        TGIPlanner().plan("hello")
