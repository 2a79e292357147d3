"""Tests for the HTTP layer."""

import pytest
from fastapi.testclient import TestClient

from toolplan.api import app as app_module
from toolplan.core.errors import PlannerError
from toolplan.core.schema import (
    DirectResponse,
    PlannedCall,
    ToolCalls,
)

client = TestClient(app_module.app)


class ScriptedPlanner:
    """Plans a fixed document; echoes the summary back as the reply."""

    def __init__(self, plan, fail: bool = False) -> None:
        self._plan = plan
        self._fail = fail

    def plan(self, user_msg, tool_schemas=None):
        if self._fail:
            raise PlannerError("upstream model down")
        return self._plan

    def respond(self, user_msg, execution_summary):
        return execution_summary


def _use_planner(monkeypatch: pytest.MonkeyPatch, planner: ScriptedPlanner) -> None:
    monkeypatch.setattr(app_module, "load_planner", lambda: planner)


def test_health() -> None:
    """Liveness probe answers ok."""
    assert client.get("/health").json() == {"status": "ok"}


def test_list_tools_includes_echo() -> None:
    """The built-in tool is listed with its schemas."""
    tools = {tool["name"]: tool for tool in client.get("/tools").json()["tools"]}
    assert "echo" in tools
    assert tools["echo"]["input_schema"]["properties"]["text"] == {"type": "string"}


def test_validate_plan_endpoint() -> None:
    """Valid and invalid plans are reported without running anything."""
    good = {
        "type": "tool_calls",
        "calls": [
            {"tool_name": "echo", "arguments": {"text": "hi"}},
            {"tool_name": "echo", "arguments": {"text": "$0.output.artifact.text"}},
        ],
    }
    assert client.post("/plans/validate", json={"plan": good}).json() == {
        "valid": True,
        "error": None,
    }

    bad = {
        "type": "tool_calls",
        "calls": [{"tool_name": "echo", "arguments": {"text": "$0.output.text"}}],
    }
    body = client.post("/plans/validate", json={"plan": bad}).json()
    assert body["valid"] is False
    assert body["error"]["kind"] == "index_out_of_bounds"


def test_validate_plan_rejects_malformed_document() -> None:
    """Documents that are not plans are a request error."""
    resp = client.post("/plans/validate", json={"plan": {"type": "nope"}})
    assert resp.status_code == 422


def test_agent_runs_pipeline(monkeypatch: pytest.MonkeyPatch) -> None:
    """A tool plan is executed against the local tools and summarised."""
    plan = ToolCalls(
        reasoning="echo twice",
        calls=[
            PlannedCall(tool_name="echo", arguments={"text": "hello"}),
            PlannedCall(tool_name="echo", arguments={"text": "$0.output.artifact.text"}),
        ],
    )
    _use_planner(monkeypatch, ScriptedPlanner(plan))

    body = client.post("/agent", json={"message": "echo", "context_id": "ctx"}).json()

    assert body["plan_type"] == "tool_calls"
    results = body["outcome"]["results"]
    assert [r["structured_content"]["artifact"]["text"] for r in results] == ["hello", "hello"]
    assert results[0]["structured_content"]["_metadata"]["context_id"] == "ctx"
    assert body["reply"].startswith("Tool execution results:")
    assert body["steps"][0]["step_type"] == "understanding"


def test_agent_direct_response(monkeypatch: pytest.MonkeyPatch) -> None:
    """Direct responses return the planner's content."""
    _use_planner(monkeypatch, ScriptedPlanner(DirectResponse(content="just text")))
    body = client.post("/agent", json={"message": "hi"}).json()
    assert body == {
        "reply": "just text",
        "plan_type": "direct_response",
        "validation_error": None,
        "outcome": None,
        "steps": body["steps"],
    }


def test_agent_planner_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    """Model failures map to 502."""
    _use_planner(monkeypatch, ScriptedPlanner(None, fail=True))
    resp = client.post("/agent", json={"message": "hi"})
    assert resp.status_code == 502
    assert "upstream model down" in resp.json()["detail"]
