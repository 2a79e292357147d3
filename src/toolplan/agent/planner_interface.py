"""
Planner interface for toolplan.

This module is the only place that *directly* calls an LLM.  The model is used twice per turn at
most:

1. **plan** - decide between a direct answer and an ordered list of tool calls (JSON document);
2. **respond** - turn the execution summary (or a validation failure) into the final reply.

Back-ends: **OpenAI**, **Anthropic** and Hugging Face **Text-Generation-Inference** (TGI).
Additional providers can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.  Any failure is raised as :class:`PlannerError`; there is no retry.
"""

import json
import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Callable,
    ClassVar,
    Dict,
    Type,
    Union,
)

import httpx

from toolplan.config import settings
from toolplan.core.errors import (
    PlanParseError,
    PlannerError,
)
from toolplan.core.registry import SchemaRegistry
from toolplan.core.schema import (
    DirectResponse,
    ToolCalls,
    parse_plan,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_planner(name: str | None = None) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    3. default: ``"openai"``
    """

    target = name or getattr(settings, "PLANNER", "openai")
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner: user request -> plan, execution summary -> reply."""

    PLAN_PROMPT: ClassVar[
        str
    ] = """\
You are an assistant that can answer directly or by calling tools.
Respond with exactly one JSON object and no extra text.

If no tool is needed:
{"type": "direct_response", "content": "<final reply to user>"}

Otherwise plan every call up front, in order:
{"type": "tool_calls", "reasoning": "<why>", "calls": [{"tool_name": "<name>", "arguments": {...}}]}

A later call can use an earlier call's output by setting an argument to the exact string
"$<index>.output.<field.path>", e.g. "$0.output.artifact_id".  Only reference earlier calls and
only fields listed in that tool's output schema.
"""

    RESPOND_PROMPT: ClassVar[
        str
    ] = """\
You are an assistant writing the final reply to the user.  The tools you planned have run (or
could not run).  Use the execution summary below to answer the user's request.  If something
failed, explain plainly what could not be done.
"""

    def _build_prompt(self, tool_schemas: SchemaRegistry | None = None) -> str:
        """Planning prompt with the registered tools and their schemas."""
        prompt = self.PLAN_PROMPT
        if not tool_schemas:
            return prompt

        tools_info = []
        for name in tool_schemas.names():
            schema = tool_schemas[name]
            tools_info.append(
                f"- {name}: {schema.description}\n"
                f"  input_schema: {json.dumps(schema.input_schema)}\n"
                f"  output_schema: {json.dumps(schema.output_schema)}"
            )
        return prompt + "\n\nAvailable tools:\n" + "\n".join(tools_info)

    def _build_respond_input(self, user_msg: str, execution_summary: str) -> str:
        return f"USER REQUEST:\n{user_msg}\n\nEXECUTION SUMMARY:\n{execution_summary}"

    @abstractmethod
    def _complete(self, system_prompt: str, user_msg: str, *, json_mode: bool) -> str:
        """Return the raw completion text.  Raise :class:`PlannerError` on failure."""

    def plan(
        self, user_msg: str, tool_schemas: SchemaRegistry | None = None
    ) -> Union[DirectResponse, ToolCalls]:
        """Ask the model for a plan."""
        content = self._complete(self._build_prompt(tool_schemas), user_msg, json_mode=True)
        logger.debug("%s planner response: %s", type(self).__name__, content)
        return parse_plan(_sanitize_json_string(content))

    def respond(self, user_msg: str, execution_summary: str) -> str:
        """Ask the model for the final user-facing reply."""
        content = self._complete(
            self.RESPOND_PROMPT,
            self._build_respond_input(user_msg, execution_summary),
            json_mode=False,
        )
        if not content.strip():
            raise PlannerError("Empty response from model during synthesis")
        return content.strip()


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
@register_planner("tgi")
class TGIPlanner(BasePlanner):
    """TGI-based planner using an httpx client."""

    def _complete(self, system_prompt: str, user_msg: str, *, json_mode: bool) -> str:
        endpoint = getattr(settings, "TGI_ENDPOINT", "http://tgi:8080/generate")
        payload = {
            "inputs": f"{system_prompt}\n\nUser: {user_msg}\nAssistant:",
            "parameters": {
                "max_new_tokens": settings.MAX_OUTPUT_TOKENS,
                "temperature": settings.PLANNER_TEMPERATURE,
                "stop": ["User:", "</s>"],
            },
        }

        try:
            with httpx.Client(timeout=settings.AI_REQUEST_TIMEOUT) as client:
                resp = client.post(endpoint, json=payload)
                resp.raise_for_status()
                return str(resp.json()["generated_text"])
        except httpx.HTTPError as e:
            logger.error("TGI request error: %s", str(e))
            raise PlannerError(f"Error calling TGI endpoint: {e}") from e
        except (KeyError, ValueError) as e:
            logger.error("TGI planner error: %s", str(e))
            raise PlannerError(f"Error processing TGI response: {e}") from e


@register_planner("openai")
class OpenAIPlanner(BasePlanner):
    """OpenAI-based planner."""

    def _complete(self, system_prompt: str, user_msg: str, *, json_mode: bool) -> str:
        import openai  # pylint: disable=import-outside-toplevel

        client = openai.OpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.AI_REQUEST_TIMEOUT)
        extra: Dict[str, object] = {"response_format": {"type": "json_object"}} if json_mode else {}

        try:
            resp = client.chat.completions.create(
                model=getattr(settings, "OPENAI_MODEL", "gpt-4o-mini"),
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_msg},
                ],
                temperature=settings.PLANNER_TEMPERATURE,
                max_tokens=settings.MAX_OUTPUT_TOKENS,
                **extra,
            )
        except openai.OpenAIError as e:
            logger.error("OpenAI planner error: %s", str(e))
            raise PlannerError(f"Error calling OpenAI: {e}") from e

        content = resp.choices[0].message.content
        if not content:
            logger.error("OpenAI planner returned empty response")
            raise PlannerError("Empty response from OpenAI")
        return content


@register_planner("anthropic")
class AnthropicPlanner(BasePlanner):
    """Anthropic Claude-based planner."""

    def _complete(self, system_prompt: str, user_msg: str, *, json_mode: bool) -> str:
        import anthropic  # pylint: disable=import-outside-toplevel

        client = anthropic.Anthropic(
            api_key=settings.ANTHROPIC_API_KEY, timeout=settings.AI_REQUEST_TIMEOUT
        )
        try:
            response = client.messages.create(
                model=getattr(settings, "ANTHROPIC_MODEL", "claude-3-5-haiku-latest"),
                max_tokens=settings.MAX_OUTPUT_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": user_msg}],
                temperature=settings.PLANNER_TEMPERATURE,
            )
        except anthropic.AnthropicError as e:
            logger.error("Anthropic planner error: %s", str(e))
            raise PlannerError(f"Error calling Anthropic: {e}") from e

        # Handle different content block types from Anthropic API
        texts = [block.text for block in response.content if block.type == "text"]
        if not texts:
            raise PlannerError("Anthropic response contained no text block")
        return "".join(texts)


def _sanitize_json_string(content: str) -> str:
    """Clean up JSON strings returned by LLMs."""
    # Strip markdown code blocks if present
    if "```" in content:
        match = re.search(r"```(?:json)?\s*(.+?)```", content, re.DOTALL)
        if match:
            content = match.group(1).strip()

    # Remove control characters except whitespace
    content = "".join(ch for ch in content if ch >= " " or ch in "\n\r\t")

    # Find the outermost matching braces, skipping braces inside string literals
    open_idx = content.find("{")
    if open_idx < 0:
        raise PlanParseError(f"No JSON object in planner response: {content!r}")

    depth = 0
    in_string = False
    escaped = False
    for i in range(open_idx, len(content)):
        ch = content[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[open_idx : i + 1]

    logger.error("Failed to sanitize JSON string: %s", content)
    raise PlanParseError("Unbalanced braces in planner response")
