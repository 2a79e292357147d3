"""Dispatches tool calls registered in ``toolplan.tools`` and wraps their output in the envelope."""

import json
import logging
import uuid
from typing import (
    Any,
    Dict,
)

from toolplan.config import settings
from toolplan.core.envelope import (
    ExecutionMetadata,
    ToolResponse,
    is_wrapped,
    to_call_tool_result,
    wrap,
)
from toolplan.core.errors import ToolExecutionError
from toolplan.core.schema import (
    ContentBlock,
    ToolCallResult,
)
from toolplan.tools import TOOL_REGISTRY

logger = logging.getLogger(__name__)


def execute_tool(name: str, args: Dict[str, Any] | None = None) -> Any:
    """
    Look up *name* in the registry and invoke it with *args*.

    Parameters
    ----------
    name:
        The registered tool name.
    args:
        Keyword arguments to pass verbatim to the tool function.  If *None*,
        an empty dict is assumed.

    Returns
    -------
    Any
        Whatever the tool function returns.

    Raises
    ------
    ToolExecutionError
        If the tool is missing or its invocation raises an exception.
    """

    if args is None:
        args = {}

    tool_fn = TOOL_REGISTRY.get(name)
    if tool_fn is None:
        raise ToolExecutionError(f"Tool '{name}' is not registered.")

    try:
        logger.debug("Executing tool '%s' with args=%s", name, args)
        return tool_fn(**args)
    except TypeError as exc:
        # Argument mismatch: give the caller a clean exception.
        logger.exception("Argument error while executing tool '%s'", name)
        raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc


class LocalToolInvoker:
    """
    In-process :class:`~toolplan.core.executor.ToolInvoker`.

    Plain return values are wrapped in the standard envelope, stamped with this invoker's request
    context.  Tool failures are reported as ``is_error`` results, never raised.
    """

    def __init__(
        self,
        *,
        context_id: str | None = None,
        trace_id: str | None = None,
        user_id: str | None = None,
    ) -> None:
        self.context_id = context_id if context_id is not None else settings.CONTEXT_ID
        self.trace_id = trace_id or str(uuid.uuid4())
        self.user_id = user_id if user_id is not None else settings.USER_ID

    def metadata(self, tool_name: str) -> ExecutionMetadata:
        return ExecutionMetadata(
            context_id=self.context_id,
            trace_id=self.trace_id,
            user_id=self.user_id,
            tool_name=tool_name,
        )

    def call(self, tool_name: str, arguments: Dict[str, Any]) -> ToolCallResult:
        try:
            output = execute_tool(tool_name, arguments)
        except ToolExecutionError as exc:
            return ToolCallResult.error(str(exc))

        if isinstance(output, ToolCallResult):
            return output
        if isinstance(output, ToolResponse):
            return to_call_tool_result(output)
        if is_wrapped(output):
            text = json.dumps(output, ensure_ascii=False, default=str)
            return ToolCallResult(structured_content=output, content=[ContentBlock(text=text)])
        response = wrap(str(uuid.uuid4()), output, self.metadata(tool_name))
        return to_call_tool_result(response)
