"""Runs one assembled tool call against the tool executor.

Every tool-level problem (unknown tool, unrecoverable arguments, executor
failure) comes back as a ``ToolResult`` with ``status="error"`` so the model
can be told about it in the tool turn. Only cancellation propagates.
"""

import logging
from typing import Any, Callable, Optional

from mcp_chat.exceptions import (
    RequestCancelled,
    ToolArgumentsError,
    ToolExecutionError,
    ToolNotFound,
)
from mcp_chat.execution import ToolCall, ToolCallStatus, ToolResult
from mcp_chat.hooks import notify
from mcp_chat.json_repair import parse_tool_arguments
from mcp_chat.tools import ToolCallOutcome, ToolDefinition, ToolExecutor, find_tool
from mcp_chat.transport import CancellationToken, run_cancellable

logger = logging.getLogger(__name__)


def _coerce_outcome(outcome: Any) -> ToolCallOutcome:
    if isinstance(outcome, ToolCallOutcome):
        return outcome
    if isinstance(outcome, dict):
        return ToolCallOutcome(
            success=bool(outcome.get("success")),
            result=outcome.get("result"),
            message=outcome.get("message"),
        )
    return ToolCallOutcome(success=True, result=outcome)


def resolve_tool(catalog: list[ToolDefinition], tool_id: str) -> ToolDefinition:
    tool = find_tool(catalog, tool_id)
    if tool is None:
        raise ToolNotFound(f"Tool not found: {tool_id}")
    return tool


async def execute_tool(
    executor: Optional[ToolExecutor],
    tool: ToolDefinition,
    parameters: dict,
    cancel_token: Optional[CancellationToken] = None,
) -> Any:
    """Run ``tool`` through the executor and return its result.

    Raises:
        ToolExecutionError: If the executor reports a failure.
        RequestCancelled: If ``cancel_token`` fires.
    """
    if executor is None:
        raise ToolExecutionError("No tool executor configured")
    outcome = _coerce_outcome(
        await run_cancellable(
            executor.call_tool(tool.server_id, tool.id, parameters), cancel_token
        )
    )
    if not outcome.success:
        raise ToolExecutionError(outcome.message or "Tool execution failed")
    return outcome.result


async def handle_tool_call(
    tool_call: ToolCall,
    catalog: list[ToolDefinition],
    executor: Optional[ToolExecutor],
    on_status: Optional[Callable[[ToolCallStatus], Any]] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> ToolResult:
    """Resolve, validate and execute one tool call.

    Args:
        tool_call: The assembled call from the model turn.
        catalog: Tool snapshot taken for this request.
        executor: Collaborator that actually runs the tool.
        on_status: Receives ``running`` before execution and
            ``success``/``error`` after.
        cancel_token: Aborts a running tool when fired.

    Returns:
        The ToolResult; never raises for tool-level failures.

    Raises:
        RequestCancelled: If ``cancel_token`` fires.
    """
    try:
        tool = resolve_tool(catalog, tool_call.name)
    except ToolNotFound as e:
        logger.error(str(e))
        await notify(
            on_status,
            ToolCallStatus(id=tool_call.id, name=tool_call.name, status="error", message=str(e)),
        )
        return ToolResult(
            tool_call_id=tool_call.id,
            tool_id=tool_call.name,
            tool_name=tool_call.name,
            parameters={},
            status="error",
            error=str(e),
        )

    try:
        parameters = parse_tool_arguments(tool_call.arguments_text)
    except ToolArgumentsError as e:
        logger.error(f"Bad arguments for tool '{tool.id}': {e}")
        return ToolResult(
            tool_call_id=tool_call.id,
            tool_id=tool.id,
            tool_name=tool.name,
            parameters={},
            status="error",
            error=f"Failed to parse tool parameters: {e}",
        )

    await notify(on_status, ToolCallStatus(id=tool_call.id, name=tool.name, status="running"))
    logger.info(f"Calling tool '{tool.id}' on server '{tool.server_id}'")

    try:
        result = await execute_tool(executor, tool, parameters, cancel_token)
    except RequestCancelled:
        raise
    except ToolExecutionError as e:
        error = str(e)
    except Exception as e:
        error = f"Tool execution failed: {e}"
    else:
        await notify(
            on_status, ToolCallStatus(id=tool_call.id, name=tool.name, status="success")
        )
        return ToolResult(
            tool_call_id=tool_call.id,
            tool_id=tool.id,
            tool_name=tool.name,
            parameters=parameters,
            result=result,
        )

    logger.error(f"Tool '{tool.id}' failed: {error}")
    await notify(
        on_status,
        ToolCallStatus(id=tool_call.id, name=tool.name, status="error", message=error),
    )
    return ToolResult(
        tool_call_id=tool_call.id,
        tool_id=tool.id,
        tool_name=tool.name,
        parameters=parameters,
        status="error",
        error=error,
    )
