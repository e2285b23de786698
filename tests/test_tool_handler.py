import asyncio

import pytest

from conftest import FakeExecutor
from mcp_chat.exceptions import RequestCancelled, ToolExecutionError, ToolNotFound
from mcp_chat.execution import ToolCall
from mcp_chat.tool_handler import execute_tool, handle_tool_call, resolve_tool
from mcp_chat.tools import ToolCallOutcome
from mcp_chat.transport import CancellationToken


def _call(name="calculator", arguments='{"a": 2, "b": 2, "op": "add"}'):
    return ToolCall(id="call_1", name=name, arguments_text=arguments)


class TestHandleToolCall:
    @pytest.mark.asyncio
    async def test_success(self, calculator_tool):
        executor = FakeExecutor([calculator_tool], {"calculator": ToolCallOutcome(success=True, result=4)})
        statuses = []

        result = await handle_tool_call(_call(), [calculator_tool], executor, on_status=statuses.append)

        assert result.status == "success"
        assert result.result == 4
        assert result.tool_name == "calculator"
        assert result.parameters == {"a": 2, "b": 2, "op": "add"}
        assert executor.calls == [("math", "calculator", {"a": 2, "b": 2, "op": "add"})]
        assert [s.status for s in statuses] == ["running", "success"]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_error_result(self, calculator_tool):
        executor = FakeExecutor([calculator_tool])
        statuses = []

        result = await handle_tool_call(
            _call(name="nonexistent"), [calculator_tool], executor, on_status=statuses.append
        )

        assert result.status == "error"
        assert result.error == "Tool not found: nonexistent"
        assert executor.calls == []
        assert len(statuses) == 1
        assert statuses[0].status == "error"
        assert statuses[0].name == "nonexistent"
        assert statuses[0].id == "call_1"
        assert statuses[0].message == "Tool not found: nonexistent"

    @pytest.mark.asyncio
    async def test_unparseable_arguments(self, calculator_tool):
        executor = FakeExecutor([calculator_tool])
        statuses = []

        result = await handle_tool_call(
            _call(arguments="{a: two"), [calculator_tool], executor, on_status=statuses.append
        )

        assert result.status == "error"
        assert result.error.startswith("Failed to parse tool parameters:")
        assert executor.calls == []
        assert statuses == []

    @pytest.mark.asyncio
    async def test_repaired_arguments(self, calculator_tool):
        executor = FakeExecutor([calculator_tool])

        result = await handle_tool_call(
            _call(arguments='{\\"a\\": 1, \\"b\\": 2, \\"op\\": \\"add\\"}"}'), [calculator_tool], executor
        )

        assert result.status == "success"
        assert executor.calls[0][2] == {"a": 1, "b": 2, "op": "add"}

    @pytest.mark.asyncio
    async def test_executor_reports_failure(self, calculator_tool):
        executor = FakeExecutor(
            [calculator_tool], {"calculator": ToolCallOutcome(success=False, message="division by zero")}
        )
        statuses = []

        result = await handle_tool_call(_call(), [calculator_tool], executor, on_status=statuses.append)

        assert result.status == "error"
        assert result.error == "division by zero"
        assert statuses[-1].status == "error"
        assert statuses[-1].message == "division by zero"

    @pytest.mark.asyncio
    async def test_executor_raises(self, calculator_tool):
        async def boom(parameters):
            raise RuntimeError("server crashed")

        executor = FakeExecutor([calculator_tool], {"calculator": boom})

        result = await handle_tool_call(_call(), [calculator_tool], executor)

        assert result.status == "error"
        assert "server crashed" in result.error

    @pytest.mark.asyncio
    async def test_dict_outcome_accepted(self, calculator_tool):
        async def as_dict(parameters):
            return {"success": True, "result": {"value": 4}}

        executor = FakeExecutor([calculator_tool], {"calculator": as_dict})

        result = await handle_tool_call(_call(), [calculator_tool], executor)
        assert result.result == {"value": 4}

    @pytest.mark.asyncio
    async def test_no_executor(self, calculator_tool):
        result = await handle_tool_call(_call(), [calculator_tool], None)
        assert result.status == "error"
        assert result.error == "No tool executor configured"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, calculator_tool):
        token = CancellationToken()

        async def slow(parameters):
            token.cancel()
            await asyncio.sleep(10)

        executor = FakeExecutor([calculator_tool], {"calculator": slow})

        with pytest.raises(RequestCancelled):
            await handle_tool_call(_call(), [calculator_tool], executor, cancel_token=token)

    @pytest.mark.asyncio
    async def test_result_message_payload(self, calculator_tool):
        executor = FakeExecutor([calculator_tool], {"calculator": ToolCallOutcome(success=True, result=4)})

        result = await handle_tool_call(_call(), [calculator_tool], executor)
        message = result.to_message()

        assert message.role == "tool"
        assert message.tool_call_id == "call_1"
        assert '"result": 4' in message.content
        assert '"toolName": "calculator"' in message.content


class TestHelpers:
    def test_resolve_tool(self, calculator_tool):
        assert resolve_tool([calculator_tool], "calculator") is calculator_tool
        with pytest.raises(ToolNotFound):
            resolve_tool([calculator_tool], "nope")

    @pytest.mark.asyncio
    async def test_execute_tool_raises_on_failure(self, calculator_tool):
        executor = FakeExecutor([calculator_tool], {"calculator": ToolCallOutcome(success=False)})
        with pytest.raises(ToolExecutionError, match="Tool execution failed"):
            await execute_tool(executor, calculator_tool, {})
