import json
from typing import Any, Callable, Optional

import httpx
import pytest

from mcp_chat.config import ModelConfig, ProviderConfig, SessionContext
from mcp_chat.tools import ToolCallOutcome, ToolDefinition


def sse_body(*frames: Any, done: bool = True) -> bytes:
    """Render frames as a ``text/event-stream`` body."""
    lines = [f"data: {json.dumps(frame)}\n\n" for frame in frames]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def sse_response(*frames: Any, done: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse_body(*frames, done=done),
        headers={"content-type": "text/event-stream"},
    )


def openai_text_frame(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def openai_tool_frame(
    index: int,
    id: Optional[str] = None,
    name: Optional[str] = None,
    arguments: Optional[str] = None,
) -> dict:
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    tool_call = {"index": index, "function": function}
    if id is not None:
        tool_call["id"] = id
        tool_call["type"] = "function"
    return {"choices": [{"index": 0, "delta": {"tool_calls": [tool_call]}}]}


def mock_client(handler: Callable) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class ScriptedProvider:
    """httpx handler replaying one scripted reply per request.

    A list item is streamed as SSE frames, a dict is returned as a JSON body,
    a callable builds the response itself. The last item repeats.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        reply = self.replies[min(len(self.requests), len(self.replies)) - 1]
        if callable(reply):
            return reply()
        if isinstance(reply, dict):
            return httpx.Response(200, json=reply)
        return sse_response(*reply)


def tool_call_frames(name, arguments, id="call_1", index=0):
    return [
        openai_tool_frame(index, id=id, name=name, arguments=""),
        openai_tool_frame(index, arguments=arguments[:4]),
        openai_tool_frame(index, arguments=arguments[4:]),
    ]


def text_frames(*chunks: str) -> list[dict]:
    return [openai_text_frame(chunk) for chunk in chunks]


class FakeExecutor:
    """In-memory ToolExecutor recording every call."""

    def __init__(self, tools: list[ToolDefinition], results: Optional[dict] = None):
        self.tools = tools
        self.results = results or {}
        self.calls: list[tuple[str, str, dict]] = []
        self.list_calls = 0

    async def list_active_tools(self) -> list[ToolDefinition]:
        self.list_calls += 1
        return list(self.tools)

    async def call_tool(self, server_id: str, tool_id: str, parameters: dict) -> ToolCallOutcome:
        self.calls.append((server_id, tool_id, parameters))
        result = self.results.get(tool_id, ToolCallOutcome(success=True, result="ok"))
        if callable(result):
            return await result(parameters)
        return result


@pytest.fixture
def calculator_tool() -> ToolDefinition:
    return ToolDefinition(
        id="calculator",
        description="Basic arithmetic",
        parameters={
            "properties": {
                "a": {"type": "number"},
                "b": {"type": "number"},
                "op": {"type": "string", "enum": ["add", "sub"]},
            },
            "required": ["a", "b", "op"],
        },
        server_id="math",
        server_name="Math Server",
    )


@pytest.fixture
def openai_session() -> SessionContext:
    return SessionContext(
        provider=ProviderConfig(id="openai", api_key="sk-test"),
        model=ModelConfig(id="gpt-4o"),
    )
