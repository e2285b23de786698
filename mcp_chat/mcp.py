"""MCP (Model Context Protocol) integration for mcp-chat.

``MCPToolExecutor`` is the tool executor backed by live MCP server
connections: it reports their tools as ToolDefinitions and routes
``call_tool`` to the server that owns the tool.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Optional, Union

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.client.streamable_http import streamablehttp_client

from mcp_chat.tools import ToolCallOutcome, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _content_to_result(content: list) -> Any:
    """Flatten MCP content blocks into the value reported back to the model."""
    text_parts = [c.text for c in content if hasattr(c, "text")]
    non_text_count = sum(1 for c in content if not hasattr(c, "text"))

    if non_text_count > 0:
        text_parts.append(f"[{non_text_count} non-text content block(s) omitted]")

    if len(text_parts) == 1:
        return text_parts[0]
    return text_parts


class MCPConnection:
    """Manages the lifecycle of one MCP server connection.

    Supports two transports:
    - stdio: MCPConnection("files", StdioServerParameters(command="python", args=["server.py"]))
    - streamable HTTP: MCPConnection("search", "http://localhost:8000/mcp")

    Args:
        server_id: Id the tool catalog uses to route calls to this server.
        server_params: StdioServerParameters for stdio, or a URL string for HTTP.
        name: Display name; defaults to ``server_id``.
        timeout: Timeout in seconds for MCP operations (initialize, list_tools,
            and individual tool calls). Defaults to 30s.
    """

    def __init__(
        self,
        server_id: str,
        server_params: Union[StdioServerParameters, str],
        name: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.server_id = server_id
        self.name = name or server_id
        self._server_params = server_params
        self._timeout = timeout
        self._exit_stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None
        self.tools: list[ToolDefinition] = []

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> list[ToolDefinition]:
        """Open transport, initialize session, and return the server's tools."""
        if self._exit_stack is not None:
            await self.disconnect()

        self._exit_stack = AsyncExitStack()
        try:
            if isinstance(self._server_params, str):
                transport = await self._exit_stack.enter_async_context(
                    streamablehttp_client(self._server_params)
                )
            else:
                transport = await self._exit_stack.enter_async_context(
                    stdio_client(self._server_params)
                )

            read_stream, write_stream, *_ = transport
            self._session = await self._exit_stack.enter_async_context(
                ClientSession(read_stream, write_stream)
            )

            await asyncio.wait_for(
                self._session.initialize(), timeout=self._timeout
            )

            tools_result = await asyncio.wait_for(
                self._session.list_tools(), timeout=self._timeout
            )
            self.tools = [
                ToolDefinition(
                    id=t.name,
                    name=t.name,
                    description=t.description or "",
                    parameters=t.inputSchema or {},
                    server_id=self.server_id,
                    server_name=self.name,
                )
                for t in tools_result.tools
            ]
            logger.info(f"Connected to MCP server '{self.name}' ({len(self.tools)} tools)")
            return self.tools
        except BaseException:
            await self.disconnect()
            raise

    async def disconnect(self) -> None:
        """Clean up transport and session resources."""
        if self._exit_stack:
            await self._exit_stack.aclose()
            self._exit_stack = None
            self._session = None
            self.tools = []

    async def call_tool(self, tool_id: str, parameters: dict) -> ToolCallOutcome:
        """Call one tool on this server. Never raises."""
        if self._session is None:
            return ToolCallOutcome(
                success=False, message=f"MCP server '{self.name}' is not connected"
            )

        try:
            result = await asyncio.wait_for(
                self._session.call_tool(tool_id, arguments=parameters),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return ToolCallOutcome(
                success=False,
                message=f"MCP tool '{tool_id}' timed out after {self._timeout}s",
            )
        except Exception as e:
            return ToolCallOutcome(
                success=False, message=f"MCP tool '{tool_id}' call failed: {e}"
            )

        if result.isError:
            texts = [c.text for c in result.content if hasattr(c, "text")]
            return ToolCallOutcome(
                success=False,
                message=f"MCP tool '{tool_id}' returned error: {' '.join(texts)}",
            )

        return ToolCallOutcome(success=True, result=_content_to_result(result.content))

    async def __aenter__(self) -> "MCPConnection":
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()


class MCPToolExecutor:
    """Tool executor over a set of MCP connections.

    Usage:
        async with MCPToolExecutor([MCPConnection("files", params)]) as executor:
            agent = ChatAgent(executor=executor)
            execution = await agent.send_conversation(messages, session)
    """

    def __init__(self, connections: list[MCPConnection]):
        self.connections = {conn.server_id: conn for conn in connections}

    async def connect(self) -> None:
        """Connect every server; a server that fails is logged and left out."""
        for conn in self.connections.values():
            try:
                await conn.connect()
            except Exception as e:
                logger.error(f"Could not connect to MCP server '{conn.name}': {e}")

    async def disconnect(self) -> None:
        for conn in self.connections.values():
            await conn.disconnect()

    async def list_active_tools(self) -> list[ToolDefinition]:
        tools = []
        for conn in self.connections.values():
            if conn.connected:
                tools.extend(conn.tools)
        return tools

    async def call_tool(
        self, server_id: str, tool_id: str, parameters: dict
    ) -> ToolCallOutcome:
        conn = self.connections.get(server_id)
        if conn is None:
            return ToolCallOutcome(success=False, message=f"Unknown MCP server: {server_id}")
        return await conn.call_tool(tool_id, parameters)

    async def __aenter__(self) -> "MCPToolExecutor":
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()
