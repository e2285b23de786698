#!/usr/bin/env python3
"""Example: streaming chat with tools from an MCP server.

Connects to the calculator server (calculator_server.py) over stdio and asks
the model to use it. Tokens are printed as they stream in.

Requirements:
    pip install mcp-chat
    export OPENAI_API_KEY=...   # or pass another provider id, e.g. "ollama"

Run:
    python examples/mcp_chat_demo.py [provider] [model]
"""

import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mcp.client.stdio import StdioServerParameters

from mcp_chat import (
    ChatAgent,
    Message,
    ModelConfig,
    ProviderConfig,
    SessionContext,
)
from mcp_chat.mcp import MCPConnection, MCPToolExecutor


async def main():
    provider_id = sys.argv[1] if len(sys.argv) > 1 else "openai"
    model_id = sys.argv[2] if len(sys.argv) > 2 else "gpt-4o-mini"

    server_script = os.path.join(os.path.dirname(__file__), "calculator_server.py")
    server = MCPConnection(
        "calculator",
        StdioServerParameters(command=sys.executable, args=[server_script]),
        name="Calculator",
    )

    session = SessionContext(
        provider=ProviderConfig(id=provider_id),
        model=ModelConfig(id=model_id),
        temperature=0.2,
    )
    messages = [Message(role="user", content="What's 2+2? Use the calculator tool.")]

    printed = 0

    def on_progress(event):
        nonlocal printed
        if event.tool_call_status:
            status = event.tool_call_status
            print(f"\n[{status.name}: {status.status}]", flush=True)
            return
        if len(event.content) < printed:
            printed = 0
        print(event.content[printed:], end="", flush=True)
        printed = len(event.content)

    async with MCPToolExecutor([server]) as executor:
        tools = await executor.list_active_tools()
        print(f"Discovered {len(tools)} MCP tool(s): {[t.name for t in tools]}")

        agent = ChatAgent(executor=executor)
        execution = await agent.send_conversation(messages, session, on_progress=on_progress)

    print()
    print(f"State: {execution.state}")
    for result in execution.tool_call_results:
        print(f"  {result.tool_name}({result.parameters}) -> {result.result or result.error}")
    if execution.error:
        print(f"Error: {execution.error}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    asyncio.run(main())
