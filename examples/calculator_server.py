#!/usr/bin/env python3
"""Minimal MCP server exposing a 'calculator' tool.

This server runs over stdio transport and is used by mcp_chat_demo.py.

Run standalone (for testing):
    python examples/calculator_server.py
"""

from typing import Literal

from mcp.server.fastmcp import FastMCP

server = FastMCP("calculator")


@server.tool()
def calculator(a: float, b: float, op: Literal["add", "sub", "mul", "div"]) -> float:
    """Basic arithmetic on two numbers."""
    if op == "add":
        return a + b
    if op == "sub":
        return a - b
    if op == "mul":
        return a * b
    return a / b


if __name__ == "__main__":
    server.run(transport="stdio")
