"""Anthropic Messages API adaptor for mcp-chat."""

import json

from mcp_chat.assembler import ToolCallAssembler, ToolCallDelta
from mcp_chat.exceptions import ToolArgumentsError
from mcp_chat.execution import Message, StreamState, ToolCall
from mcp_chat.json_repair import parse_tool_arguments, strip_control_tokens
from mcp_chat.model import ModelAdaptor, ModelResponse
from mcp_chat.tools import ToolDefinition, format_tools_for_anthropic

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdaptor(ModelAdaptor):
    """Anthropic model adaptor speaking the ``/v1/messages`` protocol.

    Stream frames are typed events. Text, thinking and tool input arrive as
    ``content_block_delta`` events; tool calls open with a
    ``content_block_start`` carrying the tool id and name. The older
    ``tool_call_delta`` event, keyed by ``tool_call_id``, is understood too.
    """

    def endpoint(self, stream: bool) -> str:
        return "/v1/messages"

    def headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_request(
        self,
        messages: list[Message],
        tools: list[dict],
        temperature: float,
        stream: bool,
    ) -> dict:
        payload = {
            "model": self.model.id,
            "messages": self._convert_messages(messages),
            "temperature": temperature,
            "max_tokens": self.model.max_tokens,
            "stream": stream,
        }
        if tools:
            payload["tools"] = tools
        return payload

    def convert_tools(self, catalog: list[ToolDefinition]) -> list[dict]:
        return format_tools_for_anthropic(catalog)

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        anthropic_messages = []
        for msg in messages:
            if msg.role == "user":
                anthropic_messages.append({"role": "user", "content": msg.content})
            elif msg.role == "assistant":
                content_blocks = []
                if msg.content:
                    content_blocks.append({"type": "text", "text": msg.content})
                if msg.tool_calls:
                    for tc in msg.tool_calls:
                        content_blocks.append({
                            "type": "tool_use",
                            "id": tc.id,
                            "name": tc.name,
                            "input": self._tool_input(tc),
                        })
                anthropic_messages.append({
                    "role": "assistant",
                    "content": content_blocks or msg.content,
                })
            elif msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }
                # All results for one assistant turn go back in a single user turn
                previous = anthropic_messages[-1] if anthropic_messages else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    anthropic_messages.append({"role": "user", "content": [block]})
        return anthropic_messages

    def _tool_input(self, tool_call: ToolCall) -> dict:
        try:
            return parse_tool_arguments(tool_call.arguments_text)
        except ToolArgumentsError:
            return {}

    def parse_frame(self, data: dict, state: StreamState) -> bool:
        event_type = data.get("type")
        assembler = ToolCallAssembler(state.tool_calls)

        if event_type == "content_block_start":
            block = data.get("content_block") or {}
            if block.get("type") != "tool_use":
                return False
            assembler.add(ToolCallDelta(
                index=data.get("index"),
                id=block.get("id"),
                name=block.get("name"),
            ))
            return True

        if event_type == "content_block_delta":
            delta = data.get("delta") or {}
            delta_type = delta.get("type")
            if delta_type == "thinking_delta" and delta.get("thinking"):
                state.reasoning_content += delta["thinking"]
                return True
            if delta_type == "input_json_delta":
                if not delta.get("partial_json"):
                    return False
                assembler.add(ToolCallDelta(
                    index=data.get("index"),
                    arguments=delta["partial_json"],
                ))
                return True
            if delta.get("text"):
                state.content += delta["text"]
                return True
            return False

        if event_type == "tool_call_delta":
            return self._apply_tool_call_delta(data, assembler)

        # message_start, content_block_stop, message_delta, message_stop, ping
        return False

    def _apply_tool_call_delta(self, data: dict, assembler: ToolCallAssembler) -> bool:
        delta = data.get("delta") or {}
        tool_input = delta.get("input")
        arguments = None
        replace_arguments = False

        if isinstance(tool_input, dict):
            arguments = json.dumps(tool_input)
            replace_arguments = True
        elif isinstance(tool_input, str):
            arguments = strip_control_tokens(tool_input)

        assembler.add(ToolCallDelta(
            id=data.get("tool_call_id"),
            name=delta.get("name"),
            arguments=arguments,
            replace_arguments=replace_arguments,
            type="function",
        ))
        return True

    def parse_response(self, data: dict) -> ModelResponse:
        text_parts = []
        reasoning_parts = []
        tool_calls = []

        for position, block in enumerate(data.get("content") or []):
            block_type = block.get("type")
            if block_type == "text":
                text_parts.append(block.get("text") or "")
            elif block_type == "thinking":
                reasoning_parts.append(block.get("thinking") or "")
            elif block_type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.get("id") or "",
                    name=block.get("name") or "",
                    arguments_text=json.dumps(block.get("input") or {}),
                    index=position,
                ))

        return ModelResponse(
            content="".join(text_parts),
            reasoning_content="".join(reasoning_parts),
            tool_calls=ToolCallAssembler(tool_calls).complete(),
            model=data.get("model") or self.model.id,
            usage=data.get("usage"),
        )
