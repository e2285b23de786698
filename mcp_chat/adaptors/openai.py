"""OpenAI-compatible chat completions adaptor for mcp-chat."""

import json

from mcp_chat.assembler import ToolCallAssembler, ToolCallDelta
from mcp_chat.exceptions import ProviderError, ToolArgumentsError
from mcp_chat.execution import Message, StreamState, ToolCall
from mcp_chat.json_repair import parse_tool_arguments, strip_control_tokens
from mcp_chat.model import ModelAdaptor, ModelResponse
from mcp_chat.tools import ToolDefinition, format_tools_for_openai


class OpenAIAdaptor(ModelAdaptor):
    """OpenAI-compatible model adaptor.

    Supports the OpenAI API and every endpoint that speaks the same
    ``/chat/completions`` protocol (local servers, proxies, etc.).

    Streaming frames are ``data: {json}`` lines whose ``choices[0].delta``
    carries ``content``, ``reasoning_content`` and ``tool_calls`` fragments;
    tool-call fragments are merged by ``index``.
    """

    def endpoint(self, stream: bool) -> str:
        return "/chat/completions"

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
            "stream": stream,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        return payload

    def convert_tools(self, catalog: list[ToolDefinition]) -> list[dict]:
        return format_tools_for_openai(catalog)

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        """Convert canonical messages to OpenAI format.

        Args:
            messages: List of canonical Message objects.

        Returns:
            List of OpenAI-format message dicts.
        """
        openai_messages = []
        for msg in messages:
            openai_msg = {"role": msg.role, "content": msg.content}

            # Handle tool messages - include tool_call_id
            if msg.tool_call_id:
                openai_msg["tool_call_id"] = msg.tool_call_id

            # Handle assistant messages with tool calls
            if msg.role == "assistant" and msg.tool_calls:
                openai_msg["tool_calls"] = self._format_tool_calls(msg.tool_calls)

            openai_messages.append(openai_msg)
        return openai_messages

    def _format_tool_calls(self, tool_calls: list[ToolCall]) -> list[dict]:
        """Convert ToolCall objects to OpenAI tool_calls format.

        Arguments that needed repair are re-serialized so the provider gets
        valid JSON back; hopeless ones are sent as they were received.
        """
        formatted = []
        for tool_call in tool_calls:
            try:
                arguments = json.dumps(parse_tool_arguments(tool_call.arguments_text))
            except ToolArgumentsError:
                arguments = tool_call.arguments_text
            formatted.append({
                "id": tool_call.id,
                "type": tool_call.type or "function",
                "function": {
                    "name": tool_call.name,
                    "arguments": arguments,
                },
            })
        return formatted

    def clean_arguments(self, fragment: str) -> str:
        """Hook for providers that leak special tokens into argument fragments."""
        return fragment

    def parse_frame(self, data: dict, state: StreamState) -> bool:
        choices = data.get("choices") or []
        if not choices:
            return False
        delta = choices[0].get("delta") or {}
        changed = False

        if delta.get("content"):
            state.content += delta["content"]
            changed = True

        if delta.get("reasoning_content"):
            state.reasoning_content += delta["reasoning_content"]
            changed = True

        if delta.get("tool_calls"):
            assembler = ToolCallAssembler(state.tool_calls)
            for position, tool_call_delta in enumerate(delta["tool_calls"]):
                function = tool_call_delta.get("function") or {}
                arguments = function.get("arguments")
                if isinstance(arguments, str):
                    arguments = self.clean_arguments(arguments)
                elif arguments is not None:
                    arguments = json.dumps(arguments)
                assembler.add(ToolCallDelta(
                    index=tool_call_delta.get("index", position),
                    id=tool_call_delta.get("id"),
                    type=tool_call_delta.get("type"),
                    name=function.get("name"),
                    arguments=arguments,
                ))
            changed = True

        return changed

    def parse_response(self, data: dict) -> ModelResponse:
        """Parse an OpenAI chat completion body into a ModelResponse.

        Raises:
            ProviderError: If the body has no choices.
        """
        if not data.get("choices"):
            raise ProviderError(
                f"{self.name} response missing 'choices' field", provider=self.name
            )

        message = data["choices"][0].get("message") or {}
        tool_calls = []
        for position, tool_call_data in enumerate(message.get("tool_calls") or []):
            function = tool_call_data.get("function") or {}
            arguments = function.get("arguments") or ""
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            tool_calls.append(ToolCall(
                id=tool_call_data.get("id") or "",
                name=function.get("name") or "",
                arguments_text=self.clean_arguments(arguments),
                index=tool_call_data.get("index", position),
                type=tool_call_data.get("type") or "function",
            ))

        return ModelResponse(
            content=message.get("content") or "",
            reasoning_content=message.get("reasoning_content") or "",
            tool_calls=ToolCallAssembler(tool_calls).complete(),
            model=data.get("model") or self.model.id,
            usage=data.get("usage"),
        )


class DeepSeekAdaptor(OpenAIAdaptor):
    """DeepSeek speaks the OpenAI protocol.

    ``deepseek-reasoner`` streams its reasoning as ``reasoning_content``, and
    DeepSeek models occasionally leak ``<｜tool▁call...｜>`` tokens into the
    argument fragments, which are stripped as they arrive.
    """

    def clean_arguments(self, fragment: str) -> str:
        return strip_control_tokens(fragment)


class OllamaAdaptor(OpenAIAdaptor):
    """Local Ollama server through its OpenAI-compatible ``/v1`` endpoint.

    No API key is needed; the default base URL is http://localhost:11434/v1.
    """
