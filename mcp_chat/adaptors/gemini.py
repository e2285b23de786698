"""Google Gemini API adaptor for mcp-chat."""

import json

from mcp_chat.assembler import ToolCallAssembler, ToolCallDelta
from mcp_chat.exceptions import ToolArgumentsError
from mcp_chat.execution import Message, StreamState, ToolCall
from mcp_chat.json_repair import parse_tool_arguments
from mcp_chat.model import ModelAdaptor, ModelResponse
from mcp_chat.tools import ToolDefinition, format_tools_for_gemini


class GeminiAdaptor(ModelAdaptor):
    """Google Gemini model adaptor speaking the REST ``generateContent`` protocol.

    Gemini does not stream deltas: a frame may carry the whole candidate text
    so far or only the newest fragment, so the adaptor works out the delta
    itself. The API key travels in the query string.
    """

    def endpoint(self, stream: bool) -> str:
        if stream:
            return f"/models/{self.model.id}:streamGenerateContent?alt=sse&key={self.api_key}"
        return f"/models/{self.model.id}:generateContent?key={self.api_key}"

    def headers(self) -> dict:
        return {"Content-Type": "application/json"}

    def build_request(
        self,
        messages: list[Message],
        tools: list[dict],
        temperature: float,
        stream: bool,
    ) -> dict:
        payload = {
            "contents": self._convert_messages(messages),
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": self.model.max_tokens,
            },
        }
        if tools:
            payload["tools"] = tools
        return payload

    def convert_tools(self, catalog: list[ToolDefinition]) -> list[dict]:
        return format_tools_for_gemini(catalog)

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        contents = []
        for msg in messages:
            if msg.role == "user":
                contents.append({"role": "user", "parts": [{"text": msg.content}]})
            elif msg.role == "assistant":
                parts = []
                if msg.content:
                    parts.append({"text": msg.content})
                if msg.tool_calls:
                    for tc in msg.tool_calls:
                        parts.append({
                            "functionCall": {"name": tc.name, "args": self._tool_args(tc)},
                        })
                contents.append({"role": "model", "parts": parts or [{"text": ""}]})
            elif msg.role == "tool":
                # Find tool name from tool_call_id by looking back through messages
                part = {
                    "functionResponse": {
                        "name": self._find_tool_name(messages, msg.tool_call_id),
                        "response": {"result": msg.content},
                    },
                }
                previous = contents[-1] if contents else None
                if previous is not None and previous["role"] == "user" and all(
                    "functionResponse" in p for p in previous["parts"]
                ):
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
        return contents

    def _find_tool_name(self, messages: list[Message], tool_call_id: str) -> str:
        for msg in messages:
            if msg.tool_calls:
                for tc in msg.tool_calls:
                    if tc.id == tool_call_id:
                        return tc.name
        return "unknown"

    def _tool_args(self, tool_call: ToolCall) -> dict:
        try:
            return parse_tool_arguments(tool_call.arguments_text)
        except ToolArgumentsError:
            return {}

    def _candidate_parts(self, data: dict) -> list[dict]:
        candidates = data.get("candidates") or []
        if not candidates:
            return []
        content = candidates[0].get("content") or {}
        return content.get("parts") or []

    def parse_frame(self, data: dict, state: StreamState) -> bool:
        changed = False
        text = ""
        assembler = ToolCallAssembler(state.tool_calls)

        for part in self._candidate_parts(data):
            if part.get("thought") and part.get("text"):
                state.reasoning_content += part["text"]
                changed = True
            elif part.get("text"):
                text += part["text"]
            if part.get("functionCall"):
                self._add_function_call(assembler, part["functionCall"])
                changed = True

        if text:
            if state.content and text.startswith(state.content):
                # Cumulative frame: the candidate text so far
                changed = changed or text != state.content
                state.content = text
            else:
                state.content += text
                changed = True

        return changed

    def _add_function_call(self, assembler: ToolCallAssembler, function_call: dict) -> None:
        index = len(assembler)
        name = function_call.get("name") or ""
        assembler.add(ToolCallDelta(
            index=index,
            id=function_call.get("id") or f"call_{name}_{index}",
            name=name,
            arguments=json.dumps(function_call.get("args") or {}),
            replace_arguments=True,
            type="function",
        ))

    def parse_response(self, data: dict) -> ModelResponse:
        text_parts = []
        reasoning_parts = []
        assembler = ToolCallAssembler()

        for part in self._candidate_parts(data):
            if part.get("thought") and part.get("text"):
                reasoning_parts.append(part["text"])
            elif part.get("text"):
                text_parts.append(part["text"])
            if part.get("functionCall"):
                self._add_function_call(assembler, part["functionCall"])

        return ModelResponse(
            content="".join(text_parts),
            reasoning_content="".join(reasoning_parts),
            tool_calls=assembler.complete(),
            model=data.get("modelVersion") or self.model.id,
            usage=data.get("usageMetadata"),
        )
