"""Tests for GeminiAdaptor."""

import json

import httpx
import pytest

from conftest import mock_client, sse_response
from mcp_chat.adaptors import get_adaptor
from mcp_chat.adaptors.gemini import GeminiAdaptor
from mcp_chat.config import ModelConfig, ProviderConfig
from mcp_chat.exceptions import ProviderError
from mcp_chat.execution import Message, StreamState, ToolCall
from mcp_chat.tools import ToolDefinition, clean_gemini_schema


def _adaptor(client=None):
    return GeminiAdaptor(
        ProviderConfig(id="gemini", api_key="g-key"),
        ModelConfig(id="gemini-2.5-flash", max_tokens=512),
        client=client,
    )


def _frame(*parts):
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


class TestGeminiAdaptorInit:
    def test_defaults(self):
        adaptor = _adaptor()
        assert adaptor.base_url == "https://generativelanguage.googleapis.com/v1beta"
        assert adaptor.endpoint(False) == "/models/gemini-2.5-flash:generateContent?key=g-key"
        assert (
            adaptor.endpoint(True)
            == "/models/gemini-2.5-flash:streamGenerateContent?alt=sse&key=g-key"
        )

    def test_key_from_google_env(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "env-key")
        adaptor = get_adaptor(ProviderConfig(id="gemini"), ModelConfig(id="gemini-pro"))
        assert isinstance(adaptor, GeminiAdaptor)
        assert adaptor.api_key == "env-key"

    def test_key_not_sent_as_header(self):
        assert _adaptor().headers() == {"Content-Type": "application/json"}


class TestConvertMessages:
    def test_roles_and_function_parts(self):
        messages = [
            Message(role="user", content="Add 2 and 2"),
            Message(
                role="assistant",
                content="",
                tool_calls=[ToolCall(id="call_calc_0", name="calculator", arguments_text='{"a": 2, "b": 2}')],
            ),
            Message(role="tool", content='{"success": true, "result": 4}', tool_call_id="call_calc_0"),
        ]
        contents = _adaptor()._convert_messages(messages)

        assert contents[0] == {"role": "user", "parts": [{"text": "Add 2 and 2"}]}
        assert contents[1] == {
            "role": "model",
            "parts": [{"functionCall": {"name": "calculator", "args": {"a": 2, "b": 2}}}],
        }
        assert contents[2] == {
            "role": "user",
            "parts": [
                {
                    "functionResponse": {
                        "name": "calculator",
                        "response": {"result": '{"success": true, "result": 4}'},
                    }
                }
            ],
        }

    def test_unknown_tool_call_id(self):
        contents = _adaptor()._convert_messages(
            [Message(role="tool", content="x", tool_call_id="missing")]
        )
        assert contents[0]["parts"][0]["functionResponse"]["name"] == "unknown"

    def test_build_request(self):
        tool = ToolDefinition(
            id="search",
            parameters={
                "properties": {"q": {"type": "string", "title": "Q", "default": ""}},
                "required": ["q"],
            },
        )
        adaptor = _adaptor()
        payload = adaptor.build_request(
            [Message(role="user", content="Hi")], adaptor.convert_tools([tool]), 0.3, stream=True
        )

        assert payload["generationConfig"] == {"temperature": 0.3, "maxOutputTokens": 512}
        declaration = payload["tools"][0]["functionDeclarations"][0]
        assert declaration["name"] == "search"
        assert declaration["parameters"]["properties"] == {"q": {"type": "string"}}
        assert "stream" not in payload


class TestCleanSchema:
    def test_nullable_any_of(self):
        schema = {
            "type": "object",
            "additionalProperties": False,
            "properties": {"limit": {"anyOf": [{"type": "integer"}, {"type": "null"}]}},
        }
        assert clean_gemini_schema(schema) == {
            "type": "object",
            "properties": {"limit": {"type": "integer", "nullable": True}},
        }

    def test_tool_without_properties_has_no_parameters(self):
        declarations = _adaptor().convert_tools([ToolDefinition(id="now")])
        assert "parameters" not in declarations[0]["functionDeclarations"][0]


class TestParseFrame:
    def test_incremental_fragments(self):
        adaptor = _adaptor()
        state = StreamState()
        adaptor.parse_frame(_frame({"text": "The answer"}), state)
        adaptor.parse_frame(_frame({"text": " is 4."}), state)
        assert state.content == "The answer is 4."

    def test_cumulative_frames(self):
        adaptor = _adaptor()
        state = StreamState()
        assert adaptor.parse_frame(_frame({"text": "The answer"}), state)
        assert adaptor.parse_frame(_frame({"text": "The answer is 4."}), state)
        assert not adaptor.parse_frame(_frame({"text": "The answer is 4."}), state)
        assert state.content == "The answer is 4."

    def test_thought_parts_are_reasoning(self):
        state = StreamState()
        _adaptor().parse_frame(_frame({"text": "pondering", "thought": True}, {"text": "Hi"}), state)
        assert state.reasoning_content == "pondering"
        assert state.content == "Hi"

    def test_function_calls(self):
        adaptor = _adaptor()
        state = StreamState()
        adaptor.parse_frame(
            _frame(
                {"functionCall": {"name": "calculator", "args": {"a": 2}}},
                {"functionCall": {"name": "clock", "args": {}}},
            ),
            state,
        )
        assert [tc.name for tc in state.tool_calls] == ["calculator", "clock"]
        assert [tc.id for tc in state.tool_calls] == ["call_calculator_0", "call_clock_1"]
        assert json.loads(state.tool_calls[0].arguments_text) == {"a": 2}

    def test_frame_without_candidates(self):
        assert not _adaptor().parse_frame({"usageMetadata": {"totalTokenCount": 3}}, StreamState())


class TestParseResponse:
    def test_text_and_usage(self):
        response = _adaptor().parse_response(
            {
                "candidates": [{"content": {"parts": [{"text": "Hello"}, {"text": " world"}]}}],
                "usageMetadata": {"totalTokenCount": 9},
                "modelVersion": "gemini-2.5-flash-001",
            }
        )
        assert response.content == "Hello world"
        assert response.usage == {"totalTokenCount": 9}
        assert response.model == "gemini-2.5-flash-001"
        assert response.type == "final_response"

    def test_function_call(self):
        response = _adaptor().parse_response(
            _frame({"functionCall": {"name": "calculator", "args": {"a": 2, "b": 2, "op": "add"}}})
        )
        assert response.type == "tool_call"
        assert json.loads(response.tool_calls[0].arguments_text) == {"a": 2, "b": 2, "op": "add"}


class TestGeminiAdaptorCall:
    @pytest.mark.asyncio
    async def test_streaming_call(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return sse_response(
                _frame({"text": "Hel"}),
                _frame({"text": "lo"}),
                done=False,
            )

        response = await _adaptor(mock_client(handler)).call(
            [Message(role="user", content="Hi")], on_progress=lambda e: None
        )

        assert response.content == "Hello"
        url = requests[0].url
        assert url.path == "/v1beta/models/gemini-2.5-flash:streamGenerateContent"
        assert url.params["alt"] == "sse"
        assert url.params["key"] == "g-key"
        assert "contents" in json.loads(requests[0].content)

    @pytest.mark.asyncio
    async def test_error_list_body(self):
        def handler(request):
            return httpx.Response(400, json=[{"error": {"code": 400, "message": "API key not valid"}}])

        with pytest.raises(ProviderError, match="API key not valid"):
            await _adaptor(mock_client(handler)).call([Message(role="user", content="Hi")])
