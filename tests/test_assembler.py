from mcp_chat.assembler import ToolCallAssembler, ToolCallDelta, merge_tool_call_delta
from mcp_chat.execution import ToolCall


class TestMergeToolCallDelta:
    def test_fragments_by_index_form_one_call(self):
        calls = []
        merge_tool_call_delta(calls, ToolCallDelta(index=0, name="foo"))
        merge_tool_call_delta(calls, ToolCallDelta(index=0, arguments='{"x":'))
        merge_tool_call_delta(calls, ToolCallDelta(index=0, arguments="1}"))

        assert len(calls) == 1
        assert calls[0].name == "foo"
        assert calls[0].arguments_text == '{"x":1}'

    def test_id_backfilled_without_losing_arguments(self):
        calls = []
        merge_tool_call_delta(calls, ToolCallDelta(index=0, arguments='{"a"'))
        merge_tool_call_delta(calls, ToolCallDelta(index=0, id="call_9", arguments=": 1}"))

        assert calls[0].id == "call_9"
        assert calls[0].arguments_text == '{"a": 1}'

    def test_lookup_by_id_when_no_index(self):
        calls = [ToolCall(id="toolu_1", name="search", index=0)]
        merge_tool_call_delta(calls, ToolCallDelta(id="toolu_1", arguments='{"q": "x"}'))

        assert len(calls) == 1
        assert calls[0].arguments_text == '{"q": "x"}'

    def test_unseen_key_creates_entry(self):
        calls = []
        merge_tool_call_delta(calls, ToolCallDelta(index=0, name="a"))
        merge_tool_call_delta(calls, ToolCallDelta(index=1, name="b"))
        merge_tool_call_delta(calls, ToolCallDelta(id="late", name="c"))

        assert [c.name for c in calls] == ["a", "b", "c"]
        assert calls[2].index == 2

    def test_name_replaced_not_appended(self):
        calls = []
        merge_tool_call_delta(calls, ToolCallDelta(index=0, name="get_weather"))
        merge_tool_call_delta(calls, ToolCallDelta(index=0, name="get_weather"))

        assert calls[0].name == "get_weather"

    def test_replace_arguments(self):
        calls = []
        merge_tool_call_delta(calls, ToolCallDelta(index=0, arguments='{"partial"'))
        merge_tool_call_delta(
            calls, ToolCallDelta(index=0, arguments='{"full": true}', replace_arguments=True)
        )

        assert calls[0].arguments_text == '{"full": true}'

    def test_invalid_json_is_kept_as_is(self):
        calls = []
        merge_tool_call_delta(calls, ToolCallDelta(index=0, arguments="{not json"))

        assert calls[0].arguments_text == "{not json"


class TestToolCallAssembler:
    def test_add_returns_the_merged_call(self):
        assembler = ToolCallAssembler()
        first = assembler.add(ToolCallDelta(index=0, id="call_1", name="echo"))
        second = assembler.add(ToolCallDelta(index=0, arguments="{}"))

        assert first is second
        assert len(assembler) == 1

    def test_complete_fills_missing_ids_and_sorts(self):
        assembler = ToolCallAssembler()
        assembler.add(ToolCallDelta(index=1, name="second", arguments="{}"))
        assembler.add(ToolCallDelta(index=0, id="call_a", name="first", arguments="{}"))

        calls = assembler.complete()

        assert [c.name for c in calls] == ["first", "second"]
        assert calls[0].id == "call_a"
        assert calls[1].id == "call_second_0"

    def test_shares_list_with_caller(self):
        calls = []
        ToolCallAssembler(calls).add(ToolCallDelta(index=0, name="echo"))

        assert len(calls) == 1
