"""Assembly of streamed tool-call fragments.

Providers stream a tool call as a series of deltas: the name usually comes
first, the id may come with it or later, and the arguments arrive as text
fragments that only form valid JSON once the turn is complete. Deltas are
keyed by ``index`` (OpenAI wire) or by ``id`` (Anthropic legacy events).
"""

from dataclasses import dataclass
from typing import Optional

from mcp_chat.execution import ToolCall


@dataclass
class ToolCallDelta:
    index: Optional[int] = None
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None
    replace_arguments: bool = False  # provider sent the complete arguments
    type: Optional[str] = None


def _find(tool_calls: list[ToolCall], delta: ToolCallDelta) -> Optional[ToolCall]:
    if delta.index is not None:
        for tool_call in tool_calls:
            if tool_call.index == delta.index:
                return tool_call
    if delta.id:
        for tool_call in tool_calls:
            if tool_call.id == delta.id:
                return tool_call
    return None


def merge_tool_call_delta(
    tool_calls: list[ToolCall], delta: ToolCallDelta
) -> list[ToolCall]:
    """Merge one delta into ``tool_calls`` and return the updated list.

    At most one entry exists per index (or per id when no index is given).
    An id arriving after arguments were accumulated under an index-only entry
    is back-filled; the name is replaced since providers resend it whole.
    """
    tool_call = _find(tool_calls, delta)
    if tool_call is None:
        index = delta.index if delta.index is not None else len(tool_calls)
        tool_call = ToolCall(id=delta.id or "", index=index)
        tool_calls.append(tool_call)

    if delta.id:
        tool_call.id = delta.id
    if delta.type:
        tool_call.type = delta.type
    if delta.name:
        tool_call.name = delta.name
    if delta.arguments:
        if delta.replace_arguments:
            tool_call.arguments_text = delta.arguments
        else:
            tool_call.arguments_text += delta.arguments

    return tool_calls


class ToolCallAssembler:
    """Stateful wrapper around ``merge_tool_call_delta`` for one model turn."""

    def __init__(self, tool_calls: Optional[list[ToolCall]] = None):
        self.tool_calls: list[ToolCall] = tool_calls if tool_calls is not None else []

    def add(self, delta: ToolCallDelta) -> ToolCall:
        merge_tool_call_delta(self.tool_calls, delta)
        return _find(self.tool_calls, delta) or self.tool_calls[-1]

    def complete(self) -> list[ToolCall]:
        """Freeze the turn: fill missing ids and return calls in index order."""
        for position, tool_call in enumerate(self.tool_calls):
            if not tool_call.id:
                tool_call.id = f"call_{tool_call.name or 'tool'}_{position}"
        return sorted(self.tool_calls, key=lambda tc: tc.index)

    def __len__(self) -> int:
        return len(self.tool_calls)
