import json
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from mcp_chat.transport import CancellationToken


@dataclass
class ToolCall:
    id: str
    name: str = ""
    arguments_text: str = ""  # raw accumulated text, JSON only once the turn completes
    index: int = 0
    type: str = "function"

    def copy(self) -> "ToolCall":
        return replace(self)


@dataclass
class Message:
    role: str  # "user" | "assistant" | "tool"
    content: str
    reasoning_content: str = ""
    tool_calls: Optional[list[ToolCall]] = None  # For assistant messages with tool calls
    tool_call_id: Optional[str] = None  # For tool messages
    status: str = "success"  # "success" | "error" | "cancelled" | "pending"
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    tool_id: str
    tool_name: str
    parameters: dict
    result: Any = None
    status: str = "success"  # "success" | "error"
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == "success"

    def payload(self) -> dict:
        """The structure reported back to the model in the tool turn."""
        if self.success:
            return {"success": True, "toolName": self.tool_name, "result": self.result}
        return {"success": False, "error": self.error}

    def to_message(self) -> Message:
        return Message(
            role="tool",
            content=json.dumps(self.payload(), indent=2, ensure_ascii=False, default=str),
            tool_call_id=self.tool_call_id,
        )


@dataclass
class ToolCallStatus:
    id: str
    name: str
    status: str  # "running" | "success" | "error"
    message: str = ""


@dataclass
class ProgressEvent:
    """Snapshot handed to ``on_progress`` callbacks."""

    content: str = ""
    reasoning_content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_results: list[ToolResult] = field(default_factory=list)
    tool_call_status: Optional[ToolCallStatus] = None
    tool_calls_processing: Optional[bool] = None
    message: Optional[str] = None


@dataclass
class StreamState:
    """Mutable state of one in-flight exchange."""

    content: str = ""
    reasoning_content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    cancel_token: Optional["CancellationToken"] = None

    def snapshot(self) -> ProgressEvent:
        return ProgressEvent(
            content=self.content,
            reasoning_content=self.reasoning_content,
            tool_calls=[tc.copy() for tc in self.tool_calls],
        )


@dataclass
class Execution:
    messages: list[Message] = field(default_factory=list)
    response: str = ""
    reasoning_content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_results: list[ToolResult] = field(default_factory=list)
    iterations: int = 0
    # "idle" | "streaming" | "tools_pending" | "completed" | "failed" | "cancelled"
    state: str = "idle"
    error: Optional[str] = None
    metadata: dict = field(default_factory=dict)
