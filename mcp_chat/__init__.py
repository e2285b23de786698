from mcp_chat.adaptors import (
    AnthropicAdaptor,
    DeepSeekAdaptor,
    GeminiAdaptor,
    OllamaAdaptor,
    OpenAIAdaptor,
    get_adaptor,
)
from mcp_chat.agent import ChatAgent, send_conversation
from mcp_chat.assembler import ToolCallAssembler, ToolCallDelta, merge_tool_call_delta
from mcp_chat.config import (
    ModelConfig,
    ProviderConfig,
    ProviderKind,
    SessionContext,
    UNLIMITED_CONTEXT,
)
from mcp_chat.context import build_context
from mcp_chat.exceptions import (
    ChatError,
    ConfigurationError,
    ProviderError,
    RequestCancelled,
    ToolArgumentsError,
    ToolExecutionError,
    ToolNotFound,
)
from mcp_chat.execution import (
    Execution,
    Message,
    ProgressEvent,
    StreamState,
    ToolCall,
    ToolCallStatus,
    ToolResult,
)
from mcp_chat.hooks import (
    AfterIterationEventData,
    AfterModelCallEventData,
    AfterRunEventData,
    AfterToolCallEventData,
    BeforeIterationEventData,
    BeforeModelCallEventData,
    BeforeRunEventData,
    BeforeToolCallEventData,
    HookEvent,
    HookRegistry,
    HookResponse,
    Middleware,
    OnCancelEventData,
    OnToolErrorEventData,
)
from mcp_chat.json_repair import RepairFailure, parse_tool_arguments, repair_json
from mcp_chat.model import ModelAdaptor, ModelResponse
from mcp_chat.tool_handler import handle_tool_call
from mcp_chat.tools import ToolCallOutcome, ToolDefinition, ToolExecutor
from mcp_chat.transport import CancellationToken, HTTPTransport

__all__ = [
    # Core
    "ChatAgent",
    "send_conversation",
    "Execution",
    "Message",
    "ProgressEvent",
    "StreamState",
    "ToolCall",
    "ToolCallStatus",
    "ToolResult",
    "ModelAdaptor",
    "ModelResponse",
    "CancellationToken",
    "HTTPTransport",
    "build_context",
    "handle_tool_call",
    # Adaptors
    "OpenAIAdaptor",
    "DeepSeekAdaptor",
    "OllamaAdaptor",
    "AnthropicAdaptor",
    "GeminiAdaptor",
    "get_adaptor",
    # Tools
    "ToolDefinition",
    "ToolExecutor",
    "ToolCallOutcome",
    "ToolCallAssembler",
    "ToolCallDelta",
    "merge_tool_call_delta",
    "repair_json",
    "parse_tool_arguments",
    "RepairFailure",
    # Configuration
    "ProviderConfig",
    "ProviderKind",
    "ModelConfig",
    "SessionContext",
    "UNLIMITED_CONTEXT",
    # Hooks
    "HookRegistry",
    "HookEvent",
    "HookResponse",
    "Middleware",
    # Hook Event Data
    "BeforeRunEventData",
    "AfterRunEventData",
    "BeforeIterationEventData",
    "AfterIterationEventData",
    "BeforeModelCallEventData",
    "AfterModelCallEventData",
    "BeforeToolCallEventData",
    "AfterToolCallEventData",
    "OnToolErrorEventData",
    "OnCancelEventData",
    # Exceptions
    "ChatError",
    "ConfigurationError",
    "ProviderError",
    "RequestCancelled",
    "ToolArgumentsError",
    "ToolExecutionError",
    "ToolNotFound",
]
