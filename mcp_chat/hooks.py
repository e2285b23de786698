"""Hook points of a conversation request.

ChatAgent reports each stage of ``send_conversation`` (request start and end,
every recursion level, every provider turn, every tool call, cancellation)
to a HookRegistry. Handlers observe; a ``before_tool_call`` handler may also
answer a tool call from cache. Middleware groups related handlers on one
object. Caller callbacks (``on_progress``, ``on_complete``, ``on_error``) go
through ``notify`` instead, which never lets a UI error fail the request.
"""

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class HookEvent(str, Enum):
    """Available hook points in a conversation request."""

    BEFORE_RUN = "before_run"
    AFTER_RUN = "after_run"

    BEFORE_ITERATION = "before_iteration"
    AFTER_ITERATION = "after_iteration"

    BEFORE_MODEL_CALL = "before_model_call"
    AFTER_MODEL_CALL = "after_model_call"

    BEFORE_TOOL_CALL = "before_tool_call"
    AFTER_TOOL_CALL = "after_tool_call"
    ON_TOOL_ERROR = "on_tool_error"

    ON_CANCEL = "on_cancel"


# ============================================================================
# Hook Event Data Classes
# ============================================================================


@dataclass
class BeforeRunEventData:
    """History truncated, catalog snapshotted, first model turn not yet sent."""

    agent: Any  # ChatAgent instance
    messages: List[Any]  # history after context truncation
    tools: List[Any]  # ToolDefinition snapshot
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class AfterRunEventData:
    """Called once the request reached a terminal state."""

    execution: Any  # Execution instance
    total_time_ms: float
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class BeforeIterationEventData:
    """Called before each recursion level."""

    execution: Any
    depth: int


@dataclass
class AfterIterationEventData:
    """Called after a recursion level ran its tools."""

    execution: Any
    depth: int
    elapsed_time_ms: float


@dataclass
class BeforeModelCallEventData:
    """Provider request about to go out at ``depth``."""

    execution: Any
    messages: List[Any]  # List of Message objects
    tools: List[Dict[str, Any]]  # provider-formatted tools
    depth: int


@dataclass
class AfterModelCallEventData:
    """Called after the provider finished a turn."""

    execution: Any
    model_response: Any  # ModelResponse object
    response_time_ms: float


@dataclass
class BeforeToolCallEventData:
    """Tool call resolved from the model turn, not yet executed."""

    execution: Any
    tool_call: Any  # ToolCall object
    tool_index: int
    depth: int


@dataclass
class AfterToolCallEventData:
    """Called after a tool invocation produced a result."""

    execution: Any
    tool_call: Any
    tool_result: Any  # ToolResult object
    execution_time_ms: float


@dataclass
class OnToolErrorEventData:
    """Called when a tool invocation ended with status "error"."""

    execution: Any
    tool_call: Any
    tool_result: Any
    error_message: str


@dataclass
class OnCancelEventData:
    """Called when the request was cancelled by the caller."""

    execution: Any
    reason: str


# ============================================================================
# Hook Response
# ============================================================================


@dataclass
class HookResponse:
    """What a hook can return to influence execution."""

    action: Optional[str] = None  # 'skip' on before_tool_call
    cached_result: Any = None  # Result to use instead of invoking the tool

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["HookResponse"]:
        """Convert dict to HookResponse."""
        if data is None:
            return None
        if isinstance(data, HookResponse):
            return data
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# ============================================================================
# Hook Registry
# ============================================================================

HookName = Union[str, HookEvent]


class HookRegistry:
    """Handlers for the points of a conversation request, in registration order.

    One registry may be shared by several ChatAgents. Handlers receive the
    event dataclass for their hook and may be plain functions or coroutines.
    Only ``before_tool_call`` acts on a returned value: a
    ``{"action": "skip", "cached_result": ...}`` answer replaces the tool
    invocation.

    Usage:
        hooks = HookRegistry()

        @hooks.on(HookEvent.AFTER_TOOL_CALL)
        def log_tool(event):
            print(event.tool_call.name, event.tool_result.status)

        agent = ChatAgent(executor=executor, hooks=hooks)
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {
            event.value: [] for event in HookEvent
        }

    @staticmethod
    def _name(hook_name: HookName) -> str:
        return hook_name.value if isinstance(hook_name, HookEvent) else hook_name

    def on(self, hook_name: HookName):
        """Decorator form of ``register_handler``."""

        def decorator(func: Callable) -> Callable:
            self.register_handler(hook_name, func)
            return func

        return decorator

    def register_handler(self, hook_name: HookName, handler: Callable) -> None:
        """Add ``handler`` to a hook.

        Raises:
            ValueError: If ``hook_name`` is not a HookEvent value.
        """
        name = self._name(hook_name)
        if name not in self._handlers:
            valid_hooks = [e.value for e in HookEvent]
            raise ValueError(f"Invalid hook name '{name}'. Valid hooks: {valid_hooks}")
        self._handlers[name].append(handler)

    def register_middleware(self, middleware: "Middleware") -> None:
        """Register the hook methods a Middleware subclass overrides."""
        for event in HookEvent:
            override = getattr(type(middleware), event.value, None)
            if override is None or override is getattr(Middleware, event.value):
                continue
            self.register_handler(event, getattr(middleware, event.value))

    async def trigger(self, hook_name: HookName, event_data: Any) -> Optional[HookResponse]:
        """Run the handlers of a hook until one answers.

        A raising handler is logged and skipped; the request carries on.

        Returns:
            The first non-None answer as a HookResponse, or None.
        """
        name = self._name(hook_name)
        for handler in self._handlers.get(name, []):
            try:
                result = handler(event_data)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.warning(f"Hook '{name}' handler {_label(handler)} raised exception: {e}")
                continue
            if result is not None:
                return HookResponse.from_dict(result)

        return None

    def has_handlers(self, hook_name: HookName) -> bool:
        return bool(self._handlers.get(self._name(hook_name)))

    def clear(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()


def _label(callback: Callable) -> str:
    return repr(getattr(callback, "__qualname__", callback))


async def notify(callback: Optional[Callable], event: Any) -> None:
    """Hand ``event`` to a caller callback (sync or async); its errors are logged, not raised."""
    if callback is None:
        return
    try:
        result = callback(event)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(f"Callback {_label(callback)} raised exception: {e}")


# ============================================================================
# Middleware
# ============================================================================


class Middleware:
    """Stateful hook handler: override the methods for the hooks you need.

    Only overridden methods are registered, so a meter that counts tool calls
    costs nothing on model turns.

    Usage:
        class ToolMeter(Middleware):
            def __init__(self):
                self.count = 0

            async def after_tool_call(self, event):
                self.count += 1

        agent = ChatAgent(executor=executor, middlewares=[ToolMeter()])
    """

    async def before_run(self, event: BeforeRunEventData) -> Optional[Dict]:
        """History is truncated and the tool catalog fetched."""

    async def after_run(self, event: AfterRunEventData) -> Optional[Dict]:
        """The request is completed, cancelled or failed."""

    async def before_iteration(self, event: BeforeIterationEventData) -> Optional[Dict]:
        pass

    async def after_iteration(self, event: AfterIterationEventData) -> Optional[Dict]:
        pass

    async def before_model_call(self, event: BeforeModelCallEventData) -> Optional[Dict]:
        """The provider request body is about to be sent."""

    async def after_model_call(self, event: AfterModelCallEventData) -> Optional[Dict]:
        pass

    async def before_tool_call(self, event: BeforeToolCallEventData) -> Optional[Dict]:
        """Return ``{"action": "skip", "cached_result": ...}`` to bypass the tool."""

    async def after_tool_call(self, event: AfterToolCallEventData) -> Optional[Dict]:
        pass

    async def on_tool_error(self, event: OnToolErrorEventData) -> Optional[Dict]:
        pass

    async def on_cancel(self, event: OnCancelEventData) -> Optional[Dict]:
        pass
