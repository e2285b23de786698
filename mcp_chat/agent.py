import asyncio
import logging
import time
from typing import Any, Callable, Optional

import httpx

from mcp_chat.adaptors import get_adaptor
from mcp_chat.config import MAX_RECURSION_DEPTH, SessionContext
from mcp_chat.context import build_context
from mcp_chat.exceptions import ConfigurationError, RequestCancelled, ToolArgumentsError
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
    HookRegistry,
    Middleware,
    OnCancelEventData,
    OnToolErrorEventData,
    notify,
)
from mcp_chat.json_repair import parse_tool_arguments
from mcp_chat.model import ModelResponse
from mcp_chat.tool_handler import handle_tool_call
from mcp_chat.tools import ToolDefinition, ToolExecutor, find_tool
from mcp_chat.transport import CancellationToken

logger = logging.getLogger(__name__)


def max_depth_marker(depth: int) -> str:
    return f"\n\n[Maximum tool call rounds reached ({depth})]"


class ChatAgent:
    """Drives one conversation request through model turns and tool rounds.

    Each top-level request truncates the history once, snapshots the tool
    catalog once, then alternates between a model turn and the tools that turn
    asked for until the model answers without tools, the round limit is hit,
    the caller cancels, or the provider fails.

    Args:
        executor: Tool executor; supplies the catalog and runs tools.
        hooks: Optional HookRegistry shared with other agents.
        middlewares: Middleware instances registered on the hook registry.
        max_recursion_depth: Maximum number of model turns that may run tools.
        client: Optional shared ``httpx.AsyncClient`` for provider requests.
    """

    def __init__(
        self,
        executor: Optional[ToolExecutor] = None,
        hooks: Optional[HookRegistry] = None,
        middlewares: Optional[list[Middleware]] = None,
        max_recursion_depth: int = MAX_RECURSION_DEPTH,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.executor = executor
        self.max_recursion_depth = max_recursion_depth
        self.client = client

        self.hooks = hooks if hooks is not None else HookRegistry()
        for middleware in middlewares or []:
            self.hooks.register_middleware(middleware)

    def hook(self, hook_name: str):
        """Decorator for registering hooks directly on the agent.

        Usage:
            agent = ChatAgent(executor=executor)

            @agent.hook('after_tool_call')
            async def log_tool(event):
                print(f"Tool: {event.tool_call.name}")
        """
        return self.hooks.on(hook_name)

    def send(
        self, messages: list[Message], session: SessionContext, **kwargs: Any
    ) -> Execution:
        """Run ``send_conversation`` synchronously."""
        return asyncio.run(self.send_conversation(messages, session, **kwargs))

    async def send_conversation(
        self,
        messages: list[Message],
        session: SessionContext,
        *,
        on_progress: Optional[Callable[[ProgressEvent], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
        on_complete: Optional[Callable[[ModelResponse], Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
        tool_catalog: Optional[list[ToolDefinition]] = None,
    ) -> Execution:
        """Send a conversation and run tool rounds until the model is done.

        Args:
            messages: Conversation history ending with the new user turn.
            session: Provider, model and sampling snapshot for this request.
            on_progress: Receives a ProgressEvent for every visible change;
                passing it switches the provider request to streaming.
            on_error: Called with the exception when the provider fails.
            on_complete: Called once with the final ModelResponse, carrying
                every tool result of the request.
            cancel_token: Aborts the request; the turn ends as cancelled.
            tool_catalog: Explicit tool snapshot; defaults to the executor's
                active tools.

        Returns:
            The Execution, in state ``completed``, ``cancelled`` or ``failed``.

        Raises:
            ConfigurationError: If the session has no usable provider or model.
        """
        session = self._check_session(session)
        adaptor = get_adaptor(session.provider, session.model, client=self.client)

        start_time = time.time()
        history = build_context(messages, session.context_length)
        catalog = await self._snapshot_catalog(tool_catalog)
        tools = adaptor.convert_tools(catalog)

        execution = Execution(messages=list(history))
        execution.metadata.update(
            provider=session.provider.id, model=session.model.id, usage=[]
        )
        logger.info(
            f"Sending {len(history)} of {len(messages)} messages to "
            f"{adaptor.name}/{session.model.id} with {len(catalog)} tools"
        )

        await self.hooks.trigger(
            "before_run",
            BeforeRunEventData(agent=self, messages=history, tools=catalog),
        )

        async def forward_progress(event: ProgressEvent) -> None:
            event.tool_call_results = list(execution.tool_call_results)
            await notify(on_progress, event)

        depth = 1
        pending: Optional[StreamState] = None
        try:
            while True:
                iteration_start = time.time()
                await self.hooks.trigger(
                    "before_iteration",
                    BeforeIterationEventData(execution=execution, depth=depth),
                )

                execution.state = "streaming"
                execution.iterations = depth
                pending = StreamState(cancel_token=cancel_token)

                await self.hooks.trigger(
                    "before_model_call",
                    BeforeModelCallEventData(
                        execution=execution,
                        messages=execution.messages,
                        tools=tools,
                        depth=depth,
                    ),
                )

                model_start = time.time()
                response = await adaptor.call(
                    execution.messages,
                    tools,
                    on_progress=forward_progress if on_progress is not None else None,
                    temperature=session.temperature,
                    cancel_token=cancel_token,
                    state=pending,
                    timeout=session.timeout,
                )
                model_time = (time.time() - model_start) * 1000
                if response.usage:
                    execution.metadata["usage"].append(response.usage)

                await self.hooks.trigger(
                    "after_model_call",
                    AfterModelCallEventData(
                        execution=execution,
                        model_response=response,
                        response_time_ms=model_time,
                    ),
                )

                if not response.tool_calls:
                    pending = None
                    execution.messages.append(
                        Message(
                            role="assistant",
                            content=response.content,
                            reasoning_content=response.reasoning_content,
                        )
                    )
                    final = self._complete(execution, response, response.content)
                    break

                # Tool round
                execution.state = "tools_pending"
                execution.tool_calls.extend(response.tool_calls)
                tool_turn = Message(
                    role="assistant",
                    content=response.content,
                    reasoning_content=response.reasoning_content,
                    tool_calls=response.tool_calls,
                )
                execution.messages.append(tool_turn)
                pending = None
                logger.info(
                    f"Round {depth}: running {len(response.tool_calls)} tool call(s)"
                )

                await self._emit(on_progress, execution, response, tool_calls_processing=True)
                for index, tool_call in enumerate(response.tool_calls):
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    result = await self._run_tool(
                        execution, response, tool_call, index, depth, catalog,
                        on_progress, cancel_token,
                    )
                    execution.tool_call_results.append(result)
                    execution.messages.append(result.to_message())
                await self._emit(on_progress, execution, response, tool_calls_processing=False)

                await self.hooks.trigger(
                    "after_iteration",
                    AfterIterationEventData(
                        execution=execution,
                        depth=depth,
                        elapsed_time_ms=(time.time() - iteration_start) * 1000,
                    ),
                )

                if depth >= self.max_recursion_depth:
                    logger.warning(
                        f"Stopping after {depth} tool rounds; the model still requested tools"
                    )
                    tool_turn.content += max_depth_marker(self.max_recursion_depth)
                    final = self._complete(execution, response, tool_turn.content)
                    break

                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                depth += 1

        except RequestCancelled as e:
            self._cancel(execution, pending)
            await self.hooks.trigger(
                "on_cancel", OnCancelEventData(execution=execution, reason=str(e))
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"{adaptor.name} request failed: {e}")
            execution.state = "failed"
            execution.error = str(e)
            execution.response = str(e)
            execution.messages.append(
                Message(role="assistant", content=str(e), status="error")
            )
            await notify(on_error, e)
        else:
            await notify(on_complete, final)

        total_time = (time.time() - start_time) * 1000
        await self.hooks.trigger(
            "after_run",
            AfterRunEventData(execution=execution, total_time_ms=total_time),
        )
        return execution

    def _check_session(self, session: SessionContext) -> SessionContext:
        if session.provider is None:
            raise ConfigurationError("No provider selected for this session")
        if not session.provider.enabled:
            raise ConfigurationError(f"Provider '{session.provider.id}' is disabled")
        if session.model is None:
            raise ConfigurationError("No model selected for this session")
        return session

    async def _snapshot_catalog(
        self, tool_catalog: Optional[list[ToolDefinition]]
    ) -> list[ToolDefinition]:
        if tool_catalog is not None:
            return list(tool_catalog)
        if self.executor is None:
            return []
        try:
            return list(await self.executor.list_active_tools())
        except Exception as e:
            logger.warning(f"Could not fetch the tool catalog, continuing without tools: {e}")
            return []

    def _complete(
        self, execution: Execution, response: ModelResponse, content: str
    ) -> ModelResponse:
        execution.state = "completed"
        execution.response = content
        execution.reasoning_content = response.reasoning_content
        return ModelResponse(
            content=content,
            reasoning_content=response.reasoning_content,
            tool_calls=response.tool_calls,
            model=response.model,
            usage=response.usage,
            tool_call_results=list(execution.tool_call_results),
        )

    def _cancel(self, execution: Execution, pending: Optional[StreamState]) -> None:
        execution.state = "cancelled"
        if pending is not None:
            # Cancelled while streaming: keep what arrived so far
            execution.messages.append(
                Message(
                    role="assistant",
                    content=pending.content,
                    reasoning_content=pending.reasoning_content,
                    status="cancelled",
                )
            )
            execution.response = pending.content
            execution.reasoning_content = pending.reasoning_content
        else:
            last = next(
                (m for m in reversed(execution.messages) if m.role == "assistant"), None
            )
            if last is not None:
                last.status = "cancelled"
                execution.response = last.content
        logger.info(f"Request cancelled at round {execution.iterations}")

    async def _emit(
        self,
        on_progress: Optional[Callable],
        execution: Execution,
        response: ModelResponse,
        **fields: Any,
    ) -> None:
        if on_progress is None:
            return
        await notify(
            on_progress,
            ProgressEvent(
                content=response.content,
                reasoning_content=response.reasoning_content,
                tool_calls=[tc.copy() for tc in response.tool_calls],
                tool_call_results=list(execution.tool_call_results),
                **fields,
            ),
        )

    async def _run_tool(
        self,
        execution: Execution,
        response: ModelResponse,
        tool_call: ToolCall,
        index: int,
        depth: int,
        catalog: list[ToolDefinition],
        on_progress: Optional[Callable],
        cancel_token: Optional[CancellationToken],
    ) -> ToolResult:
        hook_response = await self.hooks.trigger(
            "before_tool_call",
            BeforeToolCallEventData(
                execution=execution, tool_call=tool_call, tool_index=index, depth=depth
            ),
        )

        async def on_status(status: ToolCallStatus) -> None:
            await self._emit(on_progress, execution, response, tool_call_status=status)

        tool_start = time.time()
        # Check for skip action (e.g., cached result)
        if (
            hook_response
            and hook_response.action == "skip"
            and hook_response.cached_result is not None
        ):
            result = self._cached_result(tool_call, catalog, hook_response.cached_result)
        else:
            result = await handle_tool_call(
                tool_call, catalog, self.executor, on_status=on_status, cancel_token=cancel_token
            )
        tool_time = (time.time() - tool_start) * 1000

        if not result.success:
            await self.hooks.trigger(
                "on_tool_error",
                OnToolErrorEventData(
                    execution=execution,
                    tool_call=tool_call,
                    tool_result=result,
                    error_message=result.error or "",
                ),
            )

        await self.hooks.trigger(
            "after_tool_call",
            AfterToolCallEventData(
                execution=execution,
                tool_call=tool_call,
                tool_result=result,
                execution_time_ms=tool_time,
            ),
        )
        return result

    def _cached_result(
        self, tool_call: ToolCall, catalog: list[ToolDefinition], cached: Any
    ) -> ToolResult:
        tool = find_tool(catalog, tool_call.name)
        try:
            parameters = parse_tool_arguments(tool_call.arguments_text)
        except ToolArgumentsError:
            parameters = {}
        return ToolResult(
            tool_call_id=tool_call.id,
            tool_id=tool_call.name,
            tool_name=tool.name if tool else tool_call.name,
            parameters=parameters,
            result=cached,
        )


async def send_conversation(
    messages: list[Message],
    session: SessionContext,
    *,
    executor: Optional[ToolExecutor] = None,
    client: Optional[httpx.AsyncClient] = None,
    **kwargs: Any,
) -> Execution:
    """Send one request with a throwaway ChatAgent.

    Keyword arguments are those of ``ChatAgent.send_conversation``.
    """
    agent = ChatAgent(executor=executor, client=client)
    return await agent.send_conversation(messages, session, **kwargs)
