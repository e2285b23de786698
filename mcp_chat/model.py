import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

import httpx

from mcp_chat.assembler import ToolCallAssembler
from mcp_chat.config import (
    API_KEY_ENV_VARS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT,
    ModelConfig,
    ProviderConfig,
)
from mcp_chat.exceptions import ConfigurationError
from mcp_chat.execution import Message, StreamState, ToolCall, ToolResult
from mcp_chat.hooks import notify
from mcp_chat.tools import ToolDefinition
from mcp_chat.transport import CancellationToken, HTTPTransport

logger = logging.getLogger(__name__)


@dataclass
class ModelResponse:
    """Canonical result of one model turn, whatever the provider."""

    content: str = ""
    reasoning_content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str = ""
    usage: Optional[dict] = None
    tool_call_results: list[ToolResult] = field(default_factory=list)

    @property
    def type(self) -> Literal["final_response", "tool_call"]:
        return "tool_call" if self.tool_calls else "final_response"


class ModelAdaptor(ABC):
    """Generic driver for one provider wire protocol.

    ``call`` owns the request/response cycle. Subclasses only describe the
    protocol: where to POST (``endpoint``), how to authenticate
    (``headers``), how to shape the body (``build_request``,
    ``convert_tools``) and how to read it back (``parse_frame`` for stream
    frames, ``parse_response`` for a complete JSON body).

    Args:
        provider: Provider snapshot (base URL, API key).
        model: Model snapshot.
        client: Optional shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        model: ModelConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if provider.requires_api_key and not provider.api_key:
            raise ConfigurationError(
                f"{provider.name or provider.id} API key not provided. "
                f"Configure it on the provider or set the "
                f"{API_KEY_ENV_VARS[provider.kind]} environment variable."
            )
        if not provider.base_url:
            raise ConfigurationError(f"No base URL configured for provider '{provider.id}'")

        self.provider = provider
        self.model = model
        self.transport = HTTPTransport(client, provider_name=self.name)

    @property
    def name(self) -> str:
        return self.provider.name or self.provider.id

    @property
    def base_url(self) -> str:
        return self.provider.base_url

    @property
    def api_key(self) -> Optional[str]:
        return self.provider.api_key

    async def call(
        self,
        messages: list[Message],
        tools: Optional[list[dict]] = None,
        *,
        on_progress: Optional[Callable] = None,
        on_complete: Optional[Callable] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        cancel_token: Optional[CancellationToken] = None,
        state: Optional[StreamState] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> ModelResponse:
        """Run one model turn.

        Streams when ``on_progress`` is given, otherwise waits for the full
        response.

        Args:
            messages: Canonical conversation to send.
            tools: Tool catalog already formatted by ``convert_tools``.
            on_progress: Called with a ProgressEvent for every stream frame
                that changed content, reasoning or tool calls.
            on_complete: Called once with the final ModelResponse.
            temperature: Sampling temperature.
            cancel_token: Aborts the request when fired.
            state: StreamState to accumulate into; the caller keeps it to
                recover partial content after a cancellation.
            timeout: Request timeout in seconds.

        Returns:
            The canonical ModelResponse.

        Raises:
            ProviderError: If the request fails.
            RequestCancelled: If ``cancel_token`` fires.
        """
        stream = on_progress is not None
        tools = tools or []
        if state is None:
            state = StreamState(cancel_token=cancel_token)

        payload = self.build_request(messages, tools, temperature, stream)
        url = f"{self.base_url}{self.endpoint(stream)}"
        logger.debug(
            f"{self.name} request: model={self.model.id} messages={len(messages)} "
            f"tools={len(tools)} temperature={temperature} stream={stream}"
        )

        if stream:
            async def on_frame(data: dict) -> None:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                if self._apply_frame(data, state):
                    await notify(on_progress, state.snapshot())

            await self.transport.post(
                url,
                payload,
                self.headers(),
                stream=True,
                on_frame=on_frame,
                cancel_token=cancel_token,
                timeout=timeout,
            )
            result = self.finish_stream(state)
        else:
            data = await self.transport.post(
                url,
                payload,
                self.headers(),
                cancel_token=cancel_token,
                timeout=timeout,
            )
            result = self.parse_response(data)

        result.model = result.model or self.model.id
        await notify(on_complete, result)
        return result

    def _apply_frame(self, data: dict, state: StreamState) -> bool:
        try:
            return self.parse_frame(data, state)
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"{self.name}: skipping unprocessable stream frame ({e}): {data!r}")
            return False

    def finish_stream(self, state: StreamState) -> ModelResponse:
        """Freeze the accumulated stream state into a ModelResponse."""
        tool_calls = ToolCallAssembler(state.tool_calls).complete()
        return ModelResponse(
            content=state.content,
            reasoning_content=state.reasoning_content,
            tool_calls=tool_calls,
            model=self.model.id,
        )

    def headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @abstractmethod
    def endpoint(self, stream: bool) -> str:
        """Path (and query) appended to the provider base URL."""

    @abstractmethod
    def build_request(
        self,
        messages: list[Message],
        tools: list[dict],
        temperature: float,
        stream: bool,
    ) -> dict:
        """Build the JSON request body."""

    @abstractmethod
    def convert_tools(self, catalog: list[ToolDefinition]) -> list[dict]:
        """Format the tool catalog for this provider."""

    @abstractmethod
    def parse_frame(self, data: dict, state: StreamState) -> bool:
        """Fold one decoded stream frame into ``state``.

        Returns:
            True when visible state (content, reasoning, tool calls) changed.
        """

    @abstractmethod
    def parse_response(self, data: dict) -> ModelResponse:
        """Parse a complete (non-streaming) response body."""
