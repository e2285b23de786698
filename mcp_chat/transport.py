"""HTTP transport shared by all provider adaptors.

Performs the POST, switches between a plain JSON response and a
``text/event-stream`` body, and aborts the request when the caller's
cancellation token fires.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, Optional

import httpx

from mcp_chat.config import DEFAULT_TIMEOUT
from mcp_chat.exceptions import ProviderError, RequestCancelled

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DEFAULT_CANCEL_REASON = "Request cancelled by user"


class CancellationToken:
    """Abort handle for one top-level request.

    Fire it with ``cancel()`` from the event loop thread. Everything running
    under ``run_cancellable`` with this token is cancelled and surfaces as
    ``RequestCancelled``.
    """

    def __init__(self):
        self._cancelled = False
        self.reason = ""
        self._callbacks: list[Callable[[], Any]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = DEFAULT_CANCEL_REASON) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        logger.info(f"Cancellation requested: {reason}")
        for callback in list(self._callbacks):
            callback()

    def register(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Run ``callback`` on cancellation. Returns a function that unregisters it."""
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelled(self.reason)


async def run_cancellable(
    awaitable: Awaitable, cancel_token: Optional[CancellationToken]
) -> Any:
    """Await ``awaitable``, aborting it when ``cancel_token`` fires.

    Raises:
        RequestCancelled: If the token fired before or while awaiting.
    """
    if cancel_token is None:
        return await awaitable
    if cancel_token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelled(cancel_token.reason)

    task = asyncio.ensure_future(awaitable)
    unregister = cancel_token.register(task.cancel)
    try:
        return await task
    except asyncio.CancelledError:
        if cancel_token.cancelled and task.cancelled():
            raise RequestCancelled(cancel_token.reason) from None
        raise
    finally:
        unregister()


class SSEDecoder:
    """Turns ``text/event-stream`` text chunks into decoded JSON payloads.

    Lines split across chunks are buffered. Blank lines, ``event:``/``id:``
    lines and comments are dropped; ``data: [DONE]`` ends the stream.
    Payloads that are not JSON objects are logged and skipped.
    """

    def __init__(self):
        self._buffer = ""
        self.done = False

    def feed(self, chunk: str) -> Iterator[dict]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        for line in lines:
            yield from self._decode_line(line)

    def flush(self) -> Iterator[dict]:
        line, self._buffer = self._buffer, ""
        yield from self._decode_line(line)

    def _decode_line(self, line: str) -> Iterator[dict]:
        line = line.strip()
        if self.done or not line.startswith("data:"):
            return
        data = line[len("data:"):].strip()
        if data == DONE_SENTINEL:
            self.done = True
            return
        try:
            payload = json.loads(data)
        except ValueError as e:
            logger.warning(f"Skipping malformed stream frame ({e}): {data[:200]!r}")
            return
        if not isinstance(payload, dict):
            logger.warning(f"Skipping non-object stream frame: {data[:200]!r}")
            return
        yield payload


def extract_error_message(data: Any) -> Optional[str]:
    """Pull the vendor's error message out of an error body, if there is one."""
    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message") or None
    if isinstance(error, str) and error:
        return error
    message = data.get("message")
    return message if isinstance(message, str) and message else None


class HTTPTransport:
    """POSTs JSON to a provider and hands back the body or its stream frames.

    Args:
        client: Optional shared ``httpx.AsyncClient``. When omitted a client
            is opened and closed around every request.
        provider_name: Used to prefix error messages.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        provider_name: str = "Provider",
    ):
        self.client = client
        self.provider_name = provider_name

    async def post(
        self,
        url: str,
        payload: dict,
        headers: dict,
        *,
        stream: bool = False,
        on_frame: Optional[Callable[[dict], Awaitable[None]]] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Optional[dict]:
        """Send the request.

        Returns:
            The decoded JSON body for non-streaming requests, None when
            streaming (frames go to ``on_frame``).

        Raises:
            ProviderError: On network failure or a non-2xx status.
            RequestCancelled: If ``cancel_token`` fires.
        """
        return await run_cancellable(
            self._post(url, payload, headers, stream, on_frame, timeout),
            cancel_token,
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.client is not None:
            yield self.client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    async def _post(
        self,
        url: str,
        payload: dict,
        headers: dict,
        stream: bool,
        on_frame: Optional[Callable[[dict], Awaitable[None]]],
        timeout: float,
    ) -> Optional[dict]:
        try:
            async with self._client() as client:
                if not stream:
                    response = await client.post(
                        url, json=payload, headers=headers, timeout=timeout
                    )
                    if not response.is_success:
                        raise self._error(response)
                    try:
                        return response.json()
                    except ValueError as e:
                        raise ProviderError(
                            f"{self.provider_name} API error: invalid JSON response ({e})",
                            status_code=response.status_code,
                            provider=self.provider_name,
                        ) from e

                async with client.stream(
                    "POST", url, json=payload, headers=headers, timeout=timeout
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        raise self._error(response)
                    await self._read_stream(response, on_frame)
                    return None
        except httpx.HTTPError as e:
            raise ProviderError(
                f"{self.provider_name} API error: {e}", provider=self.provider_name
            ) from e

    async def _read_stream(
        self,
        response: httpx.Response,
        on_frame: Optional[Callable[[dict], Awaitable[None]]],
    ) -> None:
        decoder = SSEDecoder()
        async for chunk in response.aiter_text():
            for frame in decoder.feed(chunk):
                if on_frame is not None:
                    await on_frame(frame)
            if decoder.done:
                break
        for frame in decoder.flush():
            if on_frame is not None:
                await on_frame(frame)

    def _error(self, response: httpx.Response) -> ProviderError:
        try:
            data = response.json()
        except ValueError:
            data = None
        message = extract_error_message(data) or f"HTTP error {response.status_code}"
        logger.error(
            f"{self.provider_name} request failed with status {response.status_code}: {message}"
        )
        return ProviderError(
            f"{self.provider_name} API error: {message}",
            status_code=response.status_code,
            provider=self.provider_name,
        )
