"""Resilient consumer for the proxy's server-sent-event stream.

Posts a chat request to ``/api/grok`` and feeds each content delta to a
callback as it arrives. Transient failures are retried with linear backoff;
``cancel()`` stops the stream immediately and is never retried.

Key behaviors:
    - Lines come from ``response.aiter_lines()``, which decodes
      incrementally and yields a final unterminated line at stream end
    - ``data: [DONE]`` ends the stream; malformed JSON payloads are skipped
    - Retry loop is an explicit ``async for`` over tenacity attempts

Cancellation:
    Each attempt runs in its own task. ``cancel()`` cancels that task and
    wakes any backoff sleep; the caller then sees StreamCancelledError.
"""

from __future__ import annotations

import asyncio
import json
import logging
import types
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from mapychat.api.mappers import message_to_upstream
from mapychat.core.config import ClientConfig
from mapychat.core.resilience import RetryConfig, linear_backoff_retrying
from mapychat.domain.entities import ChatMessage

logger = logging.getLogger(__name__)

PROXY_PATH = "/api/grok"
DONE_SENTINEL = "[DONE]"
DEFAULT_ERROR_MESSAGE = "Error en la solicitud"

DeltaCallback = Callable[[str], None]


class ProxyRequestError(Exception):
    """The proxy answered with a non-2xx status.

    Attributes:
        status_code: HTTP status from the proxy.
        message: The proxy's ``error`` string, or a generic message when the
            body could not be parsed.
    """

    def __init__(self, status_code: int, message: str = DEFAULT_ERROR_MESSAGE) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class StreamCancelledError(Exception):
    """The stream was stopped by ``cancel()``."""


@dataclass(slots=True, frozen=True)
class StreamRequest:
    """Body sent to the proxy. None fields are omitted from the JSON."""

    model: str
    system_prompt: str
    messages: Sequence[ChatMessage]
    temperature: float | None = None
    character_prompt: str | None = None
    response_level: int | None = None
    max_tokens: int | None = None

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "systemPrompt": self.system_prompt,
            "messages": [message_to_upstream(message) for message in self.messages],
        }
        optional = {
            "temperature": self.temperature,
            "characterPrompt": self.character_prompt,
            "responseLevel": self.response_level,
            "maxTokens": self.max_tokens,
        }
        body.update({key: value for key, value in optional.items() if value is not None})
        return body


@dataclass(slots=True, frozen=True)
class StreamConsumerConfig:
    """Configuration for the stream consumer.

    Attributes:
        base_url: Root URL of the proxy.
        timeout: Per-attempt read timeout (seconds).
        max_retries: Retries after the first failed attempt.
        retry_delay: Linear backoff base (seconds).
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    base_url: str = "http://localhost:8000"
    timeout: float = 180.0
    max_retries: int = 2
    retry_delay: float = 1.0
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: ClientConfig) -> StreamConsumerConfig:
        return cls(
            base_url=settings.base_url,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
        )


def data_payload(line: str) -> str | None:
    """Return the payload of an SSE ``data:`` line, or None for any other line."""
    stripped = line.strip()
    if not stripped.startswith("data:"):
        return None
    payload = stripped[len("data:") :].strip()
    return payload or None


def extract_delta(payload: str) -> str | None:
    """Return ``choices[0].delta.content`` of a chunk, or None if absent.

    Raises:
        ValueError: If ``payload`` is not valid JSON.
    """
    chunk = json.loads(payload)
    match chunk:
        case {"choices": [{"delta": {"content": str(content)}}, *_]} if content:
            return content
        case _:
            return None


def _proxy_error_message(body: bytes) -> str:
    try:
        payload = json.loads(body)
    except ValueError:
        return DEFAULT_ERROR_MESSAGE
    match payload:
        case {"error": str(message)} if message:
            return message
        case _:
            return DEFAULT_ERROR_MESSAGE


class ChatStreamConsumer:
    """Streams chat completions from the proxy with retries and cancellation.

    One consumer runs one stream at a time.
    """

    __slots__ = (
        "_cancel_event",
        "_cancelled",
        "_client",
        "_current_task",
        "config",
    )

    def __init__(self, config: StreamConsumerConfig | None = None) -> None:
        self.config = config or StreamConsumerConfig()
        self._client: httpx.AsyncClient | None = None
        self._current_task: asyncio.Task[None] | None = None
        self._cancel_event = asyncio.Event()
        self._cancelled = False

    async def __aenter__(self) -> ChatStreamConsumer:
        self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(connect=10.0, read=self.config.timeout, write=10.0, pool=10.0),
                transport=self.config.transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_streaming(self) -> bool:
        return self._current_task is not None and not self._current_task.done()

    def cancel(self) -> None:
        """Abort the in-flight attempt and any pending backoff sleep."""
        self._cancelled = True
        self._cancel_event.set()
        if self._current_task is not None and not self._current_task.done():
            self._current_task.cancel()

    async def _backoff_sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except TimeoutError:
            return

    def _raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise StreamCancelledError("Stream cancelled")

    async def stream_with_retries(self, request: StreamRequest, on_delta: DeltaCallback) -> None:
        """Stream ``request``, retrying failed attempts with linear backoff.

        Raises:
            StreamCancelledError: ``cancel()`` was called.
            ProxyRequestError: Last attempt got a non-2xx response.
            httpx.HTTPError: Last attempt failed in transport.
        """
        self._cancelled = False
        self._cancel_event = asyncio.Event()
        retrying = linear_backoff_retrying(
            RetryConfig(max_retries=self.config.max_retries, initial_delay=self.config.retry_delay),
            sleep=self._backoff_sleep,
            never_retry=(StreamCancelledError,),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    self._raise_if_cancelled()
                    await self._run_attempt(request, on_delta)
        except asyncio.CancelledError:
            if self._cancelled:
                raise StreamCancelledError("Stream cancelled") from None
            raise

    async def _run_attempt(self, request: StreamRequest, on_delta: DeltaCallback) -> None:
        task = asyncio.create_task(self.stream_once(request, on_delta))
        self._current_task = task
        try:
            await task
        finally:
            self._current_task = None

    async def stream_once(self, request: StreamRequest, on_delta: DeltaCallback) -> None:
        """Run a single streaming attempt without retries.

        Raises:
            ProxyRequestError: Proxy returned a non-2xx status.
            httpx.HTTPError: Transport failure.
        """
        client = self._ensure_client()
        async with client.stream(
            "POST",
            PROXY_PATH,
            json=request.to_json(),
            headers={"Accept": "text/event-stream"},
        ) as response:
            if not response.is_success:
                body = await response.aread()
                raise ProxyRequestError(response.status_code, _proxy_error_message(body))

            async for line in response.aiter_lines():
                payload = data_payload(line)
                if payload is None:
                    continue
                if payload == DONE_SENTINEL:
                    return

                try:
                    delta = extract_delta(payload)
                except ValueError:
                    logger.warning("stream_chunk_unparseable: payload=%s", payload[:200])
                    continue
                if delta:
                    on_delta(delta)


__all__ = [
    "DONE_SENTINEL",
    "PROXY_PATH",
    "ChatStreamConsumer",
    "ProxyRequestError",
    "StreamCancelledError",
    "StreamConsumerConfig",
    "StreamRequest",
    "data_payload",
    "extract_delta",
]
