"""Asynchronous client for the xAI chat-completions API.

Opens a streaming chat-completions request and hands the live httpx response
back to the caller, who relays its bytes and closes it. Nothing here buffers
the event stream, and the provider is asked for an uncompressed body.

Key behaviors:
    - Uses one shared httpx.AsyncClient (connection pooling, keep-alive)
    - Resolves as soon as response headers arrive; the body streams lazily
    - Non-2xx responses are drained, closed and raised as UpstreamStatusError
    - Transport failures propagate as httpx.RequestError
"""

from __future__ import annotations

import json
import logging
import types
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_MAX_LOGGED_ERROR_CHARS = 300


class UpstreamStatusError(Exception):
    """The provider answered with a non-2xx status.

    Attributes:
        status_code: Provider HTTP status.
        message: Error text extracted from the provider body, for logs only.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Upstream returned {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def extract_error_message(body: bytes) -> str:
    """Pull a readable error message out of a provider error body.

    Understands ``{"error": "..."}`` and ``{"error": {"message": "..."}}``;
    anything else is returned as truncated text.
    """
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:_MAX_LOGGED_ERROR_CHARS] or "empty response body"

    if isinstance(payload, dict):
        error = payload.get("error")
        match error:
            case str() if error:
                return error
            case {"message": str(message)} if message:
                return message
    return text[:_MAX_LOGGED_ERROR_CHARS]


@dataclass(slots=True, frozen=True)
class UpstreamClientConfig:
    """Connection settings for the provider.

    Attributes:
        chat_completions_url: Full URL of the chat-completions endpoint.
        timeout: Read timeout in seconds; connect/write/pool use 10s.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    chat_completions_url: str = "https://api.x.ai/v1/chat/completions"
    timeout: float = 120.0
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)


class UpstreamClient:
    """Streaming client for the provider's chat-completions endpoint."""

    __slots__ = ("_client", "config")

    def __init__(self, config: UpstreamClientConfig | None = None) -> None:
        self.config = config or UpstreamClientConfig()
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> UpstreamClient:
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
            timeout = httpx.Timeout(
                connect=10.0,
                read=self.config.timeout,
                write=10.0,
                pool=10.0,
            )
            self._client = httpx.AsyncClient(timeout=timeout, transport=self.config.transport)
        return self._client

    async def close(self) -> None:
        """Close the connection pool. Safe to call more than once."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def open_stream(self, payload: dict[str, Any], api_key: str) -> httpx.Response:
        """POST ``payload`` and return the response with its body unread.

        The caller owns the returned response and must ``aclose()`` it.

        Raises:
            UpstreamStatusError: Provider returned a non-2xx status.
            httpx.RequestError: Connection failure or timeout before headers.
        """
        client = self._ensure_client()
        request = client.build_request(
            "POST",
            self.config.chat_completions_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
                "Accept-Encoding": "identity",
            },
            json=payload,
        )
        response = await client.send(request, stream=True)

        if not response.is_success:
            try:
                body = await response.aread()
            finally:
                await response.aclose()
            message = extract_error_message(body)
            logger.error(
                "upstream_error: status=%s model=%s message=%s",
                response.status_code,
                payload.get("model"),
                message,
            )
            raise UpstreamStatusError(response.status_code, message)

        return response


__all__ = [
    "UpstreamClient",
    "UpstreamClientConfig",
    "UpstreamStatusError",
    "extract_error_message",
]
