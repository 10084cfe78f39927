"""Reusable test utilities and helpers for MapyChat tests.

This module provides common patterns and utilities used across test files,
promoting code reuse and consistency.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from fastapi import FastAPI

from mapychat.api.dependencies import get_rate_limiter, get_settings, get_upstream_client
from mapychat.client.upstream import UpstreamClient
from mapychat.core.config import Settings, UpstreamConfig
from mapychat.core.rate_limiter import FixedWindowRateLimiter

MODEL = "grok-4-fast-reasoning"

PNG_DATA_URL = (
    "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAusB9Yl7iOsAAAAASUVORK5CYII="
)


def sse_body(*deltas: str, done: bool = True) -> bytes:
    """Encode ``deltas`` as a chat-completions event stream."""
    events = [
        "data: " + json.dumps({"choices": [{"delta": {"content": delta}}]}) + "\n\n"
        for delta in deltas
    ]
    if done:
        events.append("data: [DONE]\n\n")
    return "".join(events).encode("utf-8")


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ChunkedByteStream(httpx.AsyncByteStream):
    """Unread response body delivered in fixed-size chunks."""

    def __init__(self, body: bytes, chunk_size: int) -> None:
        self.body = body
        self.chunk_size = chunk_size

    async def __aiter__(self):
        for start in range(0, len(self.body), self.chunk_size):
            yield self.body[start : start + self.chunk_size]


class UpstreamRecorder:
    """httpx.MockTransport handler standing in for the xAI API.

    Records every request and answers with ``status`` and ``body`` as an
    unread chunked stream, or raises ``error`` when set. ``headers`` are
    added to every response.
    """

    def __init__(
        self,
        status: int = 200,
        body: bytes | None = None,
        chunk_size: int = 16,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status = status
        self.body = sse_body("hola") if body is None else body
        self.chunk_size = chunk_size
        self.headers = headers or {}
        self.requests: list[httpx.Request] = []
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        content_type = "text/event-stream" if self.status < 400 else "application/json"
        return httpx.Response(
            self.status,
            stream=ChunkedByteStream(self.body, self.chunk_size),
            headers={"Content-Type": content_type, **self.headers},
        )

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def make_settings(api_key: str | None = "test-key") -> Settings:
    """Build settings with a known upstream API key (None for a missing key)."""
    return Settings(upstream=UpstreamConfig(api_key=api_key))


def setup_dependency_overrides(
    app: FastAPI,
    settings: Settings,
    limiter: FixedWindowRateLimiter,
    upstream_client: UpstreamClient,
) -> None:
    """Set up FastAPI dependency overrides for testing.

    Args:
        app: FastAPI application instance.
        settings: Settings returned to every route.
        limiter: Rate limiter used by the proxy route.
        upstream_client: Upstream client, usually backed by httpx.MockTransport.
    """
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_upstream_client] = lambda: upstream_client


def cleanup_dependency_overrides(app: FastAPI) -> None:
    """Clean up FastAPI dependency overrides after testing."""
    app.dependency_overrides.clear()


def assert_response_structure(
    response: httpx.Response, expected_status: int = 200
) -> dict[str, Any]:
    """Assert response has expected status and return JSON data.

    Raises:
        AssertionError: If status code doesn't match or response isn't JSON.
    """
    assert response.status_code == expected_status, (
        f"Expected status {expected_status}, got {response.status_code}. "
        f"Response: {response.text}"
    )
    assert response.headers.get("content-type", "").startswith("application/json")
    return response.json()


def assert_error_response(
    response: httpx.Response,
    expected_status: int,
    expected_code: str | None = None,
) -> dict[str, Any]:
    """Assert an error response has the ``{"error", "code"}`` shape.

    Args:
        response: HTTP response object.
        expected_status: Expected HTTP status code.
        expected_code: Expected value of ``code``, if given.

    Returns:
        Parsed JSON response data.
    """
    data = assert_response_structure(response, expected_status)
    assert set(data) == {"error", "code"}, f"Unexpected error body: {data}"
    assert isinstance(data["error"], str) and data["error"]
    if expected_code is not None:
        assert data["code"] == expected_code
    return data
