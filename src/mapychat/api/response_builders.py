"""Response builders for the proxy endpoint.

Key Features:
    - RateLimit-* / Retry-After headers from a limiter decision
    - JSON error responses in the ``{"error", "code"}`` shape
    - SSE relay that forwards decoded upstream bytes chunk-by-chunk and closes the
      upstream response when the relay ends (normally or on disconnect)
"""

from __future__ import annotations

from collections.abc import Mapping

import httpx
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from mapychat.api.http_errors import ProxyHTTPError
from mapychat.api.models import ErrorResponse
from mapychat.core.rate_limiter import RateLimitAllowed, RateLimitRejected

SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Robots-Tag": "noindex",
}


def rate_limit_headers(decision: RateLimitAllowed) -> dict[str, str]:
    """Informational headers attached to every response after admission."""
    return {
        "RateLimit-Limit": str(decision.limit),
        "RateLimit-Remaining": str(max(0, decision.remaining)),
        "RateLimit-Reset": str(decision.reset_seconds),
    }


def rejection_headers(decision: RateLimitRejected) -> dict[str, str]:
    """Headers for a 429 response."""
    return {
        "Retry-After": str(decision.retry_after_seconds),
        "RateLimit-Limit": str(decision.limit),
        "RateLimit-Remaining": "0",
        "RateLimit-Reset": str(decision.reset_seconds),
    }


def error_response(exc: ProxyHTTPError) -> JSONResponse:
    """Render a ProxyHTTPError as its JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message, code=exc.code).model_dump(),
        headers=exc.headers or None,
    )


def relay_stream_response(
    upstream: httpx.Response,
    headers: Mapping[str, str] | None = None,
) -> StreamingResponse:
    """Relay the upstream event stream without buffering.

    Any ``Content-Encoding`` is decoded first; the relayed body is always
    plain ``text/event-stream``.
    """
    return StreamingResponse(
        upstream.aiter_bytes(),
        status_code=200,
        media_type="text/event-stream",
        headers={**SSE_HEADERS, **(headers or {})},
        background=BackgroundTask(upstream.aclose),
    )


__all__ = [
    "SSE_HEADERS",
    "error_response",
    "rate_limit_headers",
    "rejection_headers",
    "relay_stream_response",
]
