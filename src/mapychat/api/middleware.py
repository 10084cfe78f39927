"""Middleware and error handlers for the API.

Key Features:
    - Structured Logging: one ``http_request`` event per request
    - Error Handling: global handlers rendering ``{"error", "code"}`` bodies

Middleware Stack:
    1. StructuredLoggingMiddleware: Logs all HTTP requests

Rate limiting is not middleware: the proxy route applies it after the origin
and content-type checks, which middleware would run too early for.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from mapychat.api.dependencies import get_request_context
from mapychat.api.http_errors import ProxyHTTPError, bad_request_error, internal_error
from mapychat.api.response_builders import error_response
from mapychat.telemetry.structured_logging import log_request_event

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that emits a structured log event for every HTTP request.

    Streaming responses are logged when headers are sent, so latency covers
    time-to-first-byte rather than the full stream.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start_time = time.perf_counter()
        status_code: int | None = None
        error_type: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            error_type = type(exc).__name__
            raise
        finally:
            ctx = get_request_context(request)
            event: dict[str, object] = {
                "event": "http_request",
                "request_id": ctx.request_id,
                "client_ip": ctx.client_ip,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": round((time.perf_counter() - start_time) * 1000, 3),
            }
            if error_type:
                event["error_type"] = error_type
            log_request_event(event)


def setup_middleware(app: FastAPI) -> None:
    """Configure middleware for the FastAPI application."""
    app.add_middleware(StructuredLoggingMiddleware)


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure global exception handlers.

    Registers handlers for:
    - ProxyHTTPError (its own status and headers)
    - RequestValidationError (400)
    - Exception (500 - catch-all)
    """

    async def proxy_error_handler(request: Request, exc: ProxyHTTPError) -> JSONResponse:
        return error_response(exc)

    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        ctx = get_request_context(request)
        logger.warning("validation_error: request_id=%s, errors=%s", ctx.request_id, exc.errors())
        return error_response(bad_request_error("Parámetros de la solicitud inválidos"))

    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Render unexpected errors without exposing internal details."""
        ctx = get_request_context(request)
        logger.exception(
            "unhandled_exception: request_id=%s, error_type=%s, error=%s",
            ctx.request_id,
            type(exc).__name__,
            str(exc),
        )
        return error_response(internal_error())

    app.exception_handler(ProxyHTTPError)(proxy_error_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(global_exception_handler)


__all__ = ["StructuredLoggingMiddleware", "setup_exception_handlers", "setup_middleware"]
