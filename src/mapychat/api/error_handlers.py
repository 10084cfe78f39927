"""Shared error handling for the proxy route.

Converts every failure the route can hit into a ProxyHTTPError so nothing
reaches the transport layer unhandled, and emits exactly one structured log
event and one metric per failed request.

Error Handling Strategy:
    - ProxyHTTPError: passed through (already a client-facing error)
    - PolicyViolationError: 400 bad_request with the policy message
    - Other DomainError: 400 bad_request with the validation message
    - UpstreamStatusError: upstream status (or 502), upstream_error
    - httpx.RequestError: 502 upstream_error
    - Anything else: 500 internal_server_error, traceback logged
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import NoReturn

import httpx

from mapychat.api.http_errors import (
    ProxyHTTPError,
    bad_request_error,
    internal_error,
    upstream_error,
)
from mapychat.api.models import RequestContext
from mapychat.client.upstream import UpstreamStatusError
from mapychat.domain.exceptions import DomainError, PolicyViolationError
from mapychat.telemetry.metrics import MetricsCollector
from mapychat.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)


def handle_route_errors(
    ctx: RequestContext,
    operation_name: str,
    *,
    start_time: float | None = None,
    event_builder: Callable[[], dict[str, object]] | None = None,
    headers_builder: Callable[[], Mapping[str, str] | None] | None = None,
) -> Callable[[Exception], NoReturn]:
    """Create the error handler for one request.

    Args:
        ctx: Request context, for logging.
        operation_name: Operation label for logs and metrics.
        start_time: ``time.perf_counter()`` at request start, for latency.
        event_builder: Returns extra log fields (e.g. model) at failure time.
        headers_builder: Returns headers to attach to the error response
            (RateLimit-* once the request has been admitted).

    Example:
        >>> handle_error = handle_route_errors(ctx, "grok_stream")
        >>> try:
        ...     ...
        ... except Exception as exc:
        ...     handle_error(exc)
    """

    def _latency_ms() -> float:
        if start_time is None:
            return 0.0
        return round((time.perf_counter() - start_time) * 1000, 3)

    def _extra_fields() -> dict[str, object]:
        return {k: v for k, v in (event_builder() if event_builder else {}).items() if v is not None}

    def _to_proxy_error(exc: Exception) -> ProxyHTTPError:
        match exc:
            case ProxyHTTPError():
                return exc
            case PolicyViolationError(reason=reason):
                logger.info(
                    f"{operation_name}_policy_violation: request_id=%s, reason=%s",
                    ctx.request_id,
                    reason,
                )
                return bad_request_error(str(exc))
            case DomainError():
                logger.info(
                    f"{operation_name}_validation_error: request_id=%s, error=%s",
                    ctx.request_id,
                    exc,
                )
                return bad_request_error(str(exc))
            case UpstreamStatusError(status_code=upstream_status):
                return upstream_error(upstream_status)
            case httpx.RequestError():
                logger.error(
                    f"{operation_name}_upstream_unreachable: request_id=%s, error_type=%s, error=%s",
                    ctx.request_id,
                    type(exc).__name__,
                    exc,
                )
                return upstream_error()
            case _:
                logger.exception(
                    f"unexpected_error_{operation_name}: request_id=%s, error_type=%s",
                    ctx.request_id,
                    type(exc).__name__,
                )
                return internal_error()

    def handle_error(exc: Exception) -> NoReturn:
        """Record the failure and raise the matching ProxyHTTPError."""
        proxy_error = _to_proxy_error(exc)
        if headers_builder:
            proxy_error = proxy_error.with_headers(headers_builder())

        extra = _extra_fields()
        latency_ms = _latency_ms()
        event: dict[str, object] = {
            "event": "api_request",
            "operation": operation_name,
            "status": "error",
            "request_id": ctx.request_id,
            "client_ip": ctx.client_ip,
            "latency_ms": latency_ms,
            "error_type": type(exc).__name__,
            "error_code": proxy_error.code,
            "http_status": proxy_error.status_code,
            **extra,
        }
        if isinstance(exc, UpstreamStatusError):
            event["upstream_status"] = exc.status_code
            event["error_message"] = exc.message
        log_request_event(event)

        MetricsCollector.record_request(
            model=str(extra.get("model", "unknown")),
            operation=operation_name,
            latency_ms=latency_ms,
            success=False,
            error=proxy_error.code,
        )

        if proxy_error is exc:
            raise proxy_error
        raise proxy_error from exc

    return handle_error


__all__ = ["handle_route_errors"]
