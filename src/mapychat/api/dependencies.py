"""FastAPI dependency providers and request helpers.

Providers here are the seams tests override through
``app.dependency_overrides``: settings, the rate limiter and the upstream
client.

Key Features:
    - Request Context: request_id and rate-limit client id, cached per request
    - Upstream Client: set once by the lifespan via set_dependencies
    - Body Parsing: JSON envelope parsing with 400 responses on failure
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from mapychat.api.http_errors import bad_request_error
from mapychat.api.limits import MAX_REQUEST_BODY_BYTES
from mapychat.api.models import RequestContext
from mapychat.client.upstream import UpstreamClient
from mapychat.core.config import Settings
from mapychat.core.config import get_settings as _load_settings
from mapychat.core.rate_limiter import FixedWindowRateLimiter, resolve_client_id
from mapychat.core.rate_limiter import get_rate_limiter as _process_rate_limiter

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_upstream_client: UpstreamClient | None = None


def set_dependencies(upstream_client: UpstreamClient | None) -> None:
    """Install (or clear, with None) the shared upstream client."""
    global _upstream_client
    _upstream_client = upstream_client


def get_upstream_client() -> UpstreamClient:
    """Return the upstream client created at startup.

    Raises:
        RuntimeError: If the application lifespan has not run.
    """
    if _upstream_client is None:
        msg = "Upstream client not initialized. Is the application lifespan running?"
        raise RuntimeError(msg)
    return _upstream_client


def get_settings() -> Settings:
    return _load_settings()


def get_rate_limiter() -> FixedWindowRateLimiter:
    return _process_rate_limiter()


def get_request_context(request: Request) -> RequestContext:
    """Extract (or reuse) the request context stored on ``request.state``.

    The context is cached after first access so middleware, handlers and
    logs share one request_id.
    """
    ctx: RequestContext | None = getattr(request.state, "request_context", None)
    if ctx is None:
        ctx = RequestContext(
            request_id=str(uuid.uuid4()),
            client_ip=resolve_client_id(
                request.headers.get("x-forwarded-for"),
                request.client.host if request.client else None,
            ),
            user_agent=request.headers.get("user-agent"),
        )
        request.state.request_context = ctx
    return ctx


def request_origin(request: Request) -> str:
    """Origin (scheme://host[:port]) the request was addressed to."""
    return f"{request.url.scheme}://{request.url.netloc}"


async def parse_request_json(request: Request, model_cls: type[T]) -> T:
    """Parse the request body into ``model_cls``.

    Raises:
        ProxyHTTPError: 400 if the body is empty, too large, not JSON, not a
            JSON object, or fails envelope validation.
    """
    body_bytes = await request.body()
    if not body_bytes:
        raise bad_request_error("Cuerpo de la solicitud vacío")
    if len(body_bytes) > MAX_REQUEST_BODY_BYTES:
        raise bad_request_error("Cuerpo de la solicitud demasiado grande")

    try:
        body = json.loads(body_bytes)
    except ValueError as exc:
        raise bad_request_error("JSON inválido en el cuerpo de la solicitud") from exc

    if not isinstance(body, dict):
        raise bad_request_error("El cuerpo de la solicitud debe ser un objeto JSON")

    try:
        return model_cls.model_validate(body)
    except ValidationError as exc:
        logger.info("request_envelope_invalid: errors=%s", exc.errors(include_input=False))
        raise bad_request_error("Solicitud inválida") from exc


__all__ = [
    "get_rate_limiter",
    "get_request_context",
    "get_settings",
    "get_upstream_client",
    "parse_request_json",
    "request_origin",
    "set_dependencies",
]
