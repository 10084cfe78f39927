"""Streaming proxy route for Grok chat completions.

Endpoint:
    POST /api/grok
        - Request: ProxyRequest JSON (model, systemPrompt, messages, ...)
        - Response: upstream SSE stream relayed chunk-by-chunk, or a JSON
          ``{"error", "code"}`` body on failure

Request Flow:
    1. Origin check (403) and Content-Type check (415)
    2. Rate limit decision (429 with Retry-After)
    3. Envelope parsing and model check (400)
    4. Prompt and message coercion (400)
    5. Content guard on the newest user message (400)
    6. Payload assembly: temperature, token budget, context window
    7. API key check (500), upstream call (upstream status / 502)
    8. Relay with SSE and RateLimit-* headers

Every response after step 2 carries the RateLimit-* headers.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from mapychat.api.dependencies import (
    get_rate_limiter,
    get_request_context,
    get_settings,
    get_upstream_client,
    parse_request_json,
    request_origin,
)
from mapychat.api.error_handlers import handle_route_errors
from mapychat.api.http_errors import (
    forbidden_origin_error,
    missing_api_key_error,
    rate_limited_error,
    unsupported_media_type_error,
)
from mapychat.api.limits import PROXY_OPERATION
from mapychat.api.mappers import build_upstream_payload
from mapychat.api.models import ProxyRequest
from mapychat.api.response_builders import (
    rate_limit_headers,
    rejection_headers,
    relay_stream_response,
)
from mapychat.client.upstream import UpstreamClient
from mapychat.core.config import Settings
from mapychat.core.rate_limiter import FixedWindowRateLimiter, RateLimitRejected
from mapychat.domain.coercion import (
    assemble_context,
    coerce_character_prompt,
    coerce_messages,
    coerce_system_prompt,
    latest_user_message,
)
from mapychat.domain.entities import ALLOWED_MODELS, text_segments
from mapychat.domain.exceptions import InvalidModelError
from mapychat.domain.guard import guard_segments
from mapychat.domain.value_objects import TokenBudget, clamp_temperature
from mapychat.telemetry.metrics import MetricsCollector
from mapychat.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

router = APIRouter()

SettingsDep = Annotated[Settings, Depends(get_settings)]
LimiterDep = Annotated[FixedWindowRateLimiter, Depends(get_rate_limiter)]
UpstreamDep = Annotated[UpstreamClient, Depends(get_upstream_client)]


@router.post("/grok", tags=["Chat"], response_model=None)
async def grok_stream(
    request: Request,
    settings: SettingsDep,
    limiter: LimiterDep,
    upstream: UpstreamDep,
) -> StreamingResponse:
    """Validate, screen and relay a streaming chat completion.

    Returns:
        StreamingResponse relaying the provider's ``text/event-stream`` body.

    Raises:
        ProxyHTTPError: For every rejected or failed request; rendered as
            JSON by the global exception handler.
    """
    ctx = get_request_context(request)
    start_time = time.perf_counter()
    model_name: str | None = None
    limit_headers: dict[str, str] | None = None

    handle_error = handle_route_errors(
        ctx,
        PROXY_OPERATION,
        start_time=start_time,
        event_builder=lambda: {"model": model_name},
        headers_builder=lambda: limit_headers,
    )

    try:
        origin = request.headers.get("origin")
        if origin and origin != request_origin(request):
            raise forbidden_origin_error()

        content_type = request.headers.get("content-type", "")
        if "application/json" not in content_type.lower():
            raise unsupported_media_type_error()

        decision = limiter.admit(ctx.client_ip)
        if isinstance(decision, RateLimitRejected):
            raise rate_limited_error(rejection_headers(decision))
        limit_headers = rate_limit_headers(decision)

        body = await parse_request_json(request, ProxyRequest)
        if body.model not in ALLOWED_MODELS:
            raise InvalidModelError("Modelo no válido")
        model_name = body.model

        system_prompt = coerce_system_prompt(body.system_prompt)
        character_message = coerce_character_prompt(body.character_prompt)
        conversation = coerce_messages(body.messages)

        guard_segments(text_segments(latest_user_message(conversation)))

        temperature = clamp_temperature(body.temperature)
        budget = TokenBudget.resolve(body.response_level, body.max_tokens)
        outbound = assemble_context(system_prompt, character_message, conversation)
        payload = build_upstream_payload(model_name, temperature, budget, outbound)

        api_key = settings.upstream.api_key
        if api_key is None:
            logger.error("upstream_api_key_missing: request_id=%s", ctx.request_id)
            raise missing_api_key_error()

        logger.info(
            "grok_stream_requested: request_id=%s model=%s messages=%d max_output_tokens=%d budget_source=%s",
            ctx.request_id,
            model_name,
            len(outbound),
            budget.value,
            budget.source,
        )
        upstream_response = await upstream.open_stream(payload, api_key.get_secret_value())
    except Exception as exc:
        handle_error(exc)

    latency_ms = round((time.perf_counter() - start_time) * 1000, 3)
    log_request_event(
        {
            "event": "api_request",
            "operation": PROXY_OPERATION,
            "status": "success",
            "request_id": ctx.request_id,
            "client_ip": ctx.client_ip,
            "model": model_name,
            "latency_ms": latency_ms,
            "max_output_tokens": budget.value,
            "temperature": temperature,
        }
    )
    MetricsCollector.record_request(
        model=model_name,
        operation=PROXY_OPERATION,
        latency_ms=latency_ms,
        success=True,
    )
    return relay_stream_response(upstream_response, limit_headers)


__all__ = ["router"]
