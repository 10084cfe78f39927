"""API request and response models for the MapyChat proxy.

The request envelope is validated with Pydantic only at the top level: field
names, aliases and the ``model`` type. Prompts, messages and generation
parameters stay loosely typed here and are validated by the domain coercers,
which own the size limits and the user-facing error messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ProxyRequest(BaseModel):
    """Body of ``POST /api/grok``.

    Attributes:
        model: Upstream model id; must be one of the allowed models.
        temperature: Sampling temperature; non-numbers fall back to 0.8.
        system_prompt: Required system prompt (``systemPrompt``).
        character_prompt: Optional persona prompt (``characterPrompt``).
        messages: Conversation, validated by the message coercer.
        response_level: Response-length level 1-5 (``responseLevel``).
        max_tokens: Raw output-token budget (``maxTokens``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    model: str | None = None
    temperature: Any = None
    system_prompt: Any = Field(default=None, alias="systemPrompt")
    character_prompt: Any = Field(default=None, alias="characterPrompt")
    messages: Any = None
    response_level: Any = Field(default=None, alias="responseLevel")
    max_tokens: Any = Field(default=None, alias="maxTokens")


class ErrorResponse(BaseModel):
    """JSON body of every error response.

    Attributes:
        error: Human-readable message.
        code: Stable error code (e.g. "rate_limited").
    """

    model_config = ConfigDict(extra="forbid")

    error: str
    code: str


@dataclass(slots=True, frozen=True)
class RequestContext:
    """Context for tracking API requests.

    Attributes:
        request_id: Unique request identifier (UUID string).
        client_ip: Rate-limit key: first X-Forwarded-For entry, socket peer,
            or "unknown".
        user_agent: User-Agent header value. None if not present.
    """

    request_id: str
    client_ip: str
    user_agent: str | None = None


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: "healthy", or "unhealthy" when no upstream API key is set.
        upstream_configured: Whether XAI_API_KEY is present.
        version: API version string.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"] = Field(..., description="Service status")
    upstream_configured: bool = Field(..., description="Upstream API key present")
    version: str = Field(..., description="API version")


class MetricsResponse(BaseModel):
    """Structured response for the /metrics endpoint."""

    model_config = ConfigDict(extra="forbid")

    total_requests: int = Field(..., ge=0, description="Total requests observed")
    successful_requests: int = Field(..., ge=0, description="Requests that opened a stream")
    failed_requests: int = Field(..., ge=0, description="Rejected or failed requests")
    requests_by_model: dict[str, int] = Field(
        default_factory=dict, description="Request counts grouped by model"
    )
    errors_by_type: dict[str, int] = Field(
        default_factory=dict, description="Failure counts grouped by error code"
    )
    average_latency_ms: float = Field(..., ge=0.0, description="Average latency (ms)")
    p50_latency_ms: float = Field(..., ge=0.0, description="50th percentile latency (ms)")
    p95_latency_ms: float = Field(..., ge=0.0, description="95th percentile latency (ms)")
    p99_latency_ms: float = Field(..., ge=0.0, description="99th percentile latency (ms)")
    last_request_time: datetime | None = Field(None, description="Most recent request")


__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "MetricsResponse",
    "ProxyRequest",
    "RequestContext",
]
