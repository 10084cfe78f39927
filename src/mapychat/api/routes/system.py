"""System routes for health and observability.

Endpoints:
    GET /api/health
        - Response: HealthResponse (whether the upstream key is configured)
        - Rate Limited: No

    GET /api/metrics
        - Response: MetricsResponse (proxy request outcomes)
        - Query Params: window_minutes (optional, default: all time)
        - Rate Limited: No
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from mapychat.api.dependencies import get_settings
from mapychat.api.models import HealthResponse, MetricsResponse
from mapychat.core.config import Settings
from mapychat.telemetry.metrics import MetricsCollector

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(settings: Annotated[Settings, Depends(get_settings)]) -> HealthResponse:
    """Report whether the proxy can serve requests.

    No upstream call is made; the check only confirms the API key is set.
    """
    configured = settings.upstream.api_key is not None
    return HealthResponse(
        status="healthy" if configured else "unhealthy",
        upstream_configured=configured,
        version=settings.api.version,
    )


@router.get("/metrics", response_model=MetricsResponse, tags=["Metrics"])
async def get_metrics(window_minutes: int | None = None) -> MetricsResponse:
    """Return aggregated proxy request metrics, optionally for the last N minutes."""
    return MetricsResponse.model_validate(MetricsCollector.get_metrics_json(window_minutes))
