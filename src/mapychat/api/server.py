"""FastAPI application for the MapyChat proxy.

Serves a same-origin streaming proxy in front of the xAI chat-completions
API, with content-safety screening and per-client rate limiting.

Architecture:
    - FastAPI application with lifespan management
    - One shared httpx client for upstream calls
    - Process-wide fixed-window rate limiter
    - Global exception handlers rendering ``{"error", "code"}`` bodies

Endpoints:
    - GET /                - Service metadata
    - POST /api/grok       - Streaming chat completion (SSE relay)
    - GET /api/health      - Upstream configuration check
    - GET /api/metrics     - Request outcome metrics
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from mapychat.api.lifespan import lifespan_context
from mapychat.api.middleware import setup_exception_handlers, setup_middleware
from mapychat.api.routes import proxy_router, system_router
from mapychat.core.config import get_settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routers."""
    api_settings = get_settings().api
    application = FastAPI(
        title=api_settings.title,
        description="Same-origin streaming proxy for Grok chat completions",
        version=api_settings.version,
        docs_url=api_settings.docs_url,
        redoc_url=None,
        openapi_url=api_settings.openapi_url,
        lifespan=lifespan_context,
    )

    setup_middleware(application)
    setup_exception_handlers(application)

    application.include_router(proxy_router, prefix=API_PREFIX)
    application.include_router(system_router, prefix=API_PREFIX)

    @application.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "service": api_settings.title,
            "version": api_settings.version,
            "docs": api_settings.docs_url,
            "health": f"{API_PREFIX}/health",
        }

    return application


app = create_app()

__all__ = ["API_PREFIX", "app", "create_app"]
