"""Application lifespan management.

Lifespan Responsibilities:
    - Startup:
        1. Load settings and warn if the upstream API key is missing
        2. Create the shared upstream client (httpx connection pool)
        3. Install it for dependency injection
    - Shutdown:
        1. Clear the dependency
        2. Close the upstream connection pool

A missing API key does not prevent startup; requests fail with a 500 until
it is configured.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from mapychat.api.dependencies import set_dependencies
from mapychat.client.upstream import UpstreamClient, UpstreamClientConfig
from mapychat.core.config import get_settings

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan_context(app: FastAPI) -> AsyncIterator[None]:
    """Create the upstream client on startup and close it on shutdown."""
    settings = get_settings()
    logger.info(
        "LIFESPAN: Starting MapyChat proxy (upstream=%s, rate_limit=%d/%dms)",
        settings.upstream.base_url,
        settings.rate_limit.max_requests,
        settings.rate_limit.window_ms,
    )
    if settings.upstream.api_key is None:
        logger.warning("LIFESPAN: XAI_API_KEY is not set; proxy requests will fail with 500")

    upstream = UpstreamClient(
        UpstreamClientConfig(
            chat_completions_url=settings.upstream.chat_completions_url,
            timeout=settings.upstream.timeout,
        )
    )
    set_dependencies(upstream)
    try:
        yield
    finally:
        logger.info("LIFESPAN: Shutting down MapyChat proxy")
        set_dependencies(None)
        await upstream.close()


__all__ = ["lifespan_context"]
