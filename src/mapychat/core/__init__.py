"""Core helpers for the MapyChat proxy: configuration, rate limiting, retries."""

from mapychat.core.config import Settings, get_settings
from mapychat.core.rate_limiter import (
    FixedWindowRateLimiter,
    RateLimitAllowed,
    RateLimitRejected,
    get_rate_limiter,
    resolve_client_id,
)
from mapychat.core.resilience import RetryConfig, linear_backoff_retrying

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitAllowed",
    "RateLimitRejected",
    "RetryConfig",
    "Settings",
    "get_rate_limiter",
    "get_settings",
    "linear_backoff_retrying",
    "resolve_client_id",
]
