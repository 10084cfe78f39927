"""Centralized configuration management for the MapyChat proxy.

This module provides a single source of truth for all configuration values,
using pydantic-settings for environment variable loading and validation.

Design Principles:
    - Environment Variables: All settings can be overridden via environment variables
    - Sensible Defaults: Everything except the upstream API key has a default
    - Validation: Pydantic validates all values at load time
    - Singleton Pattern: Cached settings instance via lru_cache

Configuration Sections:
    - UpstreamConfig: xAI provider connection
    - RateLimitConfig: Fixed-window rate limiter
    - APIConfig: FastAPI server configuration
    - ClientConfig: Streaming client configuration
    - LoggingConfig: Structured log destination

Environment Variable Prefixes:
    - XAI_*: Upstream provider settings
    - RATE_LIMIT_*: Rate limiter settings
    - API_*: FastAPI server settings
    - CLIENT_*: Streaming client settings
    - MAPYCHAT_*: Logging settings

Usage:
    from mapychat.core.config import get_settings

    settings = get_settings()
    window = settings.rate_limit.window_ms
    base_url = settings.upstream.chat_completions_url
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RATE_LIMIT_WINDOW_MS = 60_000
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 10


class UpstreamConfig(BaseSettings):
    """xAI upstream provider configuration.

    Attributes:
        api_key: Bearer token for the provider. None is allowed at load time;
            requests fail with a 500 until it is set.
        base_url: Provider API root. Default: "https://api.x.ai/v1".
        timeout: Connect/read timeout in seconds for the upstream call.
    """

    model_config = SettingsConfigDict(
        env_prefix="XAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: SecretStr | None = Field(default=None, description="xAI API key")
    base_url: str = Field(default="https://api.x.ai/v1", description="xAI API base URL")
    timeout: float = Field(default=120.0, ge=1.0, le=600.0, description="Upstream timeout (seconds)")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base URL format."""
        if not v.startswith(("http://", "https://")):
            msg = "base_url must start with http:// or https://"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("api_key")
    @classmethod
    def blank_key_is_missing(cls, v: SecretStr | None) -> SecretStr | None:
        """Treat an empty or whitespace-only key as unset."""
        if v is None or not v.get_secret_value().strip():
            return None
        return v

    @property
    def chat_completions_url(self) -> str:
        """Full URL of the streaming chat completions endpoint."""
        return f"{self.base_url}/chat/completions"


class RateLimitConfig(BaseSettings):
    """Fixed-window rate limiter configuration.

    Non-positive or unparsable values fall back to the defaults instead of
    failing startup.
    """

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    window_ms: int = Field(default=DEFAULT_RATE_LIMIT_WINDOW_MS, description="Window length (ms)")
    max_requests: int = Field(
        default=DEFAULT_RATE_LIMIT_MAX_REQUESTS, description="Requests allowed per window"
    )

    @field_validator("window_ms", mode="before")
    @classmethod
    def fallback_window(cls, v: object) -> int:
        return _positive_int_or(v, DEFAULT_RATE_LIMIT_WINDOW_MS)

    @field_validator("max_requests", mode="before")
    @classmethod
    def fallback_max_requests(cls, v: object) -> int:
        return _positive_int_or(v, DEFAULT_RATE_LIMIT_MAX_REQUESTS)


def _positive_int_or(value: object, default: int) -> int:
    try:
        number = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


class APIConfig(BaseSettings):
    """FastAPI server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="0.0.0.0", description="API server host")
    port: int = Field(default=8000, ge=1, le=65535, description="API server port")
    reload: bool = Field(default=False, description="Enable auto-reload (development)")
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(
        default="info", description="Logging level"
    )
    title: str = Field(default="MapyChat Proxy API", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    docs_url: str = Field(default="/api/docs", description="OpenAPI docs URL")
    openapi_url: str = Field(default="/api/openapi.json", description="OpenAPI schema URL")


class ClientConfig(BaseSettings):
    """Streaming client configuration.

    Attributes:
        base_url: Root URL of a running proxy. The client posts to
            ``{base_url}/api/grok``.
        timeout: Per-request timeout (seconds).
        max_retries: Retries after the first failed attempt.
        retry_delay: Base delay for linear backoff (seconds).
    """

    model_config = SettingsConfigDict(
        env_prefix="CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = Field(default="http://localhost:8000", description="Proxy base URL")
    timeout: float = Field(default=180.0, ge=1.0, le=3600.0, description="Request timeout (seconds)")
    max_retries: int = Field(default=2, ge=0, le=10, description="Max retry attempts")
    retry_delay: float = Field(default=1.0, ge=0.0, le=10.0, description="Retry delay (seconds)")


class LoggingConfig(BaseSettings):
    """Structured request log configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MAPYCHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_dir: str = Field(default="logs", description="Directory holding requests.jsonl")


class Settings(BaseSettings):
    """Root settings class containing all configuration sections.

    Attributes:
        upstream: xAI provider configuration.
        rate_limit: Rate limiter configuration.
        api: FastAPI server configuration.
        client: Streaming client configuration.
        logging: Structured log configuration.

    Note:
        Settings are loaded once and cached. Tests and callers that change
        environment variables call ``get_settings.cache_clear()``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern).

    Returns:
        Cached Settings instance with all configuration sections populated.
    """
    return Settings()


__all__ = [
    "DEFAULT_RATE_LIMIT_MAX_REQUESTS",
    "DEFAULT_RATE_LIMIT_WINDOW_MS",
    "APIConfig",
    "ClientConfig",
    "LoggingConfig",
    "RateLimitConfig",
    "Settings",
    "UpstreamConfig",
    "get_settings",
]
