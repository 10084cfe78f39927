"""Structured logging utilities for the MapyChat proxy.

This module provides JSON-based structured logging for request/response
events. All events are written as JSON Lines (JSONL) to a log file for easy
parsing and analysis.

Key Features:
    - JSON Lines Format: One JSON object per line for easy parsing
    - Automatic Timestamps: Injected if not present in event data
    - Custom Serialization: Handles datetime and Path objects correctly
    - Isolation: Non-propagating logger to avoid duplicate logs

Log File Configuration:
    - Location: ``<MAPYCHAT_LOG_DIR>/requests.jsonl`` (default ``logs/``)
    - Format: JSON Lines (one JSON object per line)
    - Encoding: UTF-8

Event Schema:
    All events should include:
        - event: Event type identifier (e.g., "api_request", "http_request")
        - timestamp: ISO 8601 timestamp (auto-injected if missing)
        - Additional fields: request_id, model, latency_ms, status, etc.

Events never carry message text or image data.
"""

from __future__ import annotations

import functools
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from mapychat.core.config import get_settings

REQUEST_LOGGER_NAME = "mapychat.requests"


@functools.cache
def _request_logger() -> logging.Logger:
    """Return the JSONL request logger, attaching its file handler once.

    The log directory is read from settings on first use and created if
    missing.
    """
    request_logger = logging.getLogger(REQUEST_LOGGER_NAME)
    if not request_logger.handlers:
        logs_dir = Path(get_settings().logging.log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(logs_dir / "requests.jsonl", encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        request_logger.addHandler(handler)
        request_logger.setLevel(logging.INFO)
        request_logger.propagate = False
    return request_logger


def _json_default(value: Any) -> Any:
    """Fallback serializer for datetime and Path objects."""
    match value:
        case datetime():
            return TypeAdapter(datetime).dump_python(value, mode="json")
        case Path():
            return str(value)
        case _:
            return str(value)


def log_request_event(event: dict[str, Any]) -> None:
    """Emit a structured request event.

    Args:
        event: Event payload dictionary. Should contain:
            - event: str - Event type identifier ("api_request", "http_request")
            - operation: str - Operation name (e.g., "grok_stream")
            - status: str - "success" or "error"
            - Additional fields as needed (request_id, model, latency_ms,
              client_ip, error_type, error_message, status_code)
        The 'timestamp' field is added if missing (mutates the input dict).

    Example:
        >>> log_request_event({
        ...     "event": "api_request",
        ...     "operation": "grok_stream",
        ...     "status": "success",
        ...     "model": "grok-4-fast-reasoning",
        ...     "latency_ms": 1234.56,
        ... })
    """
    event.setdefault("timestamp", datetime.now(UTC).isoformat())
    _request_logger().info(json.dumps(event, default=_json_default))


__all__ = ["REQUEST_LOGGER_NAME", "log_request_event"]
