"""Shared API guardrail constants."""

from __future__ import annotations

# Room for one maximum-size base64 image plus the rest of the conversation
MAX_REQUEST_BODY_BYTES = 32 * 1024 * 1024

PROXY_OPERATION = "grok_stream"

__all__ = ["MAX_REQUEST_BODY_BYTES", "PROXY_OPERATION"]
