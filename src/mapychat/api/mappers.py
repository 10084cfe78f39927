"""Mapping from domain entities to the upstream chat-completions payload."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from mapychat.domain.entities import (
    ChatMessage,
    ImagePart,
    PartsContent,
    TextContent,
    TextPart,
)
from mapychat.domain.value_objects import TokenBudget


def message_to_upstream(message: ChatMessage) -> dict[str, Any]:
    """Serialize a message; plain text stays a string, parts become a list."""
    match message.content:
        case TextContent(text=text):
            content: str | list[dict[str, Any]] = text
        case PartsContent(parts=parts):
            content = []
            for part in parts:
                match part:
                    case TextPart(text=text):
                        content.append({"type": "text", "text": text})
                    case ImagePart(url=url, detail=detail):
                        content.append(
                            {"type": "image_url", "image_url": {"url": url, "detail": detail.value}}
                        )
    return {"role": message.role.value, "content": content}


def build_upstream_payload(
    model: str,
    temperature: float,
    budget: TokenBudget,
    messages: Sequence[ChatMessage],
) -> dict[str, Any]:
    """Assemble the streaming chat-completions request body."""
    return {
        "model": model,
        "temperature": temperature,
        "stream": True,
        "messages": [message_to_upstream(message) for message in messages],
        "max_output_tokens": budget.value,
    }


__all__ = ["build_upstream_payload", "message_to_upstream"]
