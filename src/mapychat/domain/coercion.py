"""Validation and reshaping of untrusted chat payloads.

Turns the loosely-typed ``messages`` list, system prompt and character prompt
of a proxy request into strict domain entities. Structural problems raise
MessageValidationError; an unknown image ``detail`` is the one deliberate
leniency and silently becomes ``auto``.

Limits:
    - MAX_MESSAGES messages per request
    - MAX_MESSAGE_CHARS characters per text segment
    - MAX_PROMPT_CHARS characters for system and character prompts
    - MAX_IMAGE_BYTES decoded bytes per embedded image
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from urllib.parse import urlsplit

from mapychat.domain.entities import (
    ChatMessage,
    ImageDetail,
    ImagePart,
    MessagePart,
    PartsContent,
    Role,
    TextContent,
    TextPart,
)
from mapychat.domain.exceptions import MessageValidationError

MAX_MESSAGES = 50
MAX_MESSAGE_CHARS = 8000
MAX_PROMPT_CHARS = 4000
MAX_IMAGE_BYTES = 20 * 1024 * 1024
MAX_CONTEXT_MESSAGES = 50

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_DATA_URL = re.compile(r"data:image/(png|jpeg);base64,([A-Za-z0-9+/]*={0,2})")
_ROLES = {role.value: role for role in Role}


def sanitize_prompt(text: str) -> str:
    """Strip ASCII and C1 control characters."""
    return _CONTROL_CHARS.sub("", text)


def decoded_base64_size(payload: str) -> int:
    """Return the byte length ``payload`` decodes to, accounting for padding."""
    padding = len(payload) - len(payload.rstrip("="))
    return (len(payload) * 3) // 4 - padding


def coerce_image_url(url: object) -> str:
    """Validate an image URL (http(s) or png/jpeg base64 data URL).

    Raises:
        MessageValidationError: If the URL is missing, malformed, oversized or
            uses another scheme.
    """
    if not isinstance(url, str) or not url:
        raise MessageValidationError("La imagen no tiene URL")

    if url.startswith("data:"):
        match = _DATA_URL.fullmatch(url)
        if match is None or not match.group(2):
            raise MessageValidationError("La imagen embebida tiene un formato inválido")
        if decoded_base64_size(match.group(2)) > MAX_IMAGE_BYTES:
            raise MessageValidationError("La imagen excede el límite de 20 MiB")
        return url

    parts = urlsplit(url)
    if parts.scheme.lower() not in {"http", "https"} or not parts.netloc:
        raise MessageValidationError("La URL de la imagen debe usar http(s) o data:")
    return url


def _coerce_text(value: object) -> str:
    if not isinstance(value, str) or not value:
        raise MessageValidationError("Mensaje inválido: falta el texto")
    if len(value) > MAX_MESSAGE_CHARS:
        raise MessageValidationError(
            f"Mensaje inválido: el texto excede {MAX_MESSAGE_CHARS} caracteres"
        )
    return value


def coerce_part(raw: object) -> MessagePart:
    """Validate one element of a multipart ``content`` array."""
    if not isinstance(raw, dict):
        raise MessageValidationError("Mensaje inválido: parte de contenido inválida")

    match raw.get("type"):
        case "text":
            return TextPart(_coerce_text(raw.get("text")))
        case "image_url":
            image = raw.get("image_url")
            if not isinstance(image, dict):
                raise MessageValidationError("La imagen no tiene URL")
            return ImagePart(
                url=coerce_image_url(image.get("url")),
                detail=ImageDetail.parse(image.get("detail")),
            )
        case _:
            raise MessageValidationError("Mensaje inválido: tipo de contenido desconocido")


def coerce_message(raw: object) -> ChatMessage:
    """Validate a single raw message into a ChatMessage."""
    if not isinstance(raw, dict):
        raise MessageValidationError("Mensaje inválido")

    role = _ROLES.get(raw.get("role")) if isinstance(raw.get("role"), str) else None
    if role is None:
        raise MessageValidationError("Mensaje inválido: rol desconocido")

    content = raw.get("content")
    if isinstance(content, list):
        if not content:
            raise MessageValidationError("Mensaje inválido: contenido vacío")
        return ChatMessage(role, PartsContent(tuple(coerce_part(part) for part in content)))
    return ChatMessage(role, TextContent(_coerce_text(content)))


def coerce_messages(raw: object) -> list[ChatMessage]:
    """Validate the request's ``messages`` list.

    Raises:
        MessageValidationError: On the first invalid message, or if the list
            is missing, empty or longer than MAX_MESSAGES.
    """
    if not isinstance(raw, list) or not raw or len(raw) > MAX_MESSAGES:
        raise MessageValidationError("messages inválido o demasiados elementos")
    return [coerce_message(item) for item in raw]


def coerce_system_prompt(value: object) -> str:
    """Return the sanitized system prompt, which is required."""
    if not isinstance(value, str):
        raise MessageValidationError("systemPrompt inválido o demasiado largo")
    sanitized = sanitize_prompt(value)
    if not sanitized or len(sanitized) > MAX_PROMPT_CHARS:
        raise MessageValidationError("systemPrompt inválido o demasiado largo")
    return sanitized


def coerce_character_prompt(value: object) -> ChatMessage | None:
    """Return the character prompt as a system message, or None when unset."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise MessageValidationError("characterPrompt inválido o demasiado largo")
    sanitized = sanitize_prompt(value)
    if len(sanitized) > MAX_PROMPT_CHARS:
        raise MessageValidationError("characterPrompt inválido o demasiado largo")
    if not sanitized.strip():
        return None
    return ChatMessage.text(Role.SYSTEM, sanitized)


def latest_user_message(messages: Sequence[ChatMessage]) -> ChatMessage:
    """Return the newest user message.

    Raises:
        MessageValidationError: If the conversation has no user message.
    """
    for message in reversed(messages):
        if message.role is Role.USER:
            return message
    raise MessageValidationError("No hay mensaje de usuario")


def assemble_context(
    system_prompt: str,
    character_message: ChatMessage | None,
    conversation: Sequence[ChatMessage],
    max_context: int = MAX_CONTEXT_MESSAGES,
) -> list[ChatMessage]:
    """Build the outbound message list.

    Leading system messages (system prompt, then the optional character
    prompt) are always kept; only the trailing conversation window is
    truncated to ``max_context`` entries.
    """
    leading = [ChatMessage.text(Role.SYSTEM, system_prompt)]
    if character_message is not None:
        leading.append(character_message)
    window = list(conversation[-max_context:]) if max_context > 0 else []
    return leading + window


__all__ = [
    "MAX_CONTEXT_MESSAGES",
    "MAX_IMAGE_BYTES",
    "MAX_MESSAGES",
    "MAX_MESSAGE_CHARS",
    "MAX_PROMPT_CHARS",
    "assemble_context",
    "coerce_character_prompt",
    "coerce_image_url",
    "coerce_message",
    "coerce_messages",
    "coerce_part",
    "coerce_system_prompt",
    "decoded_base64_size",
    "latest_user_message",
    "sanitize_prompt",
]
