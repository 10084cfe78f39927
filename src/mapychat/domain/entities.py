"""Domain entities for the MapyChat proxy.

This module defines pure domain models for chat conversations with no
framework or infrastructure dependencies. Message content is modelled as an
explicit sum type so every consumer can ``match`` over it exhaustively.

Design Principles:
    - Immutability: All entities are frozen dataclasses (slots=True)
    - Validation: Invariants enforced in __post_init__ methods
    - No I/O: Entities contain no file/network operations
    - Framework-agnostic: No FastAPI, Pydantic, or other framework deps

Key Entities:
    - Model: Allowed upstream model identifiers
    - Role / ImageDetail: Enumerations for message roles and image detail
    - TextPart / ImagePart: Parts of a multimodal message
    - TextContent / PartsContent: The two shapes message content can take
    - ChatMessage: Role plus content, replaced wholesale when text is appended
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Model(StrEnum):
    """Upstream models the proxy is allowed to call."""

    GROK_4_FAST_REASONING = "grok-4-fast-reasoning"
    GROK_4_FAST_NON_REASONING = "grok-4-fast-non-reasoning"


ALLOWED_MODELS = frozenset(model.value for model in Model)
"""String values accepted in the ``model`` field of a proxy request."""


class Role(StrEnum):
    """Chat message roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ImageDetail(StrEnum):
    """Image detail hint forwarded to the vision model."""

    AUTO = "auto"
    LOW = "low"
    HIGH = "high"

    @classmethod
    def parse(cls, value: object) -> ImageDetail:
        """Return the matching detail, falling back to AUTO for anything else."""
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                return cls.AUTO
        return cls.AUTO


@dataclass(slots=True, frozen=True)
class TextPart:
    """Text segment of a multipart message."""

    text: str

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("Text part cannot be empty")


@dataclass(slots=True, frozen=True)
class ImagePart:
    """Image segment of a multipart message.

    Attributes:
        url: ``http(s)`` URL or ``data:image/{png|jpeg};base64,...`` URL.
        detail: Detail hint, AUTO unless the caller asked for LOW or HIGH.
    """

    url: str
    detail: ImageDetail = ImageDetail.AUTO

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("Image URL cannot be empty")


MessagePart = TextPart | ImagePart


@dataclass(slots=True, frozen=True)
class TextContent:
    """Plain-text message content."""

    text: str


@dataclass(slots=True, frozen=True)
class PartsContent:
    """Ordered multipart message content. Never empty."""

    parts: tuple[MessagePart, ...]

    def __post_init__(self) -> None:
        if not self.parts:
            raise ValueError("Multipart content must contain at least one part")


MessageContent = TextContent | PartsContent


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """A single conversation message.

    Messages are immutable. Streaming code calls ``with_appended_text`` and
    replaces the message (and the list that holds it) instead of mutating it.

    Attributes:
        role: Message role, fixed at creation.
        content: TextContent or PartsContent.
    """

    role: Role
    content: MessageContent

    @classmethod
    def text(cls, role: Role, text: str) -> ChatMessage:
        """Build a plain-text message."""
        return cls(role=role, content=TextContent(text))

    def with_appended_text(self, delta: str) -> ChatMessage:
        """Return a copy of this message with ``delta`` appended to its text.

        Multipart content gets the delta appended to its trailing text part,
        or a new text part when the last part is an image.
        """
        if not delta:
            return self
        match self.content:
            case TextContent(text=text):
                return ChatMessage(self.role, TextContent(text + delta))
            case PartsContent(parts=parts):
                match parts[-1]:
                    case TextPart(text=text):
                        new_parts = (*parts[:-1], TextPart(text + delta))
                    case ImagePart():
                        new_parts = (*parts, TextPart(delta))
                return ChatMessage(self.role, PartsContent(new_parts))

    @property
    def is_empty(self) -> bool:
        """True for a plain-text message with no text yet."""
        match self.content:
            case TextContent(text=text):
                return not text
            case PartsContent():
                return False


def text_segments(message: ChatMessage) -> list[str]:
    """Return every text segment of ``message`` in order."""
    match message.content:
        case TextContent(text=text):
            return [text] if text else []
        case PartsContent(parts=parts):
            return [part.text for part in parts if isinstance(part, TextPart)]


__all__ = [
    "ALLOWED_MODELS",
    "ChatMessage",
    "ImageDetail",
    "ImagePart",
    "MessageContent",
    "MessagePart",
    "Model",
    "PartsContent",
    "Role",
    "TextContent",
    "TextPart",
    "text_segments",
]
