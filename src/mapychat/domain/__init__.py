"""Domain layer for the MapyChat proxy.

This package contains pure domain models, validation rules and the content
guard, with no dependencies on frameworks, infrastructure, or external
libraries.

The domain layer is the innermost layer and has no dependencies on outer layers.
"""

from mapychat.domain.coercion import (
    assemble_context,
    coerce_character_prompt,
    coerce_messages,
    coerce_system_prompt,
    latest_user_message,
    sanitize_prompt,
)
from mapychat.domain.entities import (
    ALLOWED_MODELS,
    ChatMessage,
    ImageDetail,
    ImagePart,
    Model,
    PartsContent,
    Role,
    TextContent,
    TextPart,
    text_segments,
)
from mapychat.domain.exceptions import (
    DomainError,
    InvalidModelError,
    MessageValidationError,
    PolicyViolationError,
)
from mapychat.domain.guard import find_violation, guard_or_raise, guard_segments
from mapychat.domain.normalizer import normalize_text
from mapychat.domain.value_objects import TokenBudget, clamp_temperature, tokens_for_level

__all__ = [
    "ALLOWED_MODELS",
    "ChatMessage",
    "DomainError",
    "ImageDetail",
    "ImagePart",
    "InvalidModelError",
    "MessageValidationError",
    "Model",
    "PartsContent",
    "PolicyViolationError",
    "Role",
    "TextContent",
    "TextPart",
    "TokenBudget",
    "assemble_context",
    "clamp_temperature",
    "coerce_character_prompt",
    "coerce_messages",
    "coerce_system_prompt",
    "find_violation",
    "guard_or_raise",
    "guard_segments",
    "latest_user_message",
    "normalize_text",
    "sanitize_prompt",
    "text_segments",
    "tokens_for_level",
]
