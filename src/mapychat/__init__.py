"""MapyChat: content-screened streaming proxy for Grok chat completions."""

from mapychat.client import (
    ChatSession,
    ChatStreamConsumer,
    Conversation,
    ProxyRequestError,
    StreamCancelledError,
    StreamConsumerConfig,
    StreamRequest,
)
from mapychat.domain import (
    ChatMessage,
    ImageDetail,
    ImagePart,
    Model,
    PolicyViolationError,
    Role,
    TextPart,
    find_violation,
    guard_or_raise,
)

__version__ = "1.0.0"

__all__ = [
    "ChatMessage",
    "ChatSession",
    "ChatStreamConsumer",
    "Conversation",
    "ImageDetail",
    "ImagePart",
    "Model",
    "PolicyViolationError",
    "ProxyRequestError",
    "Role",
    "StreamCancelledError",
    "StreamConsumerConfig",
    "StreamRequest",
    "TextPart",
    "__version__",
    "find_violation",
    "guard_or_raise",
]
