"""HTTP clients: the upstream provider client used by the proxy, and the
streaming consumer and chat session used by applications talking to it."""

from mapychat.client.session import ChatSession, Conversation, estimate_tokens
from mapychat.client.stream_consumer import (
    ChatStreamConsumer,
    ProxyRequestError,
    StreamCancelledError,
    StreamConsumerConfig,
    StreamRequest,
)
from mapychat.client.upstream import UpstreamClient, UpstreamClientConfig, UpstreamStatusError

__all__ = [
    "ChatSession",
    "ChatStreamConsumer",
    "Conversation",
    "ProxyRequestError",
    "StreamCancelledError",
    "StreamConsumerConfig",
    "StreamRequest",
    "UpstreamClient",
    "UpstreamClientConfig",
    "UpstreamStatusError",
    "estimate_tokens",
]
