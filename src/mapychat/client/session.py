"""Chat session state for clients of the proxy.

A ChatSession holds the conversation, screens input locally with the same
content guard the proxy uses, and streams replies into the conversation.

Submit Flow:
    1. Trim input; empty input (and no images) is ignored
    2. Guard check locally; violations raise the generic policy message
       before any request is made
    3. Optimistic append: user message plus an empty assistant message
    4. Stream deltas into the assistant message (whole-conversation replace)
    5. On failure, drop the assistant message if it is still empty
    6. Cancellation is not an error: partial output is kept
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from mapychat.client.stream_consumer import (
    ChatStreamConsumer,
    StreamCancelledError,
    StreamRequest,
)
from mapychat.domain.entities import (
    ChatMessage,
    ImagePart,
    PartsContent,
    Role,
    TextPart,
    text_segments,
)
from mapychat.domain.exceptions import GENERIC_POLICY_MESSAGE, PolicyViolationError
from mapychat.domain.guard import guard_or_raise
from mapychat.domain.value_objects import DEFAULT_TEMPERATURE

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")


def estimate_tokens(text: str) -> int:
    """Rough token count: the larger of chars/4 and words plus punctuation/4."""
    collapsed = _WHITESPACE.sub(" ", text).strip()
    if not collapsed:
        return 0
    words = len(collapsed.split(" "))
    punctuation = len(_PUNCTUATION.findall(collapsed))
    return max(math.ceil(len(collapsed) / 4), words + math.ceil(punctuation / 4))


@dataclass(slots=True, frozen=True)
class Conversation:
    """Immutable message history. Every update returns a new Conversation."""

    messages: tuple[ChatMessage, ...] = ()

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def last(self) -> ChatMessage | None:
        return self.messages[-1] if self.messages else None

    def append(self, *messages: ChatMessage) -> Conversation:
        return Conversation((*self.messages, *messages))

    def with_delta(self, delta: str) -> Conversation:
        """Append ``delta`` to the last message's text."""
        if not self.messages or not delta:
            return self
        return Conversation((*self.messages[:-1], self.messages[-1].with_appended_text(delta)))

    def without_empty_reply(self) -> Conversation:
        """Drop a trailing assistant message that received no text."""
        last = self.last
        if last is not None and last.role is Role.ASSISTANT and last.is_empty:
            return Conversation(self.messages[:-1])
        return self

    def approximate_tokens(self, *extra_texts: str) -> int:
        """Estimated tokens of every text segment plus ``extra_texts`` (prompts, draft)."""
        history = sum(
            estimate_tokens(segment)
            for message in self.messages
            for segment in text_segments(message)
        )
        return history + sum(estimate_tokens(text) for text in extra_texts)


class ChatSession:
    """Conversation bound to one model, prompt set and stream consumer."""

    __slots__ = (
        "_conversation",
        "_is_loading",
        "character_prompt",
        "consumer",
        "model",
        "response_level",
        "system_prompt",
        "temperature",
    )

    def __init__(
        self,
        consumer: ChatStreamConsumer,
        *,
        model: str,
        system_prompt: str,
        character_prompt: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        response_level: int | None = None,
        conversation: Conversation | None = None,
    ) -> None:
        self.consumer = consumer
        self.model = model
        self.system_prompt = system_prompt
        self.character_prompt = character_prompt
        self.temperature = temperature
        self.response_level = response_level
        self._conversation = conversation or Conversation()
        self._is_loading = False

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def approximate_tokens(self, draft: str = "") -> int:
        return self._conversation.approximate_tokens(
            self.system_prompt, self.character_prompt or "", draft
        )

    def _apply_delta(self, delta: str) -> None:
        self._conversation = self._conversation.with_delta(delta)

    def _build_user_message(self, text: str, images: Sequence[ImagePart]) -> ChatMessage:
        if not images:
            return ChatMessage.text(Role.USER, text)
        parts = (TextPart(text), *images) if text else tuple(images)
        return ChatMessage(Role.USER, PartsContent(parts))

    async def submit(self, text: str, images: Sequence[ImagePart] = ()) -> Conversation:
        """Send ``text`` (and optional images) and stream the reply.

        Returns:
            The conversation after the stream ends or is cancelled.

        Raises:
            PolicyViolationError: The text failed the local guard. The message
                is the rule-agnostic one; nothing was sent and the
                conversation is unchanged.
            ProxyRequestError | httpx.HTTPError: Streaming failed after
                retries; an empty reply placeholder has been removed.
        """
        cleaned = text.strip()
        if (not cleaned and not images) or self._is_loading:
            return self._conversation

        if cleaned:
            try:
                guard_or_raise(cleaned)
            except PolicyViolationError as exc:
                logger.info("chat_input_blocked: reason=%s", exc.reason)
                raise PolicyViolationError(exc.reason, GENERIC_POLICY_MESSAGE) from exc

        history = self._conversation.append(self._build_user_message(cleaned, images))
        self._conversation = history.append(ChatMessage.text(Role.ASSISTANT, ""))
        request = StreamRequest(
            model=self.model,
            system_prompt=self.system_prompt,
            messages=history.messages,
            temperature=self.temperature,
            character_prompt=self.character_prompt,
            response_level=self.response_level,
        )

        self._is_loading = True
        try:
            await self.consumer.stream_with_retries(request, self._apply_delta)
        except StreamCancelledError:
            logger.info("chat_stream_cancelled: messages=%d", len(self._conversation))
        except Exception:
            self._conversation = self._conversation.without_empty_reply()
            raise
        finally:
            self._is_loading = False
        return self._conversation

    def stop(self) -> None:
        """Stop the in-flight reply, keeping whatever text already arrived."""
        self.consumer.cancel()


__all__ = ["ChatSession", "Conversation", "estimate_tokens"]
