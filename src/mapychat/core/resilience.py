"""Retry policy for the MapyChat streaming client.

Builds the tenacity ``AsyncRetrying`` loop the client iterates explicitly
(``async for attempt in ...``). Backoff is linear: the n-th retry waits
``initial_delay * n``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

logger = logging.getLogger(__name__)

AsyncSleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class RetryConfig:
    """Retry settings.

    Attributes:
        max_retries: Retries after the first attempt (total attempts is
            ``max_retries + 1``).
        initial_delay: Delay before the first retry, in seconds; each later
            retry adds the same amount again.
    """

    max_retries: int = 2
    initial_delay: float = 1.0


def _retry_unless(never_retry: tuple[type[BaseException], ...]) -> Callable[[BaseException], bool]:
    blocked = (asyncio.CancelledError, *never_retry)

    def predicate(exc: BaseException) -> bool:
        return not isinstance(exc, blocked)

    return predicate


def linear_backoff_retrying(
    config: RetryConfig | None = None,
    *,
    sleep: AsyncSleep | None = None,
    never_retry: tuple[type[BaseException], ...] = (),
) -> AsyncRetrying:
    """Return an ``AsyncRetrying`` with linear backoff.

    Every exception except cancellation and ``never_retry`` types is
    retried. Once attempts are exhausted the last exception is re-raised
    unchanged.

    Args:
        config: Retry settings. None uses RetryConfig().
        sleep: Awaitable sleep used between attempts. Callers pass a sleep
            that can be woken early to support cancellation.
        never_retry: Exception types re-raised on the first occurrence.
    """
    cfg = config or RetryConfig()
    delay = max(cfg.initial_delay, 0.0)
    return AsyncRetrying(
        stop=stop_after_attempt(max(cfg.max_retries, 0) + 1),
        wait=wait_incrementing(start=delay, increment=delay),
        retry=retry_if_exception(_retry_unless(never_retry)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep or asyncio.sleep,
        reraise=True,
    )


__all__ = ["AsyncSleep", "RetryConfig", "linear_backoff_retrying"]
