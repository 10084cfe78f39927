"""Fixed-window, per-client rate limiting.

Each client id gets a counter and a reset deadline. The first request after
the deadline starts a fresh window; nothing is smoothed or refilled in
between. State lives in process memory and is shared by every request the
process serves.

Design Principles:
    - Atomic: check-and-increment runs under a ``threading.Lock`` with no
      awaits inside, so it is safe from both the event loop and threadpool
      workers
    - Lazy eviction: expired entries are swept on each call, no timers
    - Injectable clock: tests pass a fake millisecond clock
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from mapychat.core.config import (
    DEFAULT_RATE_LIMIT_MAX_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_MS,
    RateLimitConfig,
    get_settings,
)

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

Clock = Callable[[], float]
"""Returns the current time in milliseconds."""


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(slots=True)
class RateEntry:
    """Request counter for one client in the current window."""

    count: int
    reset_at: float


@dataclass(slots=True, frozen=True)
class RateLimitAllowed:
    """Request admitted.

    Attributes:
        limit: Requests allowed per window.
        remaining: Requests left in the window after this one.
        reset_seconds: Whole seconds until the window resets (at least 1).
    """

    limit: int
    remaining: int
    reset_seconds: int


@dataclass(slots=True, frozen=True)
class RateLimitRejected:
    """Request rejected because the window is exhausted."""

    limit: int
    retry_after_seconds: int
    reset_seconds: int


RateLimitDecision = RateLimitAllowed | RateLimitRejected


def resolve_client_id(forwarded_for: str | None, remote_host: str | None) -> str:
    """Pick the id a request is counted under.

    Uses the first entry of ``X-Forwarded-For`` when present, else the socket
    peer, else the shared ``"unknown"`` bucket.
    """
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    if remote_host:
        return remote_host
    return UNKNOWN_CLIENT


class FixedWindowRateLimiter:
    """Process-wide fixed-window limiter keyed by client id."""

    __slots__ = ("_clock", "_entries", "_lock", "limit", "window_ms")

    def __init__(
        self,
        limit: int = DEFAULT_RATE_LIMIT_MAX_REQUESTS,
        window_ms: int = DEFAULT_RATE_LIMIT_WINDOW_MS,
        clock: Clock | None = None,
    ) -> None:
        self.limit = limit if limit > 0 else DEFAULT_RATE_LIMIT_MAX_REQUESTS
        self.window_ms = window_ms if window_ms > 0 else DEFAULT_RATE_LIMIT_WINDOW_MS
        self._clock = clock or _monotonic_ms
        self._entries: dict[str, RateEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RateLimitConfig, clock: Clock | None = None) -> FixedWindowRateLimiter:
        """Build a limiter from loaded settings."""
        return cls(limit=config.max_requests, window_ms=config.window_ms, clock=clock)

    def _seconds_until(self, reset_at: float, now: float) -> int:
        return max(1, math.ceil((reset_at - now) / 1000.0))

    def _sweep(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
        for key in expired:
            del self._entries[key]

    def admit(self, client_id: str) -> RateLimitDecision:
        """Count a request from ``client_id`` and decide whether it may proceed."""
        with self._lock:
            now = self._clock()
            self._sweep(now)

            entry = self._entries.get(client_id)
            if entry is None:
                reset_at = now + self.window_ms
                self._entries[client_id] = RateEntry(count=1, reset_at=reset_at)
                return RateLimitAllowed(
                    limit=self.limit,
                    remaining=self.limit - 1,
                    reset_seconds=self._seconds_until(reset_at, now),
                )

            reset_seconds = self._seconds_until(entry.reset_at, now)
            if entry.count >= self.limit:
                logger.info(
                    "rate_limited: client_id=%s count=%d retry_after=%d",
                    client_id,
                    entry.count,
                    reset_seconds,
                )
                return RateLimitRejected(
                    limit=self.limit,
                    retry_after_seconds=reset_seconds,
                    reset_seconds=reset_seconds,
                )

            entry.count += 1
            return RateLimitAllowed(
                limit=self.limit,
                remaining=self.limit - entry.count,
                reset_seconds=reset_seconds,
            )

    def tracked_clients(self) -> int:
        """Number of clients with a live window."""
        with self._lock:
            return len(self._entries)

    def reset(self) -> None:
        """Forget every client window."""
        with self._lock:
            self._entries.clear()


_rate_limiter: FixedWindowRateLimiter | None = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> FixedWindowRateLimiter:
    """Return the process-wide limiter, creating it from settings on first use."""
    global _rate_limiter
    with _rate_limiter_lock:
        if _rate_limiter is None:
            _rate_limiter = FixedWindowRateLimiter.from_config(get_settings().rate_limit)
        return _rate_limiter


def set_rate_limiter(limiter: FixedWindowRateLimiter | None) -> None:
    """Replace (or clear, with None) the process-wide limiter."""
    global _rate_limiter
    with _rate_limiter_lock:
        _rate_limiter = limiter


__all__ = [
    "UNKNOWN_CLIENT",
    "FixedWindowRateLimiter",
    "RateEntry",
    "RateLimitAllowed",
    "RateLimitDecision",
    "RateLimitRejected",
    "get_rate_limiter",
    "resolve_client_id",
    "set_rate_limiter",
]
