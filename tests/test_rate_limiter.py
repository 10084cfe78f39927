"""Tests for the fixed-window rate limiter."""

from __future__ import annotations

import threading

import pytest

from mapychat.core.config import RateLimitConfig
from mapychat.core.rate_limiter import (
    UNKNOWN_CLIENT,
    FixedWindowRateLimiter,
    RateLimitAllowed,
    RateLimitRejected,
    get_rate_limiter,
    resolve_client_id,
    set_rate_limiter,
)


class TestResolveClientId:
    """Tests for client id resolution."""

    def test_first_forwarded_entry_wins(self):
        assert resolve_client_id("203.0.113.5, 10.0.0.1", "127.0.0.1") == "203.0.113.5"

    def test_falls_back_to_peer(self):
        assert resolve_client_id(None, "127.0.0.1") == "127.0.0.1"
        assert resolve_client_id(" , 10.0.0.1", "127.0.0.1") == "127.0.0.1"

    def test_unknown_bucket(self):
        assert resolve_client_id(None, None) == UNKNOWN_CLIENT


class TestFixedWindowRateLimiter:
    """Behavioral tests driven by a fake millisecond clock."""

    def test_first_request_opens_window(self, fake_clock):
        limiter = FixedWindowRateLimiter(limit=10, window_ms=60_000, clock=fake_clock)
        decision = limiter.admit("a")
        assert decision == RateLimitAllowed(limit=10, remaining=9, reset_seconds=60)

    def test_rejects_after_limit(self, fake_clock):
        limiter = FixedWindowRateLimiter(limit=3, window_ms=60_000, clock=fake_clock)
        remaining = [limiter.admit("a").remaining for _ in range(3)]
        assert remaining == [2, 1, 0]

        fake_clock.advance(15_500)
        decision = limiter.admit("a")
        assert isinstance(decision, RateLimitRejected)
        assert decision.retry_after_seconds == 45
        assert decision.limit == 3

    def test_window_resets_after_deadline(self, fake_clock):
        limiter = FixedWindowRateLimiter(limit=1, window_ms=1_000, clock=fake_clock)
        assert isinstance(limiter.admit("a"), RateLimitAllowed)
        assert isinstance(limiter.admit("a"), RateLimitRejected)

        fake_clock.advance(1_000)
        decision = limiter.admit("a")
        assert isinstance(decision, RateLimitAllowed)
        assert decision.remaining == 0

    def test_clients_are_independent(self, fake_clock):
        limiter = FixedWindowRateLimiter(limit=1, window_ms=60_000, clock=fake_clock)
        limiter.admit("a")
        assert isinstance(limiter.admit("b"), RateLimitAllowed)
        assert isinstance(limiter.admit("a"), RateLimitRejected)

    def test_reset_seconds_is_at_least_one(self, fake_clock):
        limiter = FixedWindowRateLimiter(limit=1, window_ms=60_000, clock=fake_clock)
        limiter.admit("a")
        fake_clock.advance(59_999)
        decision = limiter.admit("a")
        assert isinstance(decision, RateLimitRejected)
        assert decision.retry_after_seconds == 1

    def test_expired_entries_are_swept(self, fake_clock):
        limiter = FixedWindowRateLimiter(limit=5, window_ms=1_000, clock=fake_clock)
        for client in ("a", "b", "c"):
            limiter.admit(client)
        assert limiter.tracked_clients() == 3

        fake_clock.advance(1_000)
        limiter.admit("d")
        assert limiter.tracked_clients() == 1

    def test_rejected_requests_do_not_extend_window(self, fake_clock):
        limiter = FixedWindowRateLimiter(limit=1, window_ms=10_000, clock=fake_clock)
        limiter.admit("a")
        for _ in range(5):
            fake_clock.advance(1_000)
            limiter.admit("a")
        fake_clock.advance(5_000)
        assert isinstance(limiter.admit("a"), RateLimitAllowed)

    @pytest.mark.parametrize(("limit", "window_ms"), [(0, 60_000), (10, -5)])
    def test_non_positive_values_use_defaults(self, limit, window_ms):
        limiter = FixedWindowRateLimiter(limit=limit, window_ms=window_ms)
        assert limiter.limit == 10
        assert limiter.window_ms == 60_000

    def test_concurrent_admits_never_exceed_limit(self):
        limiter = FixedWindowRateLimiter(limit=50, window_ms=60_000)
        results: list[bool] = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                allowed = isinstance(limiter.admit("shared"), RateLimitAllowed)
                with lock:
                    results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 50
        assert len(results) == 200

    def test_reset_forgets_clients(self, fake_clock):
        limiter = FixedWindowRateLimiter(limit=1, window_ms=60_000, clock=fake_clock)
        limiter.admit("a")
        limiter.reset()
        assert isinstance(limiter.admit("a"), RateLimitAllowed)


class TestProcessLimiter:
    """Tests for the process-wide limiter accessor."""

    def test_built_from_settings(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "3")
        monkeypatch.setenv("RATE_LIMIT_WINDOW_MS", "5000")
        limiter = get_rate_limiter()
        assert (limiter.limit, limiter.window_ms) == (3, 5000)
        assert get_rate_limiter() is limiter

    def test_set_rate_limiter_replaces_instance(self):
        custom = FixedWindowRateLimiter(limit=2)
        set_rate_limiter(custom)
        assert get_rate_limiter() is custom

    def test_from_config(self, fake_clock):
        limiter = FixedWindowRateLimiter.from_config(
            RateLimitConfig(window_ms=2_000, max_requests=4), clock=fake_clock
        )
        assert limiter.admit("a") == RateLimitAllowed(limit=4, remaining=3, reset_seconds=2)
