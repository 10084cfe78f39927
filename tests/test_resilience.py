"""
Tests for the linear backoff retry policy.
"""

from __future__ import annotations

import asyncio

import pytest

from mapychat.core.resilience import RetryConfig, linear_backoff_retrying


class _Fatal(Exception):
    pass


async def _run(retrying, func):
    async for attempt in retrying:
        with attempt:
            await func()


class TestLinearBackoffRetrying:
    """Behavioral tests for linear_backoff_retrying."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        call_count = []
        sleeps: list[float] = []

        async def record_sleep(seconds: float) -> None:
            sleeps.append(seconds)

        async def flaky():
            call_count.append(1)
            if len(call_count) < 3:
                raise ConnectionError("temporary")

        await _run(linear_backoff_retrying(RetryConfig(max_retries=2, initial_delay=1.5), sleep=record_sleep), flaky)

        assert len(call_count) == 3
        assert sleeps == [1.5, 3.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_exhausted(self):
        call_count = []

        async def no_sleep(seconds: float) -> None:
            return None

        async def failing():
            call_count.append(1)
            raise ConnectionError(f"attempt {len(call_count)}")

        with pytest.raises(ConnectionError, match="attempt 3"):
            await _run(linear_backoff_retrying(RetryConfig(max_retries=2), sleep=no_sleep), failing)
        assert len(call_count) == 3

    @pytest.mark.asyncio
    async def test_zero_retries_is_single_attempt(self):
        call_count = []

        async def failing():
            call_count.append(1)
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await _run(linear_backoff_retrying(RetryConfig(max_retries=0)), failing)
        assert len(call_count) == 1

    @pytest.mark.asyncio
    async def test_never_retry_types_fail_fast(self):
        call_count = []

        async def fatal():
            call_count.append(1)
            raise _Fatal()

        with pytest.raises(_Fatal):
            await _run(linear_backoff_retrying(never_retry=(_Fatal,)), fatal)
        assert len(call_count) == 1

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        call_count = []

        async def cancelled():
            call_count.append(1)
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await _run(linear_backoff_retrying(), cancelled)
        assert len(call_count) == 1
