"""
Tests for provider call resilience.

Covers:
- Exponential backoff with jitter and a ceiling
- Retry limit and error propagation
- Timeouts surfaced as ProviderTimeoutError
"""

import asyncio

import pytest

from nivaran.common.exceptions import ProviderError, ProviderTimeoutError
from nivaran.common.resilience import (
    backoff_delay,
    backoff_delay_ceiling,
    call_with_retry,
    call_with_timeout,
)


class Flaky:
    def __init__(self, failures: int, error: Exception = None):
        self.failures = failures
        self.error = error or ProviderError("textbelt", "quota exceeded")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "sent"


# ── Backoff ────────────────────────────────────────────────────────────


def test_backoff_grows_exponentially_within_jitter():
    for attempt, expected in [(0, 1.0), (1, 2.0), (2, 4.0)]:
        delay = backoff_delay(attempt, base_delay=1.0)
        assert expected * 0.9 <= delay <= expected * 1.1


def test_backoff_is_capped():
    assert backoff_delay(10, base_delay=1.0, max_delay=5.0) <= 5.5


def test_zero_base_delay_means_no_wait():
    assert backoff_delay(3, base_delay=0) == 0.0


# ── Retry ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retry_recovers():
    func = Flaky(failures=1)
    result = await call_with_retry(func, name="textbelt", max_retries=1, base_delay=0)
    assert result == "sent"
    assert func.calls == 2


@pytest.mark.asyncio
async def test_retry_exhausted_raises_last_error():
    func = Flaky(failures=5)
    with pytest.raises(ProviderError, match="quota exceeded"):
        await call_with_retry(func, name="textbelt", max_retries=2, base_delay=0)
    assert func.calls == 3


@pytest.mark.asyncio
async def test_no_retries_calls_once():
    func = Flaky(failures=1)
    with pytest.raises(ProviderError):
        await call_with_retry(func, name="mailto", max_retries=0)
    assert func.calls == 1


@pytest.mark.asyncio
async def test_non_retryable_exception_propagates_immediately():
    func = Flaky(failures=1, error=ValueError("bad payload"))
    with pytest.raises(ValueError):
        await call_with_retry(
            func,
            name="twilio",
            max_retries=3,
            base_delay=0,
            retryable_exceptions=(ProviderError,),
        )
    assert func.calls == 1


# ── Timeout ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_timeout_raises_provider_timeout():
    with pytest.raises(ProviderTimeoutError) as exc_info:
        await call_with_timeout(asyncio.sleep(1), name="callmebot", timeout_seconds=0.05)
    assert "callmebot" in str(exc_info.value)
    assert "timed out" in str(exc_info.value)


@pytest.mark.asyncio
async def test_timeout_passes_result_through():
    async def quick():
        return "HTTP 200"

    assert await call_with_timeout(quick(), name="callmebot", timeout_seconds=1) == "HTTP 200"


def test_backoff_ceiling_bounds_jittered_delay():
    for attempt in range(6):
        ceiling = backoff_delay_ceiling(attempt, base_delay=0.5, max_delay=5.0)
        assert backoff_delay(attempt, base_delay=0.5, max_delay=5.0) <= ceiling
    assert backoff_delay_ceiling(3, base_delay=0) == 0.0
