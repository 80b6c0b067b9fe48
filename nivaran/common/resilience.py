"""
Resilience patterns for provider calls.

Implements:
- Retry with exponential backoff
- Timeout handling

Every network provider in a channel chain runs through both: one hanging or
flaky provider must not stall the escalation.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from nivaran.common.exceptions import ProviderTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# RETRY WITH EXPONENTIAL BACKOFF
# ============================================================================


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
) -> float:
    """
    Delay before retry number `attempt` (0-based), with ±10% jitter.

    Backoff formula: delay = min(base_delay * (exponential_base ** attempt), max_delay)
    """
    if base_delay <= 0:
        return 0.0
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    jitter = delay * 0.1 * (2 * random.random() - 1)
    return max(0.0, delay + jitter)


def backoff_delay_ceiling(
    attempt: int,
    base_delay: float,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
) -> float:
    """Upper bound of `backoff_delay` for the same attempt (jitter included)."""
    if base_delay <= 0:
        return 0.0
    return min(base_delay * (exponential_base ** attempt), max_delay) * 1.1


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    *,
    name: str,
    max_retries: int = 1,
    base_delay: float = 0.5,
    max_delay: float = 30.0,
    retryable_exceptions: tuple = (Exception,),
) -> T:
    """
    Await `func()` up to `max_retries + 1` times.

    Raises the last error unchanged once attempts run out, so callers can
    record the provider's own failure detail.
    """
    last_exception: Optional[Exception] = None

    max_retries = max(0, max_retries)
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except retryable_exceptions as e:
            last_exception = e

            if attempt < max_retries:
                delay = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "retry_attempt",
                    target=name,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=round(delay, 2),
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                )
                if delay:
                    await asyncio.sleep(delay)
            else:
                logger.warning(
                    "retry_exhausted",
                    target=name,
                    attempts=max_retries + 1,
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                )

    raise last_exception


# ============================================================================
# TIMEOUT
# ============================================================================


async def call_with_timeout(
    awaitable: Awaitable[T],
    *,
    name: str,
    timeout_seconds: float,
) -> T:
    """Await with a deadline; raise ProviderTimeoutError when it passes."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(
            "operation_timeout",
            target=name,
            timeout_seconds=timeout_seconds,
        )
        raise ProviderTimeoutError(name, timeout_seconds) from None


