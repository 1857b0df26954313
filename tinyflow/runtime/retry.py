"""
Retry policies with exponential backoff.

For retrying work outside the node retry loop (which always uses the fixed
`RetryConfig.retry_delay_ms`), e.g. a function that calls a flaky service.

Delay for attempt n (1-indexed) is
    min(initial_delay_ms * backoff_multiplier ** (n - 1), max_delay_ms)
optionally spread by +/-25% jitter.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.25

_RETRYABLE_MARKERS = ("network", "timeout", "econnreset", "enotfound", "http 5")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2
    jitter: bool = True


@dataclass
class RetryContext:
    """Passed to `on_retry` before each wait."""

    attempt: int  # The attempt that just failed, 1-indexed
    last_error: str | None
    total_delay_ms: float


DEFAULT_RETRY_POLICY = RetryPolicy()


def create_retry_policy(**overrides: Any) -> RetryPolicy:
    """DEFAULT_RETRY_POLICY with `overrides` applied."""
    return replace(DEFAULT_RETRY_POLICY, **overrides)


RETRY_POLICIES: dict[str, RetryPolicy] = {
    "none": create_retry_policy(max_attempts=1),
    "fast": create_retry_policy(max_attempts=3, initial_delay_ms=1000, max_delay_ms=5000),
    "standard": DEFAULT_RETRY_POLICY,
    "aggressive": create_retry_policy(max_attempts=5, initial_delay_ms=2000, max_delay_ms=60000),
    # Rate-limited APIs
    "patient": create_retry_policy(
        max_attempts=10, initial_delay_ms=5000, max_delay_ms=120000, backoff_multiplier=1.5
    ),
}


def calculate_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay in milliseconds before retrying after `attempt` failed."""
    base = min(
        policy.initial_delay_ms * policy.backoff_multiplier ** (attempt - 1),
        policy.max_delay_ms,
    )
    if policy.jitter:
        return base + random.uniform(-1, 1) * base * JITTER_RATIO
    return base


def is_retryable_error(error: BaseException) -> bool:
    """Network failures, timeouts and HTTP 5xx are worth another try."""
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    on_retry: Callable[[RetryContext], None] | None = None,
) -> T:
    """
    Await `fn()` until it succeeds or `policy.max_attempts` is reached.

    The last exception is re-raised once attempts are exhausted.

    Example:
        data = await with_retry(lambda: fetch(url), RETRY_POLICIES["fast"])
    """
    attempts = max(1, policy.max_attempts)
    total_delay_ms = 0.0
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as e:
            if attempt >= attempts:
                raise
            delay_ms = calculate_delay(policy, attempt)
            total_delay_ms += delay_ms
            if on_retry is not None:
                on_retry(RetryContext(attempt, str(e) or type(e).__name__, total_delay_ms))
            logger.info(f"   ↻ Retrying ({attempt}/{attempts}) in {delay_ms:.0f}ms: {e}")
            await asyncio.sleep(delay_ms / 1000)
    # attempts is always >= 1
    raise RuntimeError("Retry failed")
