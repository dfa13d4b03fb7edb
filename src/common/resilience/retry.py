"""
Retry with Exponential Backoff

Retries failed operations with configurable backoff strategy.
Only exceptions classified as transient are retried; everything else
propagates on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True  # Add randomness to prevent thundering herd
    retryable_exceptions: tuple[type[BaseException], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,  # Includes network errors
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """
        Backoff delay after the given (1-based) failed attempt.

        Jitter scales the capped delay by a factor in [0.5, 1.5).
        """
        delay = min(
            self.base_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay,
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    config: RetryConfig | None = None,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
    **kwargs,
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async function to retry
        *args: Positional arguments for func
        config: Retry configuration
        on_retry: Optional callback(attempt, error, delay) on each retry
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        Exception: Last exception after all retries exhausted, or the first
            non-retryable exception

    Example:
        async def fetch_state():
            return await client.post("/info", json={"type": "meta"})

        # Retry up to 3 times with exponential backoff
        result = await retry_with_backoff(fetch_state)

        # Custom config
        config = RetryConfig(max_attempts=5, base_delay=0.5)
        result = await retry_with_backoff(fetch_state, config=config)
    """
    config = config or RetryConfig()

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt == config.max_attempts:
                logger.warning(f"Retry exhausted after {attempt} attempts: {e!r}")
                raise

            delay = config.delay_for(attempt)

            logger.info(
                f"Retry attempt {attempt}/{config.max_attempts} failed: {e!r}. "
                f"Retrying in {delay:.2f}s"
            )

            if on_retry:
                on_retry(attempt, e, delay)

            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("Retry logic error")


async def with_retry(
    op: Callable[[], Awaitable[T]],
    max_attempts: int | None = None,
    base_delay: float | None = None,
    config: RetryConfig | None = None,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """
    Run a zero-argument operation under a retry policy.

    max_attempts and base_delay, when given, override the matching fields
    of config (or of the default RetryConfig).
    """
    policy = config or RetryConfig()
    overrides: dict[str, float] = {}
    if max_attempts is not None:
        overrides["max_attempts"] = max_attempts
    if base_delay is not None:
        overrides["base_delay"] = base_delay
    if overrides:
        policy = replace(policy, **overrides)
    return await retry_with_backoff(op, config=policy, on_retry=on_retry)
