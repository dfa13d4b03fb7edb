"""
Resilience Patterns

Retry with exponential backoff and jitter for calls to upstream providers.
Deadlines are applied by callers with asyncio.wait_for.
"""

from src.common.resilience.retry import RetryConfig, retry_with_backoff, with_retry

__all__ = [
    "retry_with_backoff",
    "with_retry",
    "RetryConfig",
]
