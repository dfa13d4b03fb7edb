"""
Ledger Explorer Errors

Only InvalidInputError and the TotalFailureError family reach callers.
Provider errors are absorbed by retry and by partial-failure handling.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from .core.models import Domain


class ExplorerError(Exception):
    """Base class for ledger explorer errors."""


class ProviderError(ExplorerError):
    """A domain data provider could not answer."""

    def __init__(self, domain: Domain, message: str):
        self.domain = domain
        self.message = message
        super().__init__(f"[{domain.value}] {message}")


class TransientProviderError(ProviderError):
    """Timeout, connection reset, rate limit or 5xx. Safe to retry."""


class PermanentProviderError(ProviderError):
    """Malformed request, authorization or protocol error. Never retried."""


# What the retry policy treats as transient; a missed per-attempt deadline counts
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    TransientProviderError,
    TimeoutError,
    asyncio.TimeoutError,
)


class InvalidInputError(ExplorerError):
    """Input rejected before any network call was made."""

    def __init__(self, message: str, value: str | None = None):
        self.value = value
        super().__init__(message)


class TotalFailureError(ExplorerError):
    """Every requested domain failed."""

    def __init__(self, message: str, failures: Mapping[Domain, BaseException]):
        self.failures = dict(failures)
        detail = "; ".join(f"{d.value}: {e}" for d, e in self.failures.items())
        super().__init__(f"{message} ({detail})" if detail else message)


class AggregationFailedError(TotalFailureError):
    """No requested domain produced data, fresh or cached."""


class ResolutionFailedError(TotalFailureError):
    """Both domain probes failed, so absence cannot be confirmed."""


def classify_http_error(exc: BaseException, domain: Domain) -> ProviderError:
    """
    Map an httpx failure onto the transient/permanent split.

    Timeouts, transport errors, HTTP 429 and 5xx are transient. Other
    status errors and anything unrecognised are permanent.
    """
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return TransientProviderError(domain, f"timeout: {exc!r}")
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429 or status >= 500:
            return TransientProviderError(domain, f"HTTP {status}")
        return PermanentProviderError(domain, f"HTTP {status}")
    if isinstance(exc, httpx.TransportError):
        return TransientProviderError(domain, f"transport error: {exc!r}")
    return PermanentProviderError(domain, f"unexpected error: {exc!r}")
