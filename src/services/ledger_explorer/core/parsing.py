"""Helpers for upstream payloads, which encode numbers as strings."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def as_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def ms_to_datetime(value: Any) -> datetime | None:
    """Millisecond epoch to an aware UTC datetime."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def max_or_none(values: list[int]) -> int | None:
    return max(values) if values else None
