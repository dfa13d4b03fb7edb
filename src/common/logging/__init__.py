"""
Common Logging Utilities

Provides log sanitization for credential redaction.
"""

from src.common.logging.sanitizer import (
    Redaction,
    SanitizingFilter,
    configure_sanitized_logging,
    redact,
    redact_url,
)

__all__ = [
    "Redaction",
    "SanitizingFilter",
    "configure_sanitized_logging",
    "redact",
    "redact_url",
]
