"""
Normalized client error codes (taxonomy).

Defines the `ErrorCode` enumeration used by the transport, retry and stream
decoding layers, plus the `RetryClass` each code belongs to. Values are
lowercase snake_case and are considered a stable public contract for logging.
"""
from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Enumerated normalized error codes representing failure categories."""

    TRANSPORT = "transport"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    AUTH = "auth"
    DECODE = "decode"
    ABRUPT_TERMINATION = "abrupt_termination"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class RetryClass(str, Enum):
    """Whether a failure category may be recovered by another attempt."""

    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"
    UNKNOWN = "unknown"


_RETRY_CLASS = {
    ErrorCode.TRANSPORT: RetryClass.RETRYABLE,
    ErrorCode.RATE_LIMIT: RetryClass.RETRYABLE,
    ErrorCode.SERVER_ERROR: RetryClass.RETRYABLE,
    ErrorCode.CLIENT_ERROR: RetryClass.NON_RETRYABLE,
    ErrorCode.AUTH: RetryClass.NON_RETRYABLE,
    ErrorCode.DECODE: RetryClass.NON_RETRYABLE,
    ErrorCode.ABRUPT_TERMINATION: RetryClass.NON_RETRYABLE,
    ErrorCode.CANCELLED: RetryClass.NON_RETRYABLE,
    ErrorCode.UNKNOWN: RetryClass.UNKNOWN,
}


def retry_class_for(code: ErrorCode) -> RetryClass:
    """Return the retry class of ``code`` (unmapped codes are ``UNKNOWN``)."""
    return _RETRY_CLASS.get(code, RetryClass.UNKNOWN)


__all__ = ["ErrorCode", "RetryClass", "retry_class_for"]
