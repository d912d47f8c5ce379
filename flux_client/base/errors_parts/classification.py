"""
Error classification helpers mapping statuses and exceptions to ErrorCode values.

Implements the HTTP status table consumed by the retry executor, transport
exception mapping for ``httpx`` failures, and a status extraction helper that
tolerates the different attribute shapes raised by HTTP libraries.
"""
from __future__ import annotations

import asyncio
from typing import Dict, Optional

import httpx

from .api_error import ApiError
from .error_code import ErrorCode, RetryClass, retry_class_for


def _extract_status(exc: Exception) -> Optional[int]:
    """Attempt to extract an HTTP status code from an exception.

    Supported attribute shapes (checked in order):
    - ``exc.status_code``
    - ``exc.status``
    - ``exc.response.status_code``
    Returns ``None`` if no valid status can be found.
    """
    for attr in ("status_code", "status"):
        val = getattr(exc, attr, None)
        if isinstance(val, int) and 100 <= val < 600:
            return val
    resp = getattr(exc, "response", None)
    if resp is not None:
        sc = getattr(resp, "status_code", None)
        if isinstance(sc, int) and 100 <= sc < 600:
            return sc
    return None


# Statuses with a dedicated code; everything else falls back to its class.
_HTTP_STATUS_MAP: Dict[int, ErrorCode] = {
    401: ErrorCode.AUTH,
    403: ErrorCode.AUTH,
    408: ErrorCode.TRANSPORT,
    429: ErrorCode.RATE_LIMIT,
}


def classify_status(status: int) -> Optional[ErrorCode]:
    """Map an HTTP status to an :class:`ErrorCode`.

    Returns ``None`` for 1xx-3xx statuses, which are not failures.
    """
    if status in _HTTP_STATUS_MAP:
        return _HTTP_STATUS_MAP[status]
    if 500 <= status < 600:
        return ErrorCode.SERVER_ERROR
    if 400 <= status < 500:
        return ErrorCode.CLIENT_ERROR
    if 100 <= status < 400:
        return None
    return ErrorCode.UNKNOWN


def status_retry_class(status: int) -> RetryClass:
    """Classification table entry for ``status`` (success maps to NON_RETRYABLE)."""
    code = classify_status(status)
    if code is None:
        return RetryClass.NON_RETRYABLE
    return retry_class_for(code)


def classify_exception(exc: BaseException) -> ErrorCode:
    """Classify an exception into a normalized :class:`ErrorCode`.

    Precedence:
        1. ApiError passthrough.
        2. Transport failures (httpx transport errors, timeouts, OSError).
        3. HTTP status mapping.
        4. ``UNKNOWN`` fallback.
    """
    if isinstance(exc, ApiError):
        return exc.code
    if isinstance(exc, (httpx.TransportError, TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return ErrorCode.TRANSPORT
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_status(exc.response.status_code) or ErrorCode.UNKNOWN
    if isinstance(exc, Exception):
        status = _extract_status(exc)
        if status is not None:
            return classify_status(status) or ErrorCode.UNKNOWN
    return ErrorCode.UNKNOWN


def to_api_error(exc: BaseException, *, context: Optional[str] = None) -> ApiError:
    """Wrap ``exc`` in an :class:`ApiError`, passing existing ones through."""
    if isinstance(exc, ApiError):
        return exc.with_context(context) if context else exc
    code = classify_exception(exc)
    message = str(exc) or type(exc).__name__
    if context:
        message = f"{context}: {message}"
    status = _extract_status(exc) if isinstance(exc, Exception) else None
    return ApiError(code=code, message=message, status=status, raw=exc)


__all__ = [
    "classify_status",
    "classify_exception",
    "status_retry_class",
    "to_api_error",
    "_extract_status",
    "_HTTP_STATUS_MAP",
]
