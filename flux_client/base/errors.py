"""Unified client error taxonomy public surface.

This module re-exports the one-class-per-file implementations under
``flux_client.base.errors_parts`` to maintain a stable import path.
"""

from .errors_parts.error_code import ErrorCode, RetryClass, retry_class_for
from .errors_parts.api_error import ApiError
from .errors_parts.classification import (
    classify_exception,
    classify_status,
    status_retry_class,
    to_api_error,
)

__all__ = [
    "ErrorCode",
    "RetryClass",
    "retry_class_for",
    "ApiError",
    "classify_exception",
    "classify_status",
    "status_retry_class",
    "to_api_error",
]
