"""Errors parts package public surface.

Re-exports individual error taxonomy components for optional direct imports.
Prefer importing from `flux_client.base.errors` for the stable surface.
"""

from .error_code import ErrorCode, RetryClass, retry_class_for
from .api_error import ApiError
from .classification import classify_exception, classify_status, status_retry_class, to_api_error

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
