"""
Structured API error exception type.

Wraps transport failures, HTTP error responses and stream decoding problems
with a normalized `ErrorCode` so retry logic, logging and callers can branch on
one field instead of inspecting library-specific exceptions.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Optional, Tuple

from .error_code import ErrorCode, RetryClass, retry_class_for

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..http.rate_limit_headers import RateLimitInfo
    from ..resilience.attempts import Attempt


@dataclass(eq=False)
class ApiError(Exception):
    """Represents a classified failure of one logical API call.

    Attributes:
        code: Normalized :class:`ErrorCode` classification for the failure.
        message: Human-readable error message suitable for logging.
        status: HTTP status code when the failure came from a response.
        error_type: Error ``type`` reported by the remote service, if any.
        retry_after: Server-provided wait hint in seconds (``Retry-After``).
        rate_limit: Rate-limit headers of the failed response, when it had any.
        retryable: Overrides the code-derived retry class when set. Used to
            pin mid-stream failures as non-retryable.
        attempts: Attempt history of the logical call, attached by the
            retry executor before the error propagates to the caller.
        raw: Optional original exception for diagnostics.
    """

    code: ErrorCode
    message: str
    status: Optional[int] = None
    error_type: Optional[str] = None
    retry_after: Optional[float] = None
    rate_limit: Optional["RateLimitInfo"] = None
    retryable: Optional[bool] = None
    attempts: Tuple["Attempt", ...] = field(default_factory=tuple)
    raw: Optional[Any] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:  # pragma: no cover - trivial
        status = f" [{self.status}]" if self.status is not None else ""
        kind = f" ({self.error_type})" if self.error_type else ""
        return f"{self.code.value}{status}: {self.message}{kind}"

    @property
    def retry_class(self) -> RetryClass:
        if self.retryable is True:
            return RetryClass.RETRYABLE
        if self.retryable is False:
            return RetryClass.NON_RETRYABLE
        return retry_class_for(self.code)

    @property
    def is_retryable(self) -> bool:
        """Whether another attempt may succeed. ``UNKNOWN`` fails closed."""
        return self.retry_class is RetryClass.RETRYABLE

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def with_context(self, context: str) -> "ApiError":
        """Return a copy whose message is prefixed with ``context``."""
        return replace(self, message=f"{context}: {self.message}")

    def with_attempts(self, attempts: Tuple["Attempt", ...]) -> "ApiError":
        """Return a copy carrying the attempt history of the logical call."""
        clone = replace(self, attempts=tuple(attempts))
        clone.__cause__ = self.__cause__
        return clone


__all__ = ["ApiError"]
