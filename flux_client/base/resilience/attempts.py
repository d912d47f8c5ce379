"""Attempt history and retry decision records.

One logical call produces a tuple of :class:`Attempt` records, one per
physical dispatch. The backoff policy turns the latest failed attempt into a
:class:`Retry` or :class:`GiveUp` decision; neither is persisted.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, Tuple, TypeVar, Union

from ..errors import ApiError

T = TypeVar("T")


@dataclass(frozen=True)
class Attempt:
    """Outcome of one physical dispatch.

    Attributes:
        sequence: 1-based position within the logical call.
        outcome: The response on success, otherwise the classified error.
        elapsed: Seconds spent in dispatch (rate-limit waits excluded).
    """

    sequence: int
    outcome: Any
    elapsed: float

    @property
    def succeeded(self) -> bool:
        return not isinstance(self.outcome, ApiError)

    @property
    def error(self) -> Optional[ApiError]:
        return self.outcome if isinstance(self.outcome, ApiError) else None


@dataclass(frozen=True)
class Retry:
    """Dispatch again after ``after`` seconds."""

    after: float


@dataclass(frozen=True)
class GiveUp:
    """Stop and surface ``error`` to the caller.

    ``reason`` is one of ``non_retryable``, ``attempts_exhausted`` or
    ``max_elapsed`` when set by :class:`BackoffPolicy`.
    """

    error: ApiError
    reason: Optional[str] = None


RetryDecision = Union[Retry, GiveUp]


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Successful outcome of a logical call with its attempt history."""

    response: T
    attempts: Tuple[Attempt, ...]

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def total_elapsed(self) -> float:
        return sum(a.elapsed for a in self.attempts)


__all__ = ["Attempt", "Retry", "GiveUp", "RetryDecision", "CallResult"]
