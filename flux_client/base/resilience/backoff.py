from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Optional

from ...config.defaults import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_JITTER,
    DEFAULT_BACKOFF_MAX,
    DEFAULT_BACKOFF_MAX_ELAPSED,
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_MAX_ATTEMPTS,
)
from ..errors import ApiError, ErrorCode
from .attempts import GiveUp, Retry, RetryDecision


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with bounded jitter.

    ``delay_for(n)`` is the wait after failed attempt ``n`` (1-based):
    ``min(max_delay, base_delay * multiplier ** (n - 1))`` scaled by a factor
    drawn uniformly from ``[1 - jitter, 1 + jitter]`` and clamped to
    ``[0, max_delay]``. With ``jitter == 0`` delays are non-decreasing.

    ``max_elapsed`` bounds the whole logical call: a retry whose delay would
    push the time spent so far past it becomes a give-up. ``None`` disables
    the bound.
    """

    base_delay: float = DEFAULT_BACKOFF_BASE
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay: float = DEFAULT_BACKOFF_MAX
    jitter: float = DEFAULT_BACKOFF_JITTER
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_elapsed: Optional[float] = DEFAULT_BACKOFF_MAX_ELAPSED

    def __post_init__(self) -> None:
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays cannot be negative")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")
        if not 0 <= self.jitter <= 1:
            raise ValueError(f"jitter must be within [0, 1], got {self.jitter}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.max_elapsed is not None and self.max_elapsed < 0:
            raise ValueError("max_elapsed cannot be negative")

    @classmethod
    def no_retry(cls) -> "BackoffPolicy":
        return cls(max_attempts=1, jitter=0.0)

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Seconds to wait after failed attempt ``attempt`` before the next one."""
        exponent = max(attempt, 1) - 1
        try:
            raw = self.base_delay * math.pow(self.multiplier, exponent)
        except OverflowError:
            raw = math.inf
        delay = min(self.max_delay, raw)
        if self.jitter and delay > 0:
            source = rng or random
            delay *= 1.0 + source.uniform(-self.jitter, self.jitter)
        return min(max(delay, 0.0), self.max_delay)

    def decide(
        self,
        attempt: int,
        error: ApiError,
        rng: Optional[random.Random] = None,
        elapsed: float = 0.0,
    ) -> RetryDecision:
        """Map the failure of attempt ``attempt`` to :class:`Retry` or :class:`GiveUp`.

        Non-retryable and unknown failures give up immediately. On a
        rate-limit failure the server's wait hint raises the delay to at least
        the hint, even past ``max_delay``: ``retry_after`` when present,
        otherwise the time until the reported reset once the quota is nearly
        used up. ``elapsed`` is the time the logical call has spent so far.
        """
        if not error.is_retryable:
            return GiveUp(error, reason="non_retryable")
        if attempt >= self.max_attempts:
            return GiveUp(error, reason="attempts_exhausted")
        delay = self.delay_for(attempt, rng)
        if error.code is ErrorCode.RATE_LIMIT:
            hint = error.retry_after
            if hint is None and error.rate_limit is not None:
                hint = error.rate_limit.recommended_delay()
            if hint is not None:
                delay = max(delay, hint)
        if self.max_elapsed is not None and elapsed + delay > self.max_elapsed:
            return GiveUp(error, reason="max_elapsed")
        return Retry(delay)


__all__ = ["BackoffPolicy"]
