"""Resilience primitives: rate limiting, backoff and the retry executor."""

from .attempts import Attempt, CallResult, GiveUp, Retry, RetryDecision
from .backoff import BackoffPolicy
from .rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    RateLimiterRegistry,
    RateLimitStats,
)
from .retry import AttemptLogger, RetryExecutor, RetryStats, classify_outcome

__all__ = [
    "Attempt",
    "CallResult",
    "Retry",
    "GiveUp",
    "RetryDecision",
    "BackoffPolicy",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimiterRegistry",
    "RateLimitStats",
    "AttemptLogger",
    "RetryExecutor",
    "RetryStats",
    "classify_outcome",
]
