"""Token-bucket admission control for outbound calls.

Purpose:
    Bound the rate of physical requests issued by one client instance. Each
    dispatch consumes one token; tokens accrue continuously at
    ``refill_rate`` per second up to ``capacity``, so there is no window
    boundary at which a full burst is re-admitted.

Concurrency:
    The bucket state is only touched inside a short critical section guarded
    by a ``threading.Lock`` that never spans an ``await``; waiting callers
    sleep outside the lock and re-check, so a waiting task never blocks other
    tasks. Which waiter wins a freshly refilled token is unspecified.

Cancellation:
    ``acquire`` waits through the caller's :class:`CancellationToken` when one
    is given. Tokens are consumed at acquire time and never refunded.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Dict, Optional

from ...config.defaults import (
    DEFAULT_ADAPTATION_FACTOR,
    DEFAULT_RATE_LIMIT_BURST,
    DEFAULT_RATE_LIMIT_MAX_WAIT,
    DEFAULT_RATE_LIMIT_RPS,
)
from ..cancellation import CancellationToken
from ..errors import ApiError, ErrorCode
from ..http.rate_limit_headers import RateLimitInfo
from ..logging import get_logger, log_event

Clock = Callable[[], float]
SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RateLimitConfig:
    """Token bucket parameters.

    Attributes:
        capacity: Maximum tokens held; also the largest immediate burst.
        refill_rate: Tokens added per second.
        max_wait_seconds: Longest a caller may wait in ``acquire``; ``None``
            waits indefinitely (still bounded by the cancellation token).
        enabled: When ``False`` every acquire succeeds immediately.
    """

    capacity: float = DEFAULT_RATE_LIMIT_BURST
    refill_rate: float = DEFAULT_RATE_LIMIT_RPS
    max_wait_seconds: Optional[float] = DEFAULT_RATE_LIMIT_MAX_WAIT
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError(f"capacity must admit at least one request, got {self.capacity}")
        if self.refill_rate <= 0:
            raise ValueError(f"refill_rate must be positive, got {self.refill_rate}")
        if self.max_wait_seconds is not None and self.max_wait_seconds < 0:
            raise ValueError("max_wait_seconds cannot be negative")

    @classmethod
    def for_window(cls, max_requests: int, window_seconds: float, burst: Optional[int] = None) -> "RateLimitConfig":
        """``max_requests`` per ``window_seconds`` with an optional burst (default 1)."""
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        return cls(capacity=float(burst or 1), refill_rate=max_requests / window_seconds)

    @classmethod
    def per_second(cls, requests: int, burst: Optional[int] = None) -> "RateLimitConfig":
        return cls.for_window(requests, 1.0, burst)

    @classmethod
    def per_minute(cls, requests: int, burst: Optional[int] = None) -> "RateLimitConfig":
        return cls.for_window(requests, 60.0, burst)

    @classmethod
    def per_hour(cls, requests: int, burst: Optional[int] = None) -> "RateLimitConfig":
        return cls.for_window(requests, 3600.0, burst)


@dataclass
class RateLimitStats:
    """Counters describing how often and how long callers waited."""

    total_requests: int = 0
    rate_limited_requests: int = 0
    total_wait_time: float = 0.0
    max_wait_time: float = 0.0

    @property
    def avg_wait_time(self) -> float:
        if not self.rate_limited_requests:
            return 0.0
        return self.total_wait_time / self.rate_limited_requests

    def record_wait(self, wait_time: float) -> None:
        self.total_requests += 1
        if wait_time > 0:
            self.rate_limited_requests += 1
            self.total_wait_time += wait_time
            self.max_wait_time = max(self.max_wait_time, wait_time)

    def rate_limit_percentage(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.rate_limited_requests / self.total_requests * 100.0


@dataclass
class _BucketState:
    tokens: float
    last_refill: float
    server_limit: Optional[int] = None


class RateLimiter:
    """Continuous-refill token bucket shared by all tasks of one client."""

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        *,
        name: str = "default",
        clock: Clock = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
        adaptation_factor: float = DEFAULT_ADAPTATION_FACTOR,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._name = name
        self._clock = clock
        self._sleep = sleep
        self._adaptation_factor = min(max(adaptation_factor, 0.0), 1.0)
        self._lock = threading.Lock()
        self._state = _BucketState(tokens=self._config.capacity, last_refill=clock())
        self._stats = RateLimitStats()
        self._logger = logger or get_logger("flux.rate_limit")

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._name

    def _refill(self, now: float) -> None:
        # Caller holds self._lock.
        elapsed = now - self._state.last_refill
        if elapsed > 0:
            self._state.tokens = min(
                self._config.capacity,
                self._state.tokens + elapsed * self._config.refill_rate,
            )
            self._state.last_refill = now

    def _take_or_wait(self) -> float:
        """Consume a token and return 0, or return the seconds until one accrues."""
        with self._lock:
            self._refill(self._clock())
            if self._state.tokens >= 1.0:
                self._state.tokens -= 1.0
                return 0.0
            return (1.0 - self._state.tokens) / self._config.refill_rate

    def try_acquire(self) -> bool:
        """Consume a token if one is available right now."""
        if not self._config.enabled:
            return True
        acquired = self._take_or_wait() == 0.0
        if acquired:
            with self._lock:
                self._stats.record_wait(0.0)
        return acquired

    async def acquire(self, token: Optional[CancellationToken] = None) -> float:
        """Wait for and consume one token; return the seconds spent waiting.

        Raises:
            ApiError: ``RATE_LIMIT`` (non-retryable) when the wait would exceed
                ``max_wait_seconds``.
            CancelledError: when ``token`` is cancelled or its deadline passes.
        """
        if not self._config.enabled:
            return 0.0
        start = self._clock()
        while True:
            if token is not None:
                token.raise_if_cancelled()
            wait = self._take_or_wait()
            waited = self._clock() - start
            if wait == 0.0:
                with self._lock:
                    self._stats.record_wait(waited)
                return waited
            max_wait = self._config.max_wait_seconds
            if max_wait is not None and waited + wait > max_wait:
                raise ApiError(
                    code=ErrorCode.RATE_LIMIT,
                    message=(
                        f"Local rate limit '{self._name}': wait {waited + wait:.2f}s "
                        f"exceeds max {max_wait:.2f}s"
                    ),
                    error_type="local_rate_limit",
                    retry_after=wait,
                    retryable=False,
                )
            log_event(
                self._logger,
                "rate_limit.wait",
                level=logging.DEBUG,
                limiter=self._name,
                wait_ms=int(wait * 1000),
            )
            if token is not None:
                await token.wait(self._sleep(wait))
            else:
                await self._sleep(wait)

    def time_until_ready(self) -> float:
        """Seconds until a token is available (0 when one is available now)."""
        with self._lock:
            self._refill(self._clock())
            if self._state.tokens >= 1.0:
                return 0.0
            return (1.0 - self._state.tokens) / self._config.refill_rate

    def available_tokens(self) -> float:
        """Snapshot of the current token count after refill."""
        with self._lock:
            self._refill(self._clock())
            return self._state.tokens

    def observe_headers(self, info: RateLimitInfo) -> None:
        """Adapt to server-reported limits.

        Records the server's limit, logs when usage crosses the adaptation
        factor, and drains local tokens when the server reports none left so
        the next caller waits for refill instead of earning a 429.
        """
        ratio = info.usage_ratio()
        with self._lock:
            if info.limit is not None and info.limit != self._state.server_limit:
                self._state.server_limit = info.limit
                changed = True
            else:
                changed = False
            if info.remaining == 0:
                self._refill(self._clock())
                self._state.tokens = 0.0
        if changed:
            log_event(self._logger, "rate_limit.server_limit", limiter=self._name, limit=info.limit)
        if ratio is not None and ratio > self._adaptation_factor:
            log_event(
                self._logger,
                "rate_limit.approaching",
                level=logging.WARNING,
                limiter=self._name,
                remaining=info.remaining,
                limit=info.limit,
                used_pct=int(ratio * 100),
            )

    @property
    def server_limit(self) -> Optional[int]:
        with self._lock:
            return self._state.server_limit

    def stats(self) -> RateLimitStats:
        with self._lock:
            return replace(self._stats)

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = RateLimitStats()


class RateLimiterRegistry:
    """One :class:`RateLimiter` per logical endpoint class, created lazily."""

    def __init__(
        self,
        default_config: Optional[RateLimitConfig] = None,
        overrides: Optional[Dict[str, RateLimitConfig]] = None,
        **limiter_kwargs,
    ) -> None:
        self._default = default_config or RateLimitConfig()
        self._overrides: Dict[str, RateLimitConfig] = dict(overrides or {})
        self._limiters: Dict[str, RateLimiter] = {}
        self._lock = threading.Lock()
        self._limiter_kwargs = limiter_kwargs

    def get(self, endpoint: str = "default") -> RateLimiter:
        with self._lock:
            limiter = self._limiters.get(endpoint)
            if limiter is None:
                config = self._overrides.get(endpoint, self._default)
                limiter = RateLimiter(config, name=endpoint, **self._limiter_kwargs)
                self._limiters[endpoint] = limiter
            return limiter

    def configure(self, endpoint: str, config: RateLimitConfig) -> RateLimiter:
        """Replace the limiter for ``endpoint`` (its bucket starts full)."""
        with self._lock:
            self._overrides[endpoint] = config
            limiter = RateLimiter(config, name=endpoint, **self._limiter_kwargs)
            self._limiters[endpoint] = limiter
            return limiter

    def endpoints(self) -> list[str]:
        with self._lock:
            return sorted(self._limiters)


__all__ = [
    "RateLimitConfig",
    "RateLimitStats",
    "RateLimiter",
    "RateLimiterRegistry",
]
