"""Retry executor for logical API calls.

Purpose:
    Wrap a dispatch callable so that one logical call becomes one or more
    physical attempts. Every attempt acquires a rate-limit token first, its
    outcome is classified into an :class:`ApiError` (or success), and the
    :class:`BackoffPolicy` decides whether to sleep and retry or give up.
    Rate-limit headers are fed to the limiter from failed responses as well
    as successful ones, and the policy sees the time the call has spent so
    far so it can stop once ``max_elapsed`` would be exceeded.

Streams:
    ``open_stream`` applies the same loop to connection establishment only.
    Once a 2xx status and headers have been received the stream is
    committed; later failures surface to the stream consumer and are never
    retried here.

Cancellation:
    Dispatch, rate-limit waits and backoff sleeps all run through the caller's
    :class:`CancellationToken`. Cancellation raises ``CancelledError`` without
    classifying it as a failure and without a further attempt.

Observability:
    Each attempt, sleep and give-up emits a normalized log event
    (``retry.attempt``, ``retry.sleep``, ``retry.give_up``) and is passed to the
    optional ``attempt_logger`` hook.
"""
from __future__ import annotations

import asyncio
import logging
import random
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, List, Optional, Protocol, TypeVar

from ..cancellation import CancellationToken, CancelledError
from ..errors import ApiError, to_api_error
from ..http.transport import StreamHandle, error_from_response
from ..log_support import LogContext
from ..logging import get_logger, normalized_log_event
from .attempts import Attempt, CallResult, GiveUp
from .backoff import BackoffPolicy
from .rate_limiter import RateLimiter

T = TypeVar("T")

Classifier = Callable[[Any], Optional[ApiError]]
SleepFunc = Callable[[float], Awaitable[None]]


class AttemptLogger(Protocol):  # pragma: no cover - structural protocol
    def __call__(
        self,
        *,
        attempt: int,
        max_attempts: int,
        delay: float | None,
        error: ApiError | None,
    ) -> None: ...


def classify_outcome(outcome: Any) -> Optional[ApiError]:
    """Default classifier: ``None`` for success, otherwise an :class:`ApiError`.

    Exceptions are mapped through :func:`to_api_error`. Response-like objects
    exposing a non-2xx ``status`` are converted with
    :func:`error_from_response` so dispatchers may return error responses
    instead of raising.
    """
    if isinstance(outcome, BaseException):
        return to_api_error(outcome)
    status = getattr(outcome, "status", None)
    if isinstance(status, int) and not 200 <= status < 300:
        headers = getattr(outcome, "headers", None) or {}
        body = getattr(outcome, "body", b"") or b""
        return error_from_response(status, headers, body)
    return None


@dataclass
class RetryStats:
    """Aggregate outcome counters for one executor."""

    total_requests: int = 0
    first_try_successes: int = 0
    retried_requests: int = 0
    failed_requests: int = 0
    total_retry_attempts: int = 0
    total_delay: float = 0.0

    def success_rate(self) -> float:
        """Percentage of logical calls that eventually succeeded."""
        if not self.total_requests:
            return 0.0
        return (self.total_requests - self.failed_requests) / self.total_requests * 100.0

    def retry_rate(self) -> float:
        """Percentage of logical calls that needed at least one retry."""
        if not self.total_requests:
            return 0.0
        return self.retried_requests / self.total_requests * 100.0

    def average_retries(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.total_retry_attempts / self.total_requests


class RetryExecutor:
    """Run dispatch callables under a backoff policy and an optional limiter."""

    def __init__(
        self,
        policy: Optional[BackoffPolicy] = None,
        *,
        limiter: Optional[RateLimiter] = None,
        classify: Classifier = classify_outcome,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        attempt_logger: Optional[AttemptLogger] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.policy = policy or BackoffPolicy()
        self.limiter = limiter
        self._classify = classify
        self._sleep = sleep
        self._clock = clock
        self._rng = rng
        self._attempt_logger = attempt_logger
        self._logger = logger or get_logger("flux.retry")
        self._stats = RetryStats()
        self._stats_lock = threading.Lock()

    def stats(self) -> RetryStats:
        with self._stats_lock:
            return replace(self._stats)

    async def execute(
        self,
        dispatch: Callable[[], Awaitable[T]],
        *,
        token: Optional[CancellationToken] = None,
        ctx: Optional[LogContext] = None,
    ) -> CallResult[T]:
        """Run ``dispatch`` until it succeeds or the policy gives up.

        Returns:
            :class:`CallResult` with the successful response and the full
            attempt history.

        Raises:
            ApiError: the final classified failure, carrying ``attempts``.
            CancelledError: when ``token`` fires at any suspension point.
        """
        return await self._run(dispatch, token, ctx)

    async def open_stream(
        self,
        connect: Callable[[], Awaitable[StreamHandle]],
        *,
        token: Optional[CancellationToken] = None,
        ctx: Optional[LogContext] = None,
    ) -> CallResult[StreamHandle]:
        """Establish a stream, retrying only until the response headers arrive."""
        return await self._run(connect, token, ctx)

    async def _await(self, aw: Awaitable[T], token: Optional[CancellationToken]) -> T:
        if token is None:
            return await aw
        return await token.wait(aw)

    async def _run(
        self,
        dispatch: Callable[[], Awaitable[T]],
        token: Optional[CancellationToken],
        ctx: Optional[LogContext],
    ) -> CallResult[T]:
        attempts: List[Attempt] = []
        max_attempts = self.policy.max_attempts
        sequence = 0
        call_started = self._clock()
        while True:
            sequence += 1
            if token is not None:
                token.raise_if_cancelled()
            if self.limiter is not None:
                try:
                    await self.limiter.acquire(token)
                except ApiError as e:
                    self._record(success=False, retries=sequence - 1)
                    raise e.with_attempts(tuple(attempts)) from None
            started = self._clock()
            try:
                outcome: Any = await self._await(dispatch(), token)
                error = self._classify(outcome)
            except CancelledError:
                raise
            except Exception as exc:  # classified below; cancellation is BaseException
                outcome = exc
                error = self._classify(exc) or to_api_error(exc)
            elapsed = self._clock() - started

            if error is None:
                attempts.append(Attempt(sequence, outcome, elapsed))
                self._observe(outcome)
                self._log_attempt(ctx, sequence, None, elapsed)
                self._notify(sequence, max_attempts, None, None)
                self._record(success=True, retries=sequence - 1)
                return CallResult(response=outcome, attempts=tuple(attempts))

            attempts.append(Attempt(sequence, error, elapsed))
            self._observe(error)
            self._log_attempt(ctx, sequence, error, elapsed)
            decision = self.policy.decide(sequence, error, self._rng, elapsed=self._clock() - call_started)
            if isinstance(decision, GiveUp):
                self._notify(sequence, max_attempts, None, error)
                self._record(success=False, retries=sequence - 1)
                normalized_log_event(
                    self._logger,
                    "retry.give_up",
                    ctx,
                    phase="give_up",
                    attempt=sequence,
                    error_code=error.code.value,
                    status=error.status,
                    retryable=error.is_retryable,
                    reason=decision.reason,
                )
                final = decision.error.with_attempts(tuple(attempts))
                if isinstance(outcome, ApiError) or not isinstance(outcome, BaseException):
                    raise final
                raise final from outcome

            self._notify(sequence, max_attempts, decision.after, error)
            normalized_log_event(
                self._logger,
                "retry.sleep",
                ctx,
                phase="sleep",
                attempt=sequence,
                error_code=error.code.value,
                delay_ms=int(decision.after * 1000),
            )
            with self._stats_lock:
                self._stats.total_delay += decision.after
            await self._await(self._sleep(decision.after), token)

    def _observe(self, outcome: Any) -> None:
        info = getattr(outcome, "rate_limit", None)
        if self.limiter is not None and info is not None:
            self.limiter.observe_headers(info)

    def _log_attempt(
        self,
        ctx: Optional[LogContext],
        sequence: int,
        error: Optional[ApiError],
        elapsed: float,
    ) -> None:
        normalized_log_event(
            self._logger,
            "retry.attempt",
            ctx,
            phase="dispatch",
            attempt=sequence,
            error_code=error.code.value if error else None,
            level=logging.DEBUG,
            status=error.status if error else None,
            elapsed_ms=int(elapsed * 1000),
            outcome="error" if error else "ok",
        )

    def _notify(
        self,
        sequence: int,
        max_attempts: int,
        delay: Optional[float],
        error: Optional[ApiError],
    ) -> None:
        if self._attempt_logger:
            self._attempt_logger(
                attempt=sequence,
                max_attempts=max_attempts,
                delay=delay,
                error=error,
            )

    def _record(self, *, success: bool, retries: int) -> None:
        with self._stats_lock:
            self._stats.total_requests += 1
            self._stats.total_retry_attempts += retries
            if retries:
                self._stats.retried_requests += 1
            if not success:
                self._stats.failed_requests += 1
            elif not retries:
                self._stats.first_try_successes += 1


__all__ = [
    "AttemptLogger",
    "RetryExecutor",
    "RetryStats",
    "classify_outcome",
]
