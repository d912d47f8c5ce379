"""RetryExecutor behaviour: retry loop, give-up, cancellation and stats."""
from __future__ import annotations

import asyncio
import time
from typing import List

import httpx
import pytest

from flux_client.base.cancellation import CancellationToken, CancelledError
from flux_client.base.errors import ApiError, ErrorCode
from flux_client.base.http import HttpResponse, StreamHandle
from flux_client.base.resilience import (
    BackoffPolicy,
    RateLimitConfig,
    RateLimiter,
    RetryExecutor,
)


def _response(status: int, body: bytes = b"{}", headers=None) -> HttpResponse:
    return HttpResponse(status=status, headers=headers or {}, body=body)


class _Scripted:
    """Dispatch returning (or raising) scripted outcomes in order."""

    def __init__(self, outcomes: List[object]) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _executor(fake_clock, **kw) -> RetryExecutor:
    kw.setdefault("policy", BackoffPolicy(base_delay=1.0, multiplier=2.0, max_delay=30.0, jitter=0.0, max_attempts=5))
    return RetryExecutor(sleep=fake_clock.sleep, clock=fake_clock, **kw)


@pytest.mark.asyncio
async def test_three_503_then_200_returns_success_with_four_attempts(fake_clock):
    dispatch = _Scripted([_response(503), _response(503), _response(503), _response(200, b'{"ok": true}')])
    result = await _executor(fake_clock).execute(dispatch)

    assert result.response.status == 200  # nosec B101
    assert result.response.json() == {"ok": True}  # nosec B101
    assert result.attempt_count == 4  # nosec B101
    assert [a.sequence for a in result.attempts] == [1, 2, 3, 4]  # nosec B101
    assert [a.succeeded for a in result.attempts] == [False, False, False, True]  # nosec B101
    assert all(a.error.code is ErrorCode.SERVER_ERROR for a in result.attempts[:3])  # nosec B101
    assert fake_clock.sleeps == [1.0, 2.0, 4.0]  # nosec B101


@pytest.mark.asyncio
async def test_401_fails_fast_without_sleep(fake_clock):
    body = b'{"error": {"type": "authentication_error", "message": "bad key"}}'
    dispatch = _Scripted([_response(401, body)])
    with pytest.raises(ApiError) as ei:
        await _executor(fake_clock).execute(dispatch)

    err = ei.value
    assert err.code is ErrorCode.AUTH  # nosec B101
    assert err.error_type == "authentication_error"  # nosec B101
    assert err.attempt_count == 1  # nosec B101
    assert dispatch.calls == 1  # nosec B101
    assert fake_clock.sleeps == []  # nosec B101


@pytest.mark.asyncio
async def test_retryable_failures_exhaust_the_ceiling(fake_clock):
    policy = BackoffPolicy(base_delay=0.1, jitter=0.0, max_attempts=3)
    dispatch = _Scripted([_response(502)] * 3)
    with pytest.raises(ApiError) as ei:
        await _executor(fake_clock, policy=policy).execute(dispatch)

    assert ei.value.code is ErrorCode.SERVER_ERROR  # nosec B101
    assert ei.value.attempt_count == 3  # nosec B101
    assert dispatch.calls == 3  # nosec B101
    assert len(fake_clock.sleeps) == 2  # nosec B101


@pytest.mark.asyncio
async def test_transport_exceptions_are_retried(fake_clock):
    request = httpx.Request("POST", "https://example.test/v1/messages")
    dispatch = _Scripted([httpx.ConnectError("refused", request=request), _response(200)])
    result = await _executor(fake_clock).execute(dispatch)
    assert result.attempt_count == 2  # nosec B101
    assert result.attempts[0].error.code is ErrorCode.TRANSPORT  # nosec B101


@pytest.mark.asyncio
async def test_429_retry_after_overrides_shorter_backoff(fake_clock):
    dispatch = _Scripted([_response(429, headers={"retry-after": "12"}), _response(200)])
    result = await _executor(fake_clock).execute(dispatch)
    assert result.attempt_count == 2  # nosec B101
    assert fake_clock.sleeps == [12.0]  # nosec B101


@pytest.mark.asyncio
async def test_unclassified_exception_fails_closed(fake_clock):
    dispatch = _Scripted([ValueError("weird")])
    with pytest.raises(ApiError) as ei:
        await _executor(fake_clock).execute(dispatch)
    assert ei.value.code is ErrorCode.UNKNOWN  # nosec B101
    assert isinstance(ei.value.__cause__, ValueError)  # nosec B101
    assert dispatch.calls == 1  # nosec B101


@pytest.mark.asyncio
async def test_each_attempt_consumes_a_rate_limit_token(fake_clock):
    limiter = RateLimiter(
        RateLimitConfig(capacity=10.0, refill_rate=0.001),
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    dispatch = _Scripted([_response(500), _response(500), _response(200)])
    await _executor(fake_clock, limiter=limiter).execute(dispatch)
    # 3 tokens consumed; refill during the 3s of backoff is negligible
    assert limiter.available_tokens() == pytest.approx(7.0, abs=0.01)  # nosec B101


@pytest.mark.asyncio
async def test_local_rate_limit_timeout_propagates_without_retry(fake_clock):
    limiter = RateLimiter(
        RateLimitConfig(capacity=1.0, refill_rate=0.01, max_wait_seconds=0.5),
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    dispatch = _Scripted([_response(503), _response(200)])
    with pytest.raises(ApiError) as ei:
        await _executor(fake_clock, limiter=limiter).execute(dispatch)
    assert ei.value.code is ErrorCode.RATE_LIMIT  # nosec B101
    assert ei.value.attempt_count == 1  # nosec B101
    assert dispatch.calls == 1  # nosec B101


@pytest.mark.asyncio
async def test_cancellation_during_backoff_sleep():
    token = CancellationToken()
    policy = BackoffPolicy(base_delay=60.0, jitter=0.0, max_attempts=3)
    executor = RetryExecutor(policy)
    dispatch = _Scripted([_response(503), _response(200)])

    async def cancel_soon():
        await asyncio.sleep(0.01)
        token.cancel("user abort")

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(CancelledError):
        await asyncio.wait_for(executor.execute(dispatch, token=token), timeout=2.0)
    await canceller
    assert dispatch.calls == 1  # nosec B101


@pytest.mark.asyncio
async def test_expired_deadline_prevents_dispatch(fake_clock):
    token = CancellationToken(timeout=0.0)
    dispatch = _Scripted([_response(200)])
    with pytest.raises(CancelledError):
        await _executor(fake_clock).execute(dispatch, token=token)
    assert dispatch.calls == 0  # nosec B101


@pytest.mark.asyncio
async def test_open_stream_retries_establishment_only(fake_clock):
    closed = []

    async def chunks():
        yield b"data: {}\n\n"

    async def close():
        closed.append(True)

    handle = StreamHandle(status=200, headers={}, chunks=chunks(), close=close)
    request = httpx.Request("POST", "https://example.test/v1/messages")
    connect = _Scripted([httpx.ReadTimeout("slow", request=request), handle])

    result = await _executor(fake_clock).open_stream(connect)
    assert result.response is handle  # nosec B101
    assert result.attempt_count == 2  # nosec B101
    assert closed == []  # nosec B101


@pytest.mark.asyncio
async def test_attempt_logger_and_log_events(fake_clock, log_capture):
    seen = []

    def attempt_logger(**kw):
        seen.append(kw)

    dispatch = _Scripted([_response(503), _response(400)])
    with pytest.raises(ApiError):
        await _executor(fake_clock, attempt_logger=attempt_logger).execute(dispatch)

    assert [s["attempt"] for s in seen] == [1, 2]  # nosec B101
    assert seen[0]["delay"] == 1.0 and seen[1]["delay"] is None  # nosec B101
    assert seen[1]["error"].code is ErrorCode.CLIENT_ERROR  # nosec B101

    sleeps = log_capture.events("retry.sleep")
    give_up = log_capture.events("retry.give_up")
    assert sleeps[0]["phase"] == "sleep" and sleeps[0]["attempt"] == 1  # nosec B101
    assert give_up[0]["error_code"] == ErrorCode.CLIENT_ERROR.value  # nosec B101
    assert len(log_capture.events("retry.attempt")) == 2  # nosec B101


@pytest.mark.asyncio
async def test_stats_track_outcomes(fake_clock):
    executor = _executor(fake_clock)
    await executor.execute(_Scripted([_response(200)]))
    await executor.execute(_Scripted([_response(503), _response(200)]))
    with pytest.raises(ApiError):
        await executor.execute(_Scripted([_response(404)]))

    stats = executor.stats()
    assert stats.total_requests == 3  # nosec B101
    assert stats.first_try_successes == 1  # nosec B101
    assert stats.retried_requests == 1  # nosec B101
    assert stats.failed_requests == 1  # nosec B101
    assert stats.total_retry_attempts == 1  # nosec B101
    assert stats.total_delay == 1.0  # nosec B101
    assert stats.success_rate() == pytest.approx(200 / 3)  # nosec B101


@pytest.mark.asyncio
async def test_429_rate_limit_headers_drain_limiter_and_set_delay(fake_clock):
    limiter = RateLimiter(
        RateLimitConfig(capacity=5.0, refill_rate=0.1),
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    reset = int(time.time()) + 30
    headers = {"x-ratelimit-remaining": "0", "x-ratelimit-limit": "50", "x-ratelimit-reset": str(reset)}
    outcomes = [_response(429, headers=headers), _response(200)]
    tokens_seen = []

    async def dispatch():
        tokens_seen.append(limiter.available_tokens())
        return outcomes.pop(0)

    result = await _executor(fake_clock, limiter=limiter).execute(dispatch)

    assert result.attempt_count == 2  # nosec B101
    assert result.attempts[0].error.rate_limit.remaining == 0  # nosec B101
    (delay,) = fake_clock.sleeps
    assert 25.0 <= delay <= 30.0  # nosec B101
    assert tokens_seen[0] == pytest.approx(4.0)  # nosec B101
    # drained to zero by the 429, then refilled only during the backoff sleep
    assert tokens_seen[1] == pytest.approx(delay * 0.1 - 1.0, abs=0.01)  # nosec B101
    assert limiter.server_limit == 50  # nosec B101


@pytest.mark.asyncio
async def test_total_elapsed_bound_stops_retrying(fake_clock, log_capture):
    policy = BackoffPolicy(base_delay=4.0, multiplier=2.0, jitter=0.0, max_attempts=10, max_elapsed=10.0)
    dispatch = _Scripted([_response(503)] * 10)
    with pytest.raises(ApiError) as ei:
        await _executor(fake_clock, policy=policy).execute(dispatch)

    assert ei.value.code is ErrorCode.SERVER_ERROR  # nosec B101
    assert dispatch.calls == 2  # nosec B101
    assert fake_clock.sleeps == [4.0]  # nosec B101
    (give_up,) = log_capture.events("retry.give_up")
    assert give_up["reason"] == "max_elapsed"  # nosec B101
