from __future__ import annotations

import asyncio

import httpx
import pytest

from flux_client.base.errors import (
    ApiError,
    ErrorCode,
    RetryClass,
    classify_exception,
    classify_status,
    status_retry_class,
    to_api_error,
)
from flux_client.base.resilience import Attempt
from flux_client.base.streaming import StreamErrorEvent, error_from_event


class _StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


@pytest.mark.parametrize(
    "status,expected",
    [
        (200, RetryClass.NON_RETRYABLE),
        (400, RetryClass.NON_RETRYABLE),
        (401, RetryClass.NON_RETRYABLE),
        (403, RetryClass.NON_RETRYABLE),
        (404, RetryClass.NON_RETRYABLE),
        (408, RetryClass.RETRYABLE),
        (422, RetryClass.NON_RETRYABLE),
        (429, RetryClass.RETRYABLE),
        (500, RetryClass.RETRYABLE),
        (529, RetryClass.RETRYABLE),
    ],
)
def test_status_retry_class_table(status, expected):
    assert status_retry_class(status) is expected  # nosec B101 - assert is appropriate in unit tests


def test_classify_status_success_is_not_an_error():
    assert classify_status(204) is None  # nosec B101
    assert classify_status(302) is None  # nosec B101
    assert classify_status(799) is ErrorCode.UNKNOWN  # nosec B101


def test_classify_exception_transport_and_status_shapes():
    request = httpx.Request("GET", "https://example.test")
    assert classify_exception(httpx.ReadTimeout("slow", request=request)) is ErrorCode.TRANSPORT  # nosec B101
    assert classify_exception(asyncio.TimeoutError()) is ErrorCode.TRANSPORT  # nosec B101
    assert classify_exception(ConnectionResetError()) is ErrorCode.TRANSPORT  # nosec B101
    assert classify_exception(_StatusError(503)) is ErrorCode.SERVER_ERROR  # nosec B101
    assert classify_exception(_StatusError(401)) is ErrorCode.AUTH  # nosec B101
    assert classify_exception(RuntimeError("random")) is ErrorCode.UNKNOWN  # nosec B101


def test_unknown_fails_closed_and_override_wins():
    assert ApiError(ErrorCode.UNKNOWN, "?").is_retryable is False  # nosec B101
    assert ApiError(ErrorCode.SERVER_ERROR, "x").is_retryable is True  # nosec B101
    assert ApiError(ErrorCode.SERVER_ERROR, "x", retryable=False).is_retryable is False  # nosec B101
    assert ApiError(ErrorCode.CLIENT_ERROR, "x", retryable=True).is_retryable is True  # nosec B101


def test_to_api_error_wraps_and_passes_through():
    existing = ApiError(ErrorCode.AUTH, "nope")
    assert to_api_error(existing) is existing  # nosec B101
    wrapped = to_api_error(_StatusError(429), context="GET /v1/models")
    assert wrapped.code is ErrorCode.RATE_LIMIT and wrapped.status == 429  # nosec B101
    assert wrapped.message.startswith("GET /v1/models: ")  # nosec B101


def test_with_attempts_keeps_cause():
    try:
        try:
            raise ValueError("inner")
        except ValueError as e:
            raise ApiError(ErrorCode.UNKNOWN, "outer") from e
    except ApiError as err:
        clone = err.with_attempts((Attempt(sequence=1, outcome=err, elapsed=0.1),))
    assert clone.attempt_count == 1  # nosec B101
    assert isinstance(clone.__cause__, ValueError)  # nosec B101


@pytest.mark.parametrize(
    "error_type,code",
    [
        ("overloaded_error", ErrorCode.SERVER_ERROR),
        ("rate_limit_error", ErrorCode.RATE_LIMIT),
        ("permission_error", ErrorCode.AUTH),
        ("invalid_request_error", ErrorCode.CLIENT_ERROR),
        ("brand_new_error", ErrorCode.UNKNOWN),
    ],
)
def test_in_band_stream_errors_are_never_retryable(error_type, code):
    err = error_from_event(StreamErrorEvent(error={"type": error_type, "message": "m"}))
    assert err.code is code  # nosec B101
    assert err.is_retryable is False  # nosec B101
