"""Unit tests for cooperative cancellation primitives.

Covers idempotent cancel, cascade to children, late link of a child after
parent cancel, deadlines and the awaitable helpers used by the limiter,
the retry executor and message streams.
"""
from __future__ import annotations

import asyncio

import pytest

from flux_client.base.cancellation import (
    CancellationToken,
    CancelledError,
)


def test_cancel_cascades_to_children_and_is_idempotent():
    parent = CancellationToken()
    child1 = parent.child()
    child2 = parent.child()

    parent.cancel(reason="stop")
    parent.cancel(reason="ignored")

    assert parent.cancelled is True and parent.reason == "stop"  # nosec B101 - pytest assert in tests
    assert child1.cancelled is True and child1.reason == "stop"  # nosec B101 - pytest assert in tests
    assert child2.cancelled is True and child2.reason == "stop"  # nosec B101 - pytest assert in tests


def test_link_child_after_parent_cancel_immediately_cancels_child():
    parent = CancellationToken()
    parent.cancel("done")
    late_child = CancellationToken(parent=parent)
    assert late_child.cancelled is True and late_child.reason == "done"  # nosec B101 - pytest assert in tests


def test_raise_if_cancelled_raises_custom_error():
    token = CancellationToken()
    token.cancel("terminate")
    with pytest.raises(CancelledError):
        token.raise_if_cancelled()
    assert not isinstance(CancelledError("x"), asyncio.CancelledError)  # nosec B101


def test_deadline_expiry_counts_as_cancelled():
    token = CancellationToken(timeout=0.0)
    assert token.expired and token.cancelled  # nosec B101
    assert token.reason == "deadline exceeded"  # nosec B101
    assert token.remaining() == 0.0  # nosec B101


def test_child_never_outlives_parent_deadline():
    parent = CancellationToken(timeout=5.0)
    child = parent.child(timeout=60.0)
    assert child.remaining() <= 5.0  # nosec B101
    assert CancellationToken().remaining() is None  # nosec B101


@pytest.mark.asyncio
async def test_wait_returns_result_when_not_cancelled():
    async def work():
        await asyncio.sleep(0)
        return 42

    assert await CancellationToken().wait(work()) == 42  # nosec B101


@pytest.mark.asyncio
async def test_wait_per_call_timeout_raises_timeout_error():
    with pytest.raises(asyncio.TimeoutError):
        await CancellationToken().wait(asyncio.sleep(10), timeout=0.01)


@pytest.mark.asyncio
async def test_wait_on_already_cancelled_token_never_starts_work():
    token = CancellationToken()
    token.cancel("early")
    started = []

    async def work():
        started.append(True)

    with pytest.raises(CancelledError):
        await token.wait(work())
    assert started == []  # nosec B101


@pytest.mark.asyncio
async def test_sleep_wakes_early_on_cancel():
    token = CancellationToken()

    async def cancel_soon():
        await asyncio.sleep(0.01)
        token.cancel("wake")

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(CancelledError):
        await asyncio.wait_for(token.sleep(30), timeout=2.0)
    await canceller


@pytest.mark.asyncio
async def test_deadline_bounds_wait_as_cancellation():
    token = CancellationToken(timeout=0.02)
    with pytest.raises(CancelledError):
        await token.wait(asyncio.sleep(10), timeout=5.0)
