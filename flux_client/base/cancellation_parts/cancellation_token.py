"""Cooperative cancellation token implementation.

Exposes the ``CancellationToken`` class used by the rate limiter, the retry
executor and message streams to abandon a suspended wait early, either on an
explicit ``cancel`` or when a caller-supplied deadline passes.
"""

from __future__ import annotations

import asyncio
import time
from threading import Lock
from typing import Awaitable, List, Optional, TypeVar

from .state import State
from .cancelled_error import CancelledError

T = TypeVar("T")


class CancellationToken:
    """A cooperative cancellation token with optional deadline and cascading.

    Child tokens inherit cancellation when the parent is cancelled and never
    outlive the parent's deadline. ``cancel`` may be called from any task of
    the loop the token is awaited on.
    """

    def __init__(
        self,
        *,
        parent: "CancellationToken | None" = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._state = State()
        self._lock = Lock()
        self._children: List[CancellationToken] = []
        self._event: Optional[asyncio.Event] = None
        if timeout is not None:
            self._state.deadline = time.monotonic() + max(0.0, timeout)
        if parent is not None:
            parent_deadline = parent._state.deadline
            if parent_deadline is not None and (
                self._state.deadline is None or parent_deadline < self._state.deadline
            ):
                self._state.deadline = parent_deadline
            parent.link_child(self)

    @property
    def cancelled(self) -> bool:  # noqa: D401 - short form
        """Whether cancellation has been requested or the deadline passed."""
        return self._state.cancelled or self.expired

    @property
    def expired(self) -> bool:
        deadline = self._state.deadline
        return deadline is not None and time.monotonic() >= deadline

    @property
    def reason(self) -> str | None:  # noqa: D401 - short form
        """Reason string supplied at cancel time (if any)."""
        if self._state.reason is None and self.expired:
            return "deadline exceeded"
        return self._state.reason

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, ``None`` when no deadline is set."""
        deadline = self._state.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def cancel(self, reason: str | None = None) -> None:
        """Request cooperative cancellation and cascade to children."""
        with self._lock:
            if self._state.cancelled:
                return
            self._state.cancelled = True
            self._state.reason = reason
            children = list(self._children)
            event = self._event
        if event is not None:
            event.set()
        for child in children:
            child.cancel(reason)

    def link_child(self, token: "CancellationToken") -> "CancellationToken":
        """Link a child token so parent cancellation cascades (returns child)."""
        with self._lock:
            self._children.append(token)
            should_cancel = self._state.cancelled
            reason = self._state.reason
        if should_cancel:
            token.cancel(reason)
        return token

    def raise_if_cancelled(self) -> None:
        """Raise ``CancelledError`` if token is cancelled or expired."""
        if self.cancelled:
            raise CancelledError(self.reason or "operation cancelled")

    def child(self, *, timeout: Optional[float] = None) -> "CancellationToken":
        """Create and link a child token (shortcut)."""
        return CancellationToken(parent=self, timeout=timeout)

    def _cancel_event(self) -> asyncio.Event:
        with self._lock:
            if self._event is None:
                self._event = asyncio.Event()
                if self._state.cancelled:
                    self._event.set()
            return self._event

    async def wait(self, awaitable: Awaitable[T], *, timeout: Optional[float] = None) -> T:
        """Await ``awaitable`` unless the token fires first.

        The awaited operation is cancelled when the token is cancelled, the
        deadline passes, or the optional per-call ``timeout`` elapses. The
        first two raise ``CancelledError``; the per-call timeout raises
        ``asyncio.TimeoutError`` so callers can classify it separately.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(self._cancel_event().wait())
        limit = self.remaining()
        deadline_bound = limit is not None and (timeout is None or limit <= timeout)
        if timeout is not None and not deadline_bound:
            limit = timeout
        try:
            done, _ = await asyncio.wait(
                {task, watcher}, timeout=limit, return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            task.cancel()
            watcher.cancel()
            raise
        watcher.cancel()
        if task in done:
            return task.result()
        task.cancel()
        if watcher in done or deadline_bound:
            raise CancelledError(self.reason or "operation cancelled")
        raise asyncio.TimeoutError(f"operation exceeded {timeout}s")

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early on cancellation."""
        if delay <= 0:
            self.raise_if_cancelled()
            return
        await self.wait(asyncio.sleep(delay))

    def __repr__(self) -> str:  # pragma: no cover - introspection aid
        return (
            f"CancellationToken(cancelled={self._state.cancelled}, "
            f"reason={self._state.reason!r}, deadline={self._state.deadline!r}, "
            f"children={len(self._children)})"
        )


__all__ = ["CancellationToken"]
