"""Async iterator over the typed events of one established stream.

Purpose
-------
Own an established :class:`StreamHandle` and its :class:`EventStreamDecoder`
and expose the decoded events to the caller with ``async for``. The stream is
lazy and forward-only; restarting means issuing a new call.

Termination
-----------
- A terminal event (``message_stop`` or an in-band ``error``) is yielded and
  iteration ends; the connection is released right away.
- End of input without a terminal event raises ``ABRUPT_TERMINATION`` after
  every completed event has been yielded.
- Read failures and idle timeouts raise a non-retryable ``TRANSPORT`` error;
  events already delivered are never replayed.
- Cancellation of the token raises ``CancelledError`` and releases the
  connection.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, List, Optional

from ..cancellation import CancellationToken, CancelledError
from ..errors import ApiError, ErrorCode, to_api_error
from ..http.transport import StreamHandle
from ..log_support import LogContext
from ..logging import get_logger, normalized_log_event
from ..timeouts import get_timeout_config
from .accumulate import MessageAccumulator, StreamedMessage
from .decoder import EventStreamDecoder
from .events import ContentBlockDelta, StreamErrorEvent, StreamEvent, error_from_event

_EOF = object()


class MessageStream:
    """Lazy sequence of :class:`StreamEvent` for one streaming call."""

    def __init__(
        self,
        handle: StreamHandle,
        *,
        token: Optional[CancellationToken] = None,
        idle_timeout: Optional[float] = None,
        ctx: Optional[LogContext] = None,
        logger: Optional[logging.Logger] = None,
        attempts: tuple = (),
    ) -> None:
        self._handle = handle
        self._chunks = handle.chunks.__aiter__()
        self._token = token
        self._idle_timeout = (
            idle_timeout if idle_timeout is not None else get_timeout_config().stream_idle_timeout_seconds
        )
        self._ctx = ctx
        self._logger = logger or get_logger("flux.stream")
        self._decoder = EventStreamDecoder(logger=self._logger, ctx=ctx)
        self._pending: Deque[StreamEvent] = deque()
        self._released = False
        self._exhausted = False
        self.attempts = attempts
        normalized_log_event(
            self._logger,
            "stream.start",
            ctx,
            phase="stream",
            attempt=len(attempts) or None,
            level=logging.DEBUG,
            status=handle.status,
        )

    @property
    def status(self) -> int:
        return self._handle.status

    @property
    def headers(self):
        return self._handle.headers

    @property
    def rate_limit(self):
        return self._handle.rate_limit

    @property
    def decoder(self) -> EventStreamDecoder:
        return self._decoder

    @property
    def finished(self) -> bool:
        return self._decoder.finished

    def __aiter__(self) -> "MessageStream":
        return self

    async def __anext__(self) -> StreamEvent:
        while True:
            if self._pending:
                return self._pending.popleft()
            if self._exhausted:
                raise StopAsyncIteration
            chunk = await self._read_chunk()
            if chunk is _EOF:
                self._exhausted = True
                await self._release()
                self._decoder.close()
                continue
            self._pending.extend(self._decoder.feed(chunk))
            if self._decoder.finished:
                self._exhausted = True
                await self._release()

    async def _next_raw(self) -> Any:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return _EOF

    async def _read_chunk(self) -> Any:
        try:
            if self._token is not None:
                return await self._token.wait(self._next_raw(), timeout=self._idle_timeout)
            return await asyncio.wait_for(self._next_raw(), self._idle_timeout)
        except (CancelledError, asyncio.CancelledError):
            self._exhausted = True
            await self._release()
            raise
        except asyncio.TimeoutError as e:
            self._exhausted = True
            await self._release()
            raise ApiError(
                code=ErrorCode.TRANSPORT,
                message=f"No stream data received for {self._idle_timeout:.1f}s",
                retryable=False,
                raw=e,
            ) from e
        except Exception as e:  # read failures after the stream was committed
            self._exhausted = True
            await self._release()
            err = to_api_error(e, context="stream read")
            normalized_log_event(
                self._logger,
                "stream.read_failed",
                self._ctx,
                phase="stream",
                error_code=err.code.value,
                level=logging.WARNING,
                events=self._decoder.events_emitted,
            )
            raise ApiError(
                code=err.code,
                message=err.message,
                status=err.status,
                error_type=err.error_type,
                retryable=False,
                raw=e,
            ) from e

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._handle.close()

    async def aclose(self) -> None:
        """Stop reading and release the connection; safe to call repeatedly."""
        self._exhausted = True
        self._pending.clear()
        await self._release()

    async def __aenter__(self) -> "MessageStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def collect_events(self) -> List[StreamEvent]:
        return [event async for event in self]

    async def collect_text(self) -> str:
        """Drain the stream and return the concatenated text deltas.

        Raises:
            ApiError: on an in-band error event, abrupt termination or a read
                failure.
        """
        parts: List[str] = []
        async for event in self:
            if isinstance(event, ContentBlockDelta) and event.text is not None:
                parts.append(event.text)
            elif isinstance(event, StreamErrorEvent):
                raise error_from_event(event)
        return "".join(parts)

    async def collect_message(self) -> StreamedMessage:
        """Drain the stream and rebuild the complete message."""
        acc = MessageAccumulator()
        async for event in self:
            acc.apply(event)
        return acc.result()


__all__ = ["MessageStream"]
