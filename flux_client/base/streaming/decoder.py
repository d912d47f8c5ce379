"""Incremental Server-Sent-Events decoder.

Purpose
-------
Turn a live byte stream of unknown length into an ordered sequence of
:class:`StreamEvent` values while the connection is still open. Bytes are fed
as they arrive; only complete lines are interpreted and an event is emitted
only once its terminating blank line has been seen.

Framing
-------
- Lines end with ``\\n``; a trailing ``\\r`` is dropped so CRLF peers work.
- ``:`` at the start of a line marks a comment.
- ``field: value`` lines strip exactly one space after the colon; a line
  without a colon is a field with an empty value.
- ``event``, ``data``, ``id`` and ``retry`` are interpreted; other field names
  are ignored. Multiple ``data`` lines are joined with ``\\n``.
- Lines are decoded as UTF-8 only once complete, so multi-byte characters
  split across chunks decode correctly.

Failure modes
-------------
- Undecodable payloads become :class:`UnknownEvent` and decoding continues.
- After a terminal event the decoder is closed and ignores further input.
- :meth:`EventStreamDecoder.close` raises ``ABRUPT_TERMINATION`` when the
  input ended before a terminal event; no terminal event is synthesized.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

from ..errors import ApiError, ErrorCode
from ..log_support import LogContext
from ..logging import get_logger, normalized_log_event
from .events import StreamErrorEvent, StreamEvent, UnknownEvent, decode_event, is_terminal

_BOM = "\ufeff"


class DecoderState(str, Enum):
    AWAITING_LINE = "awaiting_line"
    ACCUMULATING_EVENT = "accumulating_event"
    CLOSED = "closed"


class EventStreamDecoder:
    """Stateful SSE parser owned by exactly one stream."""

    def __init__(
        self,
        *,
        logger: Optional[logging.Logger] = None,
        ctx: Optional[LogContext] = None,
    ) -> None:
        self._buffer = bytearray()
        self._event_name: Optional[str] = None
        self._data_lines: List[str] = []
        self._state = DecoderState.AWAITING_LINE
        self._first_line = True
        self._terminal: Optional[StreamEvent] = None
        self._emitted = 0
        self.last_event_id: Optional[str] = None
        self.retry_hint: Optional[int] = None
        self._logger = logger or get_logger("flux.stream")
        self._ctx = ctx

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def terminal_event(self) -> Optional[StreamEvent]:
        return self._terminal

    @property
    def finished(self) -> bool:
        """Whether a terminal event has been emitted."""
        return self._terminal is not None

    @property
    def events_emitted(self) -> int:
        return self._emitted

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        """Consume ``chunk`` and return the events it completed (possibly none)."""
        if self._state is DecoderState.CLOSED or not chunk:
            return []
        self._buffer.extend(chunk)
        events: List[StreamEvent] = []
        while self._state is not DecoderState.CLOSED:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            raw = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            if raw.endswith(b"\r"):
                raw = raw[:-1]
            event = self._process_line(raw.decode("utf-8", errors="replace"))
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        """Signal end of input.

        Raises:
            ApiError: ``ABRUPT_TERMINATION`` if no terminal event was seen.
                Any partially accumulated event is discarded.
        """
        if self._terminal is not None:
            self._state = DecoderState.CLOSED
            return
        pending = len(self._buffer) + sum(len(line) for line in self._data_lines)
        self._reset_event()
        self._buffer.clear()
        self._state = DecoderState.CLOSED
        normalized_log_event(
            self._logger,
            "stream.abrupt_end",
            self._ctx,
            phase="stream",
            error_code=ErrorCode.ABRUPT_TERMINATION.value,
            level=logging.WARNING,
            events=self._emitted,
            discarded_bytes=pending,
        )
        raise ApiError(
            code=ErrorCode.ABRUPT_TERMINATION,
            message=f"Stream ended without a terminal event after {self._emitted} event(s)",
            retryable=False,
        )

    def _process_line(self, line: str) -> Optional[StreamEvent]:
        if self._first_line:
            self._first_line = False
            if line.startswith(_BOM):
                line = line[1:]
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event_name = value
        elif field == "data":
            self._data_lines.append(value)
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry_hint = int(value)
        else:
            return None
        self._state = DecoderState.ACCUMULATING_EVENT
        return None

    def _dispatch(self) -> Optional[StreamEvent]:
        if self._event_name is None and not self._data_lines:
            self._state = DecoderState.AWAITING_LINE
            return None
        name, data = self._event_name, "\n".join(self._data_lines)
        self._reset_event()
        event = decode_event(name or None, data)
        self._emitted += 1
        if isinstance(event, UnknownEvent):
            normalized_log_event(
                self._logger,
                "stream.event_malformed",
                self._ctx,
                phase="stream",
                error_code=ErrorCode.DECODE.value,
                level=logging.WARNING,
                sse_event=name,
                reason=event.reason,
            )
        if is_terminal(event):
            self._terminal = event
            self._state = DecoderState.CLOSED
            self._buffer.clear()
            normalized_log_event(
                self._logger,
                "stream.terminal",
                self._ctx,
                phase="stream",
                error_code=ErrorCode.SERVER_ERROR.value if isinstance(event, StreamErrorEvent) else None,
                level=logging.DEBUG,
                events=self._emitted,
                kind=event.event_type,
            )
        return event

    def _reset_event(self) -> None:
        self._event_name = None
        self._data_lines = []
        self._state = DecoderState.AWAITING_LINE


__all__ = ["DecoderState", "EventStreamDecoder"]
