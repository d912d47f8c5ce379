"""Streaming package: SSE decoding, typed events and stream accumulation."""

from .accumulate import MessageAccumulator, StreamedMessage, accumulate_events
from .decoder import DecoderState, EventStreamDecoder
from .events import (
    TERMINAL_EVENT_TYPES,
    BlockDelta,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageDelta,
    MessageDeltaBody,
    MessageStart,
    MessageStop,
    Ping,
    StreamErrorEvent,
    StreamEvent,
    UnknownEvent,
    Usage,
    decode_event,
    error_from_event,
    is_terminal,
)
from .message_stream import MessageStream

__all__ = [
    "MessageAccumulator",
    "StreamedMessage",
    "accumulate_events",
    "DecoderState",
    "EventStreamDecoder",
    "TERMINAL_EVENT_TYPES",
    "BlockDelta",
    "ContentBlockDelta",
    "ContentBlockStart",
    "ContentBlockStop",
    "MessageDelta",
    "MessageDeltaBody",
    "MessageStart",
    "MessageStop",
    "Ping",
    "StreamErrorEvent",
    "StreamEvent",
    "UnknownEvent",
    "Usage",
    "decode_event",
    "error_from_event",
    "is_terminal",
    "MessageStream",
]
