"""Typed stream events decoded from the message event feed.

Purpose
-------
Define the closed set of events the remote service emits while a message is
being generated, plus one catch-all :class:`UnknownEvent` that preserves the
raw payload of anything that could not be decoded. Wire payload bodies
(usage counters, deltas) are Pydantic v2 models that keep unrecognised keys
so protocol additions survive a round trip through the client.

Terminal events
---------------
:class:`MessageStop` (clean completion) and :class:`StreamErrorEvent` (the
server reported an error) end a stream. Exactly one of them is emitted per
well-formed stream and nothing follows it.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..errors import ApiError, ErrorCode


class Usage(BaseModel):
    """Token usage counters; streamed values may be partial."""

    model_config = ConfigDict(extra="allow")

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation: Optional[Dict[str, int]] = None
    server_tool_use: Optional[Dict[str, int]] = None
    service_tier: Optional[str] = None
    inference_geo: Optional[str] = None

    def merge_max(self, other: "Usage") -> "Usage":
        """Combine two usage reports keeping the largest value of each counter."""

        def _merge_counts(a: Optional[Dict[str, int]], b: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
            if b is None:
                return a
            merged = dict(a or {})
            for key, value in b.items():
                merged[key] = max(merged.get(key, 0), value)
            return merged

        return self.model_copy(
            update={
                "input_tokens": max(self.input_tokens, other.input_tokens),
                "output_tokens": max(self.output_tokens, other.output_tokens),
                "cache_creation_input_tokens": max(
                    self.cache_creation_input_tokens, other.cache_creation_input_tokens
                ),
                "cache_read_input_tokens": max(
                    self.cache_read_input_tokens, other.cache_read_input_tokens
                ),
                "cache_creation": _merge_counts(self.cache_creation, other.cache_creation),
                "server_tool_use": _merge_counts(self.server_tool_use, other.server_tool_use),
                "service_tier": other.service_tier or self.service_tier,
                "inference_geo": other.inference_geo or self.inference_geo,
            }
        )


class BlockDelta(BaseModel):
    """Incremental content for one content block."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    text: Optional[str] = None
    partial_json: Optional[str] = None
    thinking: Optional[str] = None
    signature: Optional[str] = None
    citation: Optional[Dict[str, Any]] = None


class MessageDeltaBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    stop_reason: Optional[str] = None
    stop_sequence: Optional[str] = None


# ---- events -----------------------------------------------------------------


@dataclass(frozen=True)
class MessageStart:
    event_type: ClassVar[str] = "message_start"
    message: Dict[str, Any]

    @property
    def message_id(self) -> Optional[str]:
        return self.message.get("id")


@dataclass(frozen=True)
class MessageDelta:
    event_type: ClassVar[str] = "message_delta"
    delta: MessageDeltaBody
    usage: Usage

    @property
    def stop_reason(self) -> Optional[str]:
        return self.delta.stop_reason


@dataclass(frozen=True)
class MessageStop:
    event_type: ClassVar[str] = "message_stop"


@dataclass(frozen=True)
class ContentBlockStart:
    event_type: ClassVar[str] = "content_block_start"
    index: int
    content_block: Dict[str, Any]


@dataclass(frozen=True)
class ContentBlockDelta:
    event_type: ClassVar[str] = "content_block_delta"
    index: int
    delta: BlockDelta

    @property
    def text(self) -> Optional[str]:
        return self.delta.text


@dataclass(frozen=True)
class ContentBlockStop:
    event_type: ClassVar[str] = "content_block_stop"
    index: int


@dataclass(frozen=True)
class Ping:
    event_type: ClassVar[str] = "ping"


@dataclass(frozen=True)
class StreamErrorEvent:
    """Error reported in-band by the server; terminal."""

    event_type: ClassVar[str] = "error"
    error: Dict[str, Any]

    @property
    def error_type(self) -> Optional[str]:
        return self.error.get("type")

    @property
    def message(self) -> str:
        return str(self.error.get("message") or self.error_type or "stream error")


@dataclass(frozen=True)
class UnknownEvent:
    """Anything that could not be decoded into a known event.

    ``event`` is the wire event name (``None`` when absent), ``data`` the raw
    joined data lines and ``reason`` why decoding fell back to this variant.
    """

    event_type: ClassVar[str] = "unknown"
    event: Optional[str]
    data: str
    reason: Optional[str] = None


StreamEvent = Union[
    MessageStart,
    MessageDelta,
    MessageStop,
    ContentBlockStart,
    ContentBlockDelta,
    ContentBlockStop,
    Ping,
    StreamErrorEvent,
    UnknownEvent,
]

TERMINAL_EVENT_TYPES = (MessageStop, StreamErrorEvent)


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, TERMINAL_EVENT_TYPES)


# ---- payload envelopes --------------------------------------------------------


class _MessageStartPayload(BaseModel):
    message: Dict[str, Any]


class _MessageDeltaPayload(BaseModel):
    delta: MessageDeltaBody = Field(default_factory=MessageDeltaBody)
    usage: Usage = Field(default_factory=Usage)


class _BlockStartPayload(BaseModel):
    index: int = 0
    content_block: Dict[str, Any]


class _BlockDeltaPayload(BaseModel):
    index: int = 0
    delta: BlockDelta

    @model_validator(mode="before")
    @classmethod
    def _bare_delta(cls, data: Any) -> Any:
        # Some peers send the delta fields at the top level.
        if isinstance(data, dict) and "delta" not in data:
            index = data.get("index", 0)
            body = {k: v for k, v in data.items() if k not in ("index", "type")}
            return {"index": index, "delta": body}
        return data


class _BlockStopPayload(BaseModel):
    index: int = 0


class _ErrorPayload(BaseModel):
    error: Dict[str, Any]

    @model_validator(mode="before")
    @classmethod
    def _bare_error(cls, data: Any) -> Any:
        if isinstance(data, dict) and not isinstance(data.get("error"), dict):
            return {"error": {k: v for k, v in data.items() if k != "type"}}
        return data


_Builder = Callable[[Mapping[str, Any]], StreamEvent]

_BUILDERS: Dict[str, _Builder] = {
    "message_start": lambda d: MessageStart(message=_MessageStartPayload.model_validate(d).message),
    "message_delta": lambda d: _message_delta(_MessageDeltaPayload.model_validate(d)),
    "message_stop": lambda d: MessageStop(),
    "content_block_start": lambda d: _block_start(_BlockStartPayload.model_validate(d)),
    "content_block_delta": lambda d: _block_delta(_BlockDeltaPayload.model_validate(d)),
    "content_block_stop": lambda d: ContentBlockStop(index=_BlockStopPayload.model_validate(d).index),
    "ping": lambda d: Ping(),
    "error": lambda d: StreamErrorEvent(error=_ErrorPayload.model_validate(d).error),
}

# Events whose payload carries no information; an empty data field is fine.
_EMPTY_OK = frozenset({"message_stop", "ping"})


def _message_delta(p: _MessageDeltaPayload) -> MessageDelta:
    return MessageDelta(delta=p.delta, usage=p.usage)


def _block_start(p: _BlockStartPayload) -> ContentBlockStart:
    return ContentBlockStart(index=p.index, content_block=p.content_block)


def _block_delta(p: _BlockDeltaPayload) -> ContentBlockDelta:
    return ContentBlockDelta(index=p.index, delta=p.delta)


def decode_event(name: Optional[str], data: str) -> StreamEvent:
    """Decode one dispatched SSE event into a :class:`StreamEvent`.

    ``name`` is the ``event:`` field (``None`` when absent); the JSON ``type``
    key is used as a fallback. Decoding never raises: any failure becomes an
    :class:`UnknownEvent` carrying the raw data and a reason.
    """
    payload: Any = None
    if data.strip():
        try:
            payload = json.loads(data)
        except (ValueError, RecursionError) as e:
            return UnknownEvent(event=name, data=data, reason=f"invalid JSON: {e}")
    kind = name
    if (kind is None or kind == "message") and isinstance(payload, dict):
        kind = payload.get("type") or kind
    if kind not in _BUILDERS:
        return UnknownEvent(event=name, data=data, reason=f"unrecognized event type {kind!r}")
    if payload is None:
        if kind in _EMPTY_OK:
            payload = {}
        else:
            return UnknownEvent(event=name, data=data, reason="empty payload")
    if not isinstance(payload, dict):
        return UnknownEvent(event=name, data=data, reason="payload is not a JSON object")
    try:
        return _BUILDERS[kind](payload)
    except ValidationError as e:
        return UnknownEvent(event=name, data=data, reason=f"invalid {kind} payload: {e.error_count()} error(s)")
    except RecursionError:
        return UnknownEvent(event=name, data=data, reason=f"invalid {kind} payload: nested too deeply")


_ERROR_TYPE_CODES: Dict[str, ErrorCode] = {
    "overloaded_error": ErrorCode.SERVER_ERROR,
    "api_error": ErrorCode.SERVER_ERROR,
    "rate_limit_error": ErrorCode.RATE_LIMIT,
    "authentication_error": ErrorCode.AUTH,
    "permission_error": ErrorCode.AUTH,
    "invalid_request_error": ErrorCode.CLIENT_ERROR,
    "not_found_error": ErrorCode.CLIENT_ERROR,
    "request_too_large": ErrorCode.CLIENT_ERROR,
}


def error_from_event(event: StreamErrorEvent) -> ApiError:
    """Convert an in-band error event into a non-retryable :class:`ApiError`."""
    return ApiError(
        code=_ERROR_TYPE_CODES.get(event.error_type or "", ErrorCode.UNKNOWN),
        message=f"Stream error: {event.message}",
        error_type=event.error_type,
        retryable=False,
        raw=event.error,
    )


__all__ = [
    "Usage",
    "BlockDelta",
    "MessageDeltaBody",
    "MessageStart",
    "MessageDelta",
    "MessageStop",
    "ContentBlockStart",
    "ContentBlockDelta",
    "ContentBlockStop",
    "Ping",
    "StreamErrorEvent",
    "UnknownEvent",
    "StreamEvent",
    "TERMINAL_EVENT_TYPES",
    "is_terminal",
    "decode_event",
    "error_from_event",
]
