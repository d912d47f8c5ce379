"""Fold a stream of events into one message snapshot.

The accumulator mirrors what a non-streaming call would have returned:
content blocks are rebuilt from ``content_block_start`` plus their deltas,
partial tool-input JSON is parsed when its block stops, usage counters keep
the largest value reported and the stop reason comes from ``message_delta``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..errors import ApiError, ErrorCode
from .events import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageDelta,
    MessageStart,
    MessageStop,
    StreamErrorEvent,
    StreamEvent,
    Usage,
    error_from_event,
)

_JSON_INPUT_FIELDS = {
    "tool_use": "input",
    "server_tool_use": "input",
    "mcp_tool_use": "input",
}


@dataclass
class StreamedMessage:
    """Message rebuilt from stream events."""

    id: Optional[str]
    model: Optional[str]
    role: str = "assistant"
    content: List[Dict[str, Any]] = field(default_factory=list)
    stop_reason: Optional[str] = None
    stop_sequence: Optional[str] = None
    usage: Usage = field(default_factory=Usage)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks, joined by a space."""
        return " ".join(b.get("text", "") for b in self.content if b.get("type") == "text")


class MessageAccumulator:
    """Apply events one at a time; call :meth:`result` once the stream ended."""

    def __init__(self) -> None:
        self._message: Optional[Dict[str, Any]] = None
        self._usage = Usage()
        self._blocks: List[Optional[Dict[str, Any]]] = []
        self._json_buffers: Dict[int, str] = {}
        self._stop_reason: Optional[str] = None
        self._stop_sequence: Optional[str] = None
        self.done = False

    def apply(self, event: StreamEvent) -> None:
        """Fold ``event`` into the snapshot.

        Raises:
            ApiError: when ``event`` is an in-band server error.
        """
        if isinstance(event, MessageStart):
            self._message = dict(event.message)
            self._usage = Usage.model_validate(event.message.get("usage") or {})
            self._stop_reason = event.message.get("stop_reason")
            self._stop_sequence = event.message.get("stop_sequence")
        elif isinstance(event, ContentBlockStart):
            while len(self._blocks) <= event.index:
                self._blocks.append(None)
            self._blocks[event.index] = dict(event.content_block)
        elif isinstance(event, ContentBlockDelta):
            self._apply_delta(event)
        elif isinstance(event, ContentBlockStop):
            self._finish_block(event.index)
        elif isinstance(event, MessageDelta):
            self._usage = self._usage.merge_max(event.usage)
            if event.delta.stop_reason is not None:
                self._stop_reason = event.delta.stop_reason
            if event.delta.stop_sequence is not None:
                self._stop_sequence = event.delta.stop_sequence
        elif isinstance(event, MessageStop):
            self.done = True
        elif isinstance(event, StreamErrorEvent):
            raise error_from_event(event)

    def _block(self, index: int) -> Optional[Dict[str, Any]]:
        if 0 <= index < len(self._blocks):
            return self._blocks[index]
        return None

    def _apply_delta(self, event: ContentBlockDelta) -> None:
        delta = event.delta
        block = self._block(event.index)
        if delta.partial_json is not None:
            self._json_buffers[event.index] = self._json_buffers.get(event.index, "") + delta.partial_json
        if block is None:
            return
        if delta.text is not None and block.get("type") == "text":
            block["text"] = block.get("text", "") + delta.text
        if delta.thinking is not None and block.get("type") == "thinking":
            block["thinking"] = block.get("thinking", "") + delta.thinking
        if delta.signature is not None and block.get("type") == "thinking":
            block["signature"] = (block.get("signature") or "") + delta.signature
        if delta.citation is not None and block.get("type") == "text":
            block.setdefault("citations", []).append(delta.citation)

    def _finish_block(self, index: int) -> None:
        partial = self._json_buffers.pop(index, None)
        block = self._block(index)
        if partial is None or block is None:
            return
        try:
            parsed: Any = json.loads(partial) if partial else {}
        except ValueError:
            parsed = partial
        block_type = block.get("type", "")
        if block_type in _JSON_INPUT_FIELDS:
            block[_JSON_INPUT_FIELDS[block_type]] = parsed
        elif block_type.endswith("tool_result"):
            block["content"] = parsed

    def result(self) -> StreamedMessage:
        if self._message is None:
            raise ApiError(
                code=ErrorCode.DECODE,
                message="No message_start event received",
                retryable=False,
            )
        message = self._message
        return StreamedMessage(
            id=message.get("id"),
            model=message.get("model"),
            role=message.get("role", "assistant"),
            content=[b for b in self._blocks if b is not None],
            stop_reason=self._stop_reason,
            stop_sequence=self._stop_sequence,
            usage=self._usage,
            raw=message,
        )


def accumulate_events(events: Iterable[StreamEvent]) -> StreamedMessage:
    """Accumulate an already collected event sequence into a message."""
    acc = MessageAccumulator()
    for event in events:
        acc.apply(event)
        if acc.done:
            break
    return acc.result()


__all__ = ["StreamedMessage", "MessageAccumulator", "accumulate_events"]
