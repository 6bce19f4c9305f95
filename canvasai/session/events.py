"""
Assistant event model.

Everything the host can observe about a turn is published as an
:class:`AIEvent` on the session's :class:`~canvasai.session.channel.EventChannel`.
Events are immutable once created and serialize to plain dicts.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from canvasai.llm.types import AIResponse, StreamChunk, ToolCall
from canvasai.types import AIStatus, ToolResult


class EventType(str, Enum):
    TURN_START = "turn_start"
    TURN_COMPLETE = "turn_complete"
    TURN_ERROR = "turn_error"
    STREAM_CHUNK = "stream_chunk"
    TOOL_START = "tool_start"
    TOOL_COMPLETE = "tool_complete"
    CURSOR_MOVE = "cursor_move"
    STATUS_CHANGE = "status_change"


# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AIEvent:
    """
    A single observable event.

    Attributes
    ----------
    type:
        One of :class:`EventType`.
    payload:
        Event-specific data.  Values are the live objects (``AIResponse``,
        ``ToolCall``, ...); ``to_dict`` flattens them.
    turn_id:
        Groups events that belong to the same user turn.
    """

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    turn_id: str = ""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "payload": {k: _plain(v) for k, v in self.payload.items()},
            "turn_id": self.turn_id,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseException):
        return {"type": type(value).__name__, "message": str(value)}
    if hasattr(value, "__dataclass_fields__"):
        return {k: _plain(getattr(value, k)) for k in value.__dataclass_fields__}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def turn_start_event(turn_id: str, message: str) -> AIEvent:
    return AIEvent(EventType.TURN_START, {"message": message}, turn_id)


def turn_complete_event(turn_id: str, response: AIResponse) -> AIEvent:
    return AIEvent(EventType.TURN_COMPLETE, {"response": response}, turn_id)


def turn_error_event(turn_id: str, error: BaseException) -> AIEvent:
    return AIEvent(EventType.TURN_ERROR, {"error": error}, turn_id)


def stream_chunk_event(turn_id: str, chunk: StreamChunk) -> AIEvent:
    return AIEvent(EventType.STREAM_CHUNK, {"chunk": chunk}, turn_id)


def tool_start_event(turn_id: str, call: ToolCall) -> AIEvent:
    return AIEvent(EventType.TOOL_START, {"call": call}, turn_id)


def tool_complete_event(turn_id: str, call: ToolCall, result: ToolResult) -> AIEvent:
    return AIEvent(EventType.TOOL_COMPLETE, {"call": call, "result": result}, turn_id)


def cursor_move_event(turn_id: str, x: float, y: float) -> AIEvent:
    return AIEvent(EventType.CURSOR_MOVE, {"x": x, "y": y}, turn_id)


def status_change_event(turn_id: str, status: AIStatus) -> AIEvent:
    return AIEvent(EventType.STATUS_CHANGE, {"status": status}, turn_id)
