"""Session state: conversation history, context assembly, events."""

from canvasai.session.calibration import CalibrationResult, CoordinateCalibrator
from canvasai.session.channel import EventChannel
from canvasai.session.context import (
    AIContext,
    ContextAssembler,
    ContextOptions,
    TokenBudget,
    TruncationTarget,
    truncate_context,
)
from canvasai.session.conversation import ConversationEntry, ConversationStore
from canvasai.session.events import (
    AIEvent,
    EventType,
    cursor_move_event,
    status_change_event,
    stream_chunk_event,
    tool_complete_event,
    tool_start_event,
    turn_complete_event,
    turn_error_event,
    turn_start_event,
)

__all__ = [
    "AIContext",
    "AIEvent",
    "CalibrationResult",
    "ContextAssembler",
    "ContextOptions",
    "ConversationEntry",
    "ConversationStore",
    "CoordinateCalibrator",
    "EventChannel",
    "EventType",
    "TokenBudget",
    "TruncationTarget",
    "truncate_context",
    # Factory functions
    "cursor_move_event",
    "status_change_event",
    "stream_chunk_event",
    "tool_complete_event",
    "tool_start_event",
    "turn_complete_event",
    "turn_error_event",
    "turn_start_event",
]
