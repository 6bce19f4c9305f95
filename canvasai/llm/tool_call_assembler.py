"""
Assembles streamed tool-call fragments into complete ToolCall objects.

The assembler is a per-stream arena of slots keyed by the small integer index
the backend assigns to each tool invocation:

  - ``tool_call_start`` opens a slot (id + name, empty argument buffer).
  - ``tool_call_delta`` appends a raw argument fragment to the open slot.
    Fragments are only parsed once concatenated, since a partial serialized
    object is usually not valid JSON on its own.
  - ``tool_call_end`` closes the slot, parses the buffer and returns the
    finished ``ToolCall``.

An end (or delta) without an open slot at its index is dropped silently.
If the concatenated arguments fail to parse the call is *dropped* and an
error is recorded in ``self.errors``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from canvasai.llm.types import ChunkType, StreamChunk, ToolCall

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    id: str
    name: str
    fragments: list[str] = field(default_factory=list)


class ToolCallAssembler:
    """Buffers tool-call fragments by index and emits finished ``ToolCall``s."""

    def __init__(self) -> None:
        self._slots: dict[int, _Slot] = {}
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def open(self, index: int, call_id: str, name: str) -> None:
        """Open a slot at *index*, replacing any unfinished one."""
        if index in self._slots:
            logger.debug("tool call slot %d reopened before it was closed", index)
        self._slots[index] = _Slot(id=call_id or f"call_{index}", name=name)

    def append(self, index: int, fragment: str) -> bool:
        """Append an argument fragment.  Returns ``False`` if no slot is open."""
        slot = self._slots.get(index)
        if slot is None:
            return False
        slot.fragments.append(fragment)
        return True

    def close(self, index: int) -> ToolCall | None:
        """Finalize the slot at *index*, or return ``None`` if none is open."""
        slot = self._slots.pop(index, None)
        if slot is None:
            return None

        raw_args = "".join(slot.fragments).strip() or "{}"
        try:
            args = json.loads(raw_args)
        except (json.JSONDecodeError, ValueError) as exc:
            self.errors.append(f"tool_call_json_parse_failed idx={index} err={exc}")
            return None
        if not isinstance(args, dict):
            self.errors.append(f"tool_call_args_not_object idx={index}")
            return None

        return ToolCall(id=slot.id, name=slot.name.strip(), arguments=args)

    def feed(self, chunk: StreamChunk) -> ToolCall | None:
        """
        Feed a normalized ``StreamChunk``.

        Returns the completed ``ToolCall`` when *chunk* closes an open slot,
        otherwise ``None``.  Text and done chunks are ignored.
        """
        if chunk.index is None:
            return None
        if chunk.type == ChunkType.TOOL_CALL_START:
            call = chunk.tool_call
            self.open(chunk.index, call.id if call else "", call.name if call else "")
        elif chunk.type == ChunkType.TOOL_CALL_DELTA:
            self.append(chunk.index, chunk.text)
        elif chunk.type == ChunkType.TOOL_CALL_END:
            return self.close(chunk.index)
        return None

    @property
    def pending(self) -> list[int]:
        """Indices of slots that were opened but not yet closed."""
        return sorted(self._slots)

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._slots.clear()
        self.errors.clear()
