"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    """An inline image.  *data* is raw base64 without a ``data:`` prefix."""

    data: str
    media_type: str = "image/png"


@dataclass(frozen=True)
class ToolUsePart:
    """A tool invocation previously made by the assistant."""

    id: str
    name: str
    input: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultPart:
    """The host's answer to a ``ToolUsePart``."""

    tool_use_id: str
    content: str
    is_error: bool = False


ContentPart = Union[TextPart, ImagePart, ToolUsePart, ToolResultPart]


@dataclass(frozen=True)
class Message:
    """
    A single message in a conversation.

    *content* is either plain text or an ordered tuple of text/image parts.
    Messages are immutable once built.
    """

    role: str  # "user", "assistant", "system"
    content: str | tuple[ContentPart, ...]

    @classmethod
    def user(cls, text: str, images: list[ImagePart] | None = None) -> Message:
        if not images:
            return cls(role="user", content=text)
        return cls(role="user", content=(TextPart(text), *images))

    @classmethod
    def assistant(cls, text: str) -> Message:
        return cls(role="assistant", content=text)

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role="system", content=text)

    @property
    def text(self) -> str:
        """Text content; text parts are joined with newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def images(self) -> list[ImagePart]:
        if isinstance(self.content, str):
            return []
        return [p for p in self.content if isinstance(p, ImagePart)]


@dataclass
class ToolCall:
    """A resolved tool call with parsed arguments."""

    id: str
    name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


class StopReason:
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


class ChunkType(str, Enum):
    TEXT = "text"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_DELTA = "tool_call_delta"
    TOOL_CALL_END = "tool_call_end"
    DONE = "done"


@dataclass
class StreamChunk:
    """
    A single chunk yielded while streaming a response.

    The ``type`` tag decides which fields are meaningful:

    * ``text`` -- *text* carries new content.
    * ``tool_call_start`` -- *index* and a *tool_call* with id and name
      (empty arguments).
    * ``tool_call_delta`` -- *index* and a raw argument fragment in *text*.
    * ``tool_call_end`` -- *index* and the complete *tool_call*.
    * ``done`` -- end of stream, with *stop_reason* and *usage* when the
      backend reports them.
    """

    type: ChunkType
    text: str = ""
    index: int | None = None
    tool_call: ToolCall | None = None
    stop_reason: str | None = None
    usage: Usage | None = None

    @classmethod
    def text_delta(cls, text: str) -> StreamChunk:
        return cls(type=ChunkType.TEXT, text=text)

    @classmethod
    def tool_call_start(cls, index: int, call_id: str, name: str) -> StreamChunk:
        return cls(
            type=ChunkType.TOOL_CALL_START,
            index=index,
            tool_call=ToolCall(id=call_id, name=name, arguments={}),
        )

    @classmethod
    def tool_call_delta(cls, index: int, fragment: str) -> StreamChunk:
        return cls(type=ChunkType.TOOL_CALL_DELTA, index=index, text=fragment)

    @classmethod
    def tool_call_end(cls, index: int, tool_call: ToolCall | None = None) -> StreamChunk:
        return cls(type=ChunkType.TOOL_CALL_END, index=index, tool_call=tool_call)

    @classmethod
    def done(
        cls, stop_reason: str | None = None, usage: Usage | None = None
    ) -> StreamChunk:
        return cls(type=ChunkType.DONE, stop_reason=stop_reason, usage=usage)


@dataclass(frozen=True)
class ProviderCapabilities:
    vision: bool = False
    streaming: bool = True
    function_calling: bool = False
    max_context_tokens: int = 4096


@dataclass
class ChatOptions:
    """Per-request options shared by every provider."""

    tools: list | None = None  # list[ToolSpec]
    max_tokens: int | None = None
    temperature: float | None = None
    system_prompt: str | None = None


@dataclass
class AIResponse:
    """A complete, non-streamed response."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str = StopReason.END_TURN
    usage: Usage = field(default_factory=Usage)
    provider: str | None = None
