"""LLM subsystem -- providers, routing, and streaming tool-call assembly."""

from canvasai.llm.router import ProviderRouter
from canvasai.llm.token_counter import TokenCounter, estimate_tokens
from canvasai.llm.tool_call_assembler import ToolCallAssembler
from canvasai.llm.types import (
    AIResponse,
    ChatOptions,
    ChunkType,
    ImagePart,
    Message,
    ProviderCapabilities,
    StopReason,
    StreamChunk,
    TextPart,
    ToolCall,
    Usage,
)

__all__ = [
    "AIResponse",
    "ChatOptions",
    "ChunkType",
    "ImagePart",
    "Message",
    "ProviderCapabilities",
    "ProviderRouter",
    "StopReason",
    "StreamChunk",
    "TextPart",
    "TokenCounter",
    "ToolCall",
    "ToolCallAssembler",
    "Usage",
    "estimate_tokens",
]
