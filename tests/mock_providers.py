"""
Mock LLM providers for testing.

Provides canned responses so tests can exercise the router and orchestrator
without hitting real APIs.
"""

from __future__ import annotations

from typing import AsyncIterator

from canvasai.errors import BackendError, ConnectivityError
from canvasai.llm.providers.base import Provider
from canvasai.llm.types import (
    AIResponse,
    ChatOptions,
    Message,
    ProviderCapabilities,
    StreamChunk,
    ToolCall,
)
from canvasai.types import ErrorCode


class MockProvider(Provider):
    """
    A provider that answers from pre-configured data.

    Usage::

        provider = MockProvider("anthropic", response=AIResponse(content="hi"))

    Parameters
    ----------
    name:
        Registry name.
    response:
        Returned by ``send``.  Defaults to ``AIResponse(content="ok")``.
    chunks:
        Yielded by ``stream``.  Defaults to the response text then ``done``.
    error:
        Raised by ``send`` and ``stream`` instead of answering.
    connect_error:
        Raised by ``connect``.
    capabilities:
        Reported capabilities.
    """

    def __init__(
        self,
        name: str = "mock",
        response: AIResponse | None = None,
        chunks: list[StreamChunk] | None = None,
        error: Exception | None = None,
        connect_error: Exception | None = None,
        capabilities: ProviderCapabilities | None = None,
    ) -> None:
        self._name = name
        self._response = response or AIResponse(content="ok")
        self._chunks = chunks
        self._error = error
        self._connect_error = connect_error
        self._capabilities = capabilities or ProviderCapabilities(
            vision=True, function_calling=True, max_context_tokens=100_000
        )
        self.send_count = 0
        self.stream_count = 0
        self.connect_count = 0
        self.disconnect_count = 0
        self.last_messages: list[Message] | None = None
        self.last_options: ChatOptions | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    async def connect(self) -> None:
        self.connect_count += 1
        if self._connect_error is not None:
            raise self._connect_error
        self._connected = True

    def disconnect(self) -> None:
        self.disconnect_count += 1
        super().disconnect()

    async def send(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AIResponse:
        self.send_count += 1
        self.last_messages = messages
        self.last_options = options
        if self._error is not None:
            raise self._error
        r = self._response
        return AIResponse(
            content=r.content,
            tool_calls=list(r.tool_calls),
            stop_reason=r.stop_reason,
            usage=r.usage,
            provider=r.provider,
        )

    async def stream(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        self.stream_count += 1
        self.last_messages = messages
        self.last_options = options
        if self._error is not None:
            raise self._error
        chunks = self._chunks
        if chunks is None:
            chunks = [StreamChunk.text_delta(self._response.content), StreamChunk.done()]
        for chunk in chunks:
            yield chunk


def failing_provider(name: str, code: str = ErrorCode.SERVER_ERROR) -> MockProvider:
    """A provider whose requests always fail with a ``BackendError``."""
    return MockProvider(
        name,
        error=BackendError(f"{name} is down", code=code, provider=name),
    )


def offline_provider(name: str) -> MockProvider:
    """A provider whose ``connect`` fails."""
    return MockProvider(
        name,
        connect_error=ConnectivityError(f"{name} offline", provider=name),
    )


def make_text_chunks(text: str) -> list[StreamChunk]:
    """Stream *text* one word at a time, then ``done``."""
    words = text.split(" ")
    chunks: list[StreamChunk] = []
    for i, word in enumerate(words):
        suffix = " " if i < len(words) - 1 else ""
        chunks.append(StreamChunk.text_delta(word + suffix))
    chunks.append(StreamChunk.done("end_turn"))
    return chunks


def make_tool_call_chunks(
    tool_name: str,
    tool_args: dict,
    call_id: str = "toolu_1",
    content_prefix: str = "",
) -> list[StreamChunk]:
    """
    Stream a single tool call the way the adapters emit it: start, argument
    fragments, then end carrying the parsed call.
    """
    import json

    args_json = json.dumps(tool_args)
    chunks: list[StreamChunk] = []
    if content_prefix:
        chunks.append(StreamChunk.text_delta(content_prefix))

    chunks.append(StreamChunk.tool_call_start(0, call_id, tool_name))
    third = max(1, len(args_json) // 3)
    for part in (args_json[:third], args_json[third : 2 * third], args_json[2 * third :]):
        if part:
            chunks.append(StreamChunk.tool_call_delta(0, part))
    chunks.append(
        StreamChunk.tool_call_end(0, ToolCall(id=call_id, name=tool_name, arguments=tool_args))
    )
    chunks.append(StreamChunk.done("tool_use"))
    return chunks
