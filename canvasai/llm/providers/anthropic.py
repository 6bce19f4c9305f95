"""
Anthropic Messages API provider.

Talks to ``POST /v1/messages`` directly over httpx (no SDK).  Streaming uses
the API's Server-Sent Events, whose ``data:`` payloads are tagged by
``type``:

  message_start -> content_block_start -> content_block_delta* ->
  content_block_stop -> ... -> message_delta -> message_stop

``tool_use`` blocks stream their input as partial JSON fragments keyed by the
block index; a ``ToolCallAssembler`` buffers them until the block stops.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator

import httpx

from canvasai.errors import BackendError, ConnectivityError
from canvasai.llm.providers.base import (
    Provider,
    error_from_response,
    error_from_transport,
    iter_sse_data,
    parse_json_body,
)
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
    ToolResultPart,
    ToolUsePart,
    Usage,
)
from canvasai.types import ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
API_VERSION = "2023-06-01"

_CAPABILITIES = ProviderCapabilities(
    vision=True,
    streaming=True,
    function_calling=True,
    max_context_tokens=200_000,
)

# ``error`` event types -> error codes
_STREAM_ERROR_CODES = {
    "authentication_error": ErrorCode.AUTH_FAILED,
    "permission_error": ErrorCode.AUTH_FAILED,
    "not_found_error": ErrorCode.MODEL_NOT_FOUND,
    "rate_limit_error": ErrorCode.RATE_LIMITED,
    "invalid_request_error": ErrorCode.INVALID_REQUEST,
    "overloaded_error": ErrorCode.SERVER_ERROR,
    "api_error": ErrorCode.SERVER_ERROR,
}


@dataclass
class _StreamState:
    assembler: ToolCallAssembler = field(default_factory=ToolCallAssembler)
    usage: Usage = field(default_factory=Usage)
    stop_reason: str | None = None


class AnthropicProvider(Provider):
    """
    Provider for the hosted Anthropic API.

    Parameters
    ----------
    api_key:
        Value for the ``x-api-key`` header.
    model:
        Model identifier sent in the ``model`` field.
    base_url:
        API root; ``/v1/messages`` is appended.
    max_tokens:
        Default output token limit when the request does not set one.
    temperature:
        Default sampling temperature.
    timeout:
        HTTP request timeout in seconds.
    transport:
        Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def capabilities(self) -> ProviderCapabilities:
        return _CAPABILITIES

    @property
    def model(self) -> str:
        return self._model

    async def connect(self) -> None:
        if not self._api_key:
            raise ConnectivityError(
                "Anthropic API key not configured",
                code=ErrorCode.AUTH_FAILED,
                provider=self.name,
            )
        body = {
            "model": self._model,
            "max_tokens": 1,
            "messages": [{"role": "user", "content": "Hi"}],
        }
        try:
            async with self._client(timeout=30.0) as client:
                resp = await client.post(self._url, json=body, headers=self._headers())
        except httpx.TransportError as exc:
            raise error_from_transport(
                self.name, exc, ConnectivityError, label="Anthropic"
            ) from exc
        if resp.status_code >= 400:
            raise error_from_response(
                self.name, resp, ConnectivityError, label="Anthropic"
            )
        self._connected = True
        logger.info("Connected to Anthropic (model=%s)", self._model)

    async def send(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AIResponse:
        body = self._build_body(messages, options or ChatOptions(), stream=False)
        try:
            async with self._client() as client:
                resp = await client.post(self._url, json=body, headers=self._headers())
        except httpx.TransportError as exc:
            raise error_from_transport(self.name, exc, label="Anthropic") from exc
        if resp.status_code >= 400:
            raise error_from_response(self.name, resp, label="Anthropic")
        return self._parse_response(parse_json_body(self.name, resp))

    async def stream(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        body = self._build_body(messages, options or ChatOptions(), stream=True)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", self._url, json=body, headers=self._headers()
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise error_from_response(self.name, response, label="Anthropic")
                    async for chunk in self._parse_stream(response):
                        yield chunk
        except httpx.TransportError as exc:
            raise error_from_transport(self.name, exc, label="Anthropic") from exc

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    @property
    def _url(self) -> str:
        return f"{self._base_url}/v1/messages"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": API_VERSION,
        }

    def _build_body(
        self, messages: list[Message], options: ChatOptions, stream: bool
    ) -> dict:
        system_parts: list[str] = []
        if options.system_prompt:
            system_parts.append(options.system_prompt)

        wire_messages: list[dict] = []
        for msg in messages:
            if msg.role == "system":
                # The Messages API takes the system prompt as a top-level field.
                system_parts.append(msg.text)
                continue
            wire_messages.append(
                {"role": msg.role, "content": self._content_to_wire(msg)}
            )

        body: dict = {
            "model": self._model,
            "max_tokens": options.max_tokens or self._max_tokens,
            "temperature": (
                options.temperature
                if options.temperature is not None
                else self._temperature
            ),
            "messages": wire_messages,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if options.tools:
            body["tools"] = [_tool_to_wire(t) for t in options.tools]
        if stream:
            body["stream"] = True

        logger.debug(
            "Anthropic request: model=%s messages=%d tools=%d stream=%s",
            self._model,
            len(wire_messages),
            len(options.tools or []),
            stream,
        )
        return body

    @staticmethod
    def _content_to_wire(msg: Message) -> str | list[dict]:
        if isinstance(msg.content, str):
            return msg.content
        blocks: list[dict] = []
        for part in msg.content:
            if isinstance(part, TextPart):
                blocks.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                blocks.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": part.media_type,
                            "data": part.data,
                        },
                    }
                )
            elif isinstance(part, ToolUsePart):
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": part.id,
                        "name": part.name,
                        "input": part.input,
                    }
                )
            elif isinstance(part, ToolResultPart):
                block: dict = {
                    "type": "tool_result",
                    "tool_use_id": part.tool_use_id,
                    "content": part.content,
                }
                if part.is_error:
                    block["is_error"] = True
                blocks.append(block)
        return blocks

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def _parse_response(self, data: dict) -> AIResponse:
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in data.get("content") or []:
            btype = block.get("type")
            if btype == "text":
                text_parts.append(block.get("text", ""))
            elif btype == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.get("id", ""),
                        name=block.get("name", ""),
                        arguments=block.get("input") or {},
                    )
                )
        usage = data.get("usage") or {}
        return AIResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            stop_reason=data.get("stop_reason") or StopReason.END_TURN,
            usage=Usage(
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
            ),
            provider=self.name,
        )

    async def _parse_stream(
        self, response: httpx.Response
    ) -> AsyncIterator[StreamChunk]:
        state = _StreamState()
        async for payload in iter_sse_data(response):
            try:
                event = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning("Anthropic: skipping unparseable event: %s", payload[:200])
                continue
            if not isinstance(event, dict):
                logger.warning("Anthropic: skipping non-object event: %s", payload[:200])
                continue

            if event.get("type") == "error":
                err = event.get("error") or {}
                raise BackendError(
                    f"Anthropic stream error: {err.get('message', 'unknown error')}",
                    code=_STREAM_ERROR_CODES.get(err.get("type"), ErrorCode.STREAM_ERROR),
                    provider=self.name,
                )

            try:
                chunks = self._handle_event(event, state)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning(
                    "Anthropic: skipping malformed %s event: %s",
                    event.get("type"),
                    exc,
                )
                continue

            for chunk in chunks:
                yield chunk
                if chunk.type == ChunkType.DONE:
                    return

        # The connection closed without message_stop.
        yield StreamChunk.done(state.stop_reason or StopReason.END_TURN, state.usage)

    def _handle_event(self, event: dict, state: _StreamState) -> list[StreamChunk]:
        etype = event["type"]

        if etype == "message_start":
            usage = event["message"].get("usage") or {}
            state.usage.input_tokens = int(usage.get("input_tokens", 0))
            return []

        if etype == "content_block_start":
            index = int(event["index"])
            block = event["content_block"]
            if block["type"] == "tool_use":
                state.assembler.open(index, block["id"], block["name"])
                return [StreamChunk.tool_call_start(index, block["id"], block["name"])]
            if block["type"] == "text" and block.get("text"):
                return [StreamChunk.text_delta(block["text"])]
            return []

        if etype == "content_block_delta":
            index = int(event["index"])
            delta = event["delta"]
            if delta["type"] == "text_delta":
                return [StreamChunk.text_delta(delta["text"])]
            if delta["type"] == "input_json_delta":
                fragment = delta["partial_json"]
                if state.assembler.append(index, fragment):
                    return [StreamChunk.tool_call_delta(index, fragment)]
            return []

        if etype == "content_block_stop":
            index = int(event["index"])
            errors_before = len(state.assembler.errors)
            call = state.assembler.close(index)
            if call is not None:
                return [StreamChunk.tool_call_end(index, call)]
            if len(state.assembler.errors) > errors_before:
                logger.warning(
                    "Anthropic: dropped tool call: %s", state.assembler.errors[-1]
                )
            return []

        if etype == "message_delta":
            state.stop_reason = event["delta"].get("stop_reason") or state.stop_reason
            usage = event.get("usage") or {}
            if "output_tokens" in usage:
                state.usage.output_tokens = int(usage["output_tokens"])
            return []

        if etype == "message_stop":
            return [
                StreamChunk.done(state.stop_reason or StopReason.END_TURN, state.usage)
            ]

        # ping and future event types
        return []


def _tool_to_wire(tool) -> dict:
    spec = tool.to_dict() if hasattr(tool, "to_dict") else dict(tool)
    return {
        "name": spec["name"],
        "description": spec.get("description", ""),
        "input_schema": spec.get("parameters") or spec.get("input_schema") or {
            "type": "object",
            "properties": {},
        },
    }
