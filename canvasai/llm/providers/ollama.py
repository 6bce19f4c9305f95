"""
Ollama provider.

Streams responses from a local Ollama instance via its ``/api/chat`` endpoint
as newline-delimited JSON, one complete object per line.  Tool calling is not
used with Ollama: tools are never sent and responses carry no tool calls.

Dependencies: ``httpx``.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from canvasai.errors import BackendError, ConnectivityError
from canvasai.llm.providers.base import (
    Provider,
    error_from_response,
    error_from_transport,
    parse_json_body,
)
from canvasai.llm.types import (
    AIResponse,
    ChatOptions,
    Message,
    ProviderCapabilities,
    StopReason,
    StreamChunk,
    Usage,
)
from canvasai.types import ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:11434"
DEFAULT_MODEL = "llama3.1:8b"

_CAPABILITIES = ProviderCapabilities(
    vision=True,
    streaming=True,
    function_calling=False,
    max_context_tokens=8192,
)


class OllamaProvider(Provider):
    """
    Provider for a local `Ollama <https://ollama.com>`_ instance.

    Parameters
    ----------
    endpoint:
        Base URL of the Ollama HTTP API (e.g. ``"http://localhost:11434"``).
    model:
        Model tag, e.g. ``"llama3.1:8b"`` or ``"llava"``.
    max_tokens:
        Default ``num_predict``.
    temperature:
        Default sampling temperature.
    keep_alive:
        How long Ollama keeps the model loaded after a request.
    timeout:
        HTTP request timeout in seconds.
    transport:
        Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        keep_alive: str = "5m",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._keep_alive = keep_alive
        self._timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def capabilities(self) -> ProviderCapabilities:
        return _CAPABILITIES

    @property
    def model(self) -> str:
        return self._model

    async def connect(self) -> None:
        models = await self._fetch_models(ConnectivityError)
        if not _has_model(models, self._model):
            logger.warning(
                "Ollama model %s not found; available: %s",
                self._model,
                ", ".join(models) or "(none)",
            )
        self._connected = True
        logger.info("Connected to Ollama at %s", self._endpoint)

    async def list_models(self) -> list[str]:
        """Names of the models installed on the server."""
        return await self._fetch_models(BackendError)

    async def send(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AIResponse:
        body = self._build_body(messages, options or ChatOptions(), stream=False)
        try:
            async with self._client() as client:
                resp = await client.post(f"{self._endpoint}/api/chat", json=body)
        except httpx.TransportError as exc:
            raise error_from_transport(self.name, exc, label="Ollama") from exc
        if resp.status_code >= 400:
            raise error_from_response(self.name, resp, label="Ollama")

        data = parse_json_body(self.name, resp)
        message = data.get("message") or {}
        return AIResponse(
            content=message.get("content") or "",
            tool_calls=[],
            stop_reason=_stop_reason(data),
            usage=_usage(data),
            provider=self.name,
        )

    async def stream(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        body = self._build_body(messages, options or ChatOptions(), stream=True)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", f"{self._endpoint}/api/chat", json=body
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise error_from_response(self.name, response, label="Ollama")

                    async for line in response.aiter_lines():
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            logger.warning("Ollama: failed to parse line: %s", line[:200])
                            continue
                        if not isinstance(data, dict):
                            continue

                        if data.get("error"):
                            raise BackendError(
                                f"Ollama stream error: {data['error']}",
                                code=ErrorCode.STREAM_ERROR,
                                provider=self.name,
                            )

                        try:
                            text = (data.get("message") or {}).get("content") or ""
                            if not isinstance(text, str):
                                raise TypeError(f"content is {type(text).__name__}")
                            done = (
                                StreamChunk.done(_stop_reason(data), _usage(data))
                                if data.get("done")
                                else None
                            )
                        except (KeyError, TypeError, ValueError, AttributeError) as exc:
                            logger.warning("Ollama: skipping malformed line: %s", exc)
                            continue

                        if text:
                            yield StreamChunk.text_delta(text)
                        if done is not None:
                            yield done
                            return

                    # Safety: always end with a done chunk.
                    yield StreamChunk.done(StopReason.END_TURN)
        except httpx.TransportError as exc:
            raise error_from_transport(self.name, exc, label="Ollama") from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fetch_models(self, error_cls: type) -> list[str]:
        try:
            async with self._client(timeout=10.0) as client:
                resp = await client.get(f"{self._endpoint}/api/tags")
        except httpx.TransportError as exc:
            raise error_from_transport(self.name, exc, error_cls, label="Ollama") from exc
        if resp.status_code >= 400:
            raise error_from_response(self.name, resp, error_cls, label="Ollama")
        data = parse_json_body(self.name, resp, error_cls)
        models = data.get("models") or []
        if not isinstance(models, list):
            raise error_cls(
                "Ollama returned an unexpected model list",
                code=ErrorCode.INVALID_RESPONSE,
                provider=self.name,
                status_code=resp.status_code,
            )
        return [m["name"] for m in models if isinstance(m, dict) and isinstance(m.get("name"), str)]

    def _build_body(
        self, messages: list[Message], options: ChatOptions, stream: bool
    ) -> dict:
        wire_messages: list[dict] = []
        if options.system_prompt:
            wire_messages.append({"role": "system", "content": options.system_prompt})

        for msg in messages:
            m: dict = {"role": msg.role, "content": msg.text}
            images = msg.images
            if images:
                # Ollama wants bare base64, no data: URL prefix.
                m["images"] = [img.data for img in images]
            wire_messages.append(m)

        return {
            "model": self._model,
            "messages": wire_messages,
            "stream": stream,
            "keep_alive": self._keep_alive,
            "options": {
                "num_predict": options.max_tokens or self._max_tokens,
                "temperature": (
                    options.temperature
                    if options.temperature is not None
                    else self._temperature
                ),
            },
        }


def _has_model(models: list[str], model: str) -> bool:
    if model in models:
        return True
    # "llama3" matches "llama3:latest"
    if ":" not in model:
        return f"{model}:latest" in models
    return False


def _stop_reason(data: dict) -> str:
    if data.get("done_reason") == "length":
        return StopReason.MAX_TOKENS
    return StopReason.END_TURN


def _usage(data: dict) -> Usage:
    return Usage(
        input_tokens=int(data.get("prompt_eval_count") or 0),
        output_tokens=int(data.get("eval_count") or 0),
    )
