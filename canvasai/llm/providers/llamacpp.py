"""
llama.cpp server provider.

The server offers two mutually exclusive API shapes, selected with
``use_chat_api``:

* chat -- ``POST /v1/chat/completions`` with an OpenAI-shaped role/content
  list; streamed as SSE ``choices[0].delta`` objects ending in ``[DONE]``.
* completion -- ``POST /completion`` with the whole conversation flattened
  into one ChatML prompt; streamed as SSE ``{content, stop}`` objects.

Tool calls are not supported by either shape.
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
    iter_sse_data,
    parse_json_body,
)
from canvasai.llm.types import (
    AIResponse,
    ChatOptions,
    ChunkType,
    Message,
    ProviderCapabilities,
    StopReason,
    StreamChunk,
    Usage,
)
from canvasai.types import ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:8080"
DEFAULT_STOP = ["</s>", "<|im_end|>", "<|end|>"]

_CAPABILITIES = ProviderCapabilities(
    vision=False,
    streaming=True,
    function_calling=False,
    max_context_tokens=4096,
)


def build_prompt(messages: list[Message], system_prompt: str | None = None) -> str:
    """Flatten a conversation into a ChatML prompt for ``/completion``."""
    parts: list[str] = []
    if system_prompt:
        parts.append(f"<|im_start|>system\n{system_prompt}<|im_end|>")
    for msg in messages:
        parts.append(f"<|im_start|>{msg.role}\n{msg.text}<|im_end|>")
    parts.append("<|im_start|>assistant\n")
    return "\n".join(parts)


class LlamaCppProvider(Provider):
    """
    Provider for a `llama.cpp <https://github.com/ggerganov/llama.cpp>`_
    server.

    Parameters
    ----------
    endpoint:
        Server root, e.g. ``"http://localhost:8080"``.
    model:
        Optional model alias sent with chat requests.
    use_chat_api:
        ``True`` for the chat endpoint, ``False`` for raw completion.
    max_tokens, temperature, top_p, top_k, repeat_penalty, stop:
        Sampling defaults.
    api_key:
        Bearer token for servers started with ``--api-key``.
    timeout:
        HTTP request timeout in seconds.
    transport:
        Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        model: str = "",
        use_chat_api: bool = True,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        top_p: float = 0.9,
        top_k: int = 40,
        repeat_penalty: float = 1.1,
        stop: list[str] | None = None,
        api_key: str = "",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._model = model
        self.use_chat_api = use_chat_api
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._top_p = top_p
        self._top_k = top_k
        self._repeat_penalty = repeat_penalty
        self._stop = list(DEFAULT_STOP if stop is None else stop)
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "llamacpp"

    @property
    def capabilities(self) -> ProviderCapabilities:
        return _CAPABILITIES

    async def connect(self) -> None:
        # Older servers have no /health; /props answers on every version.
        last_error: BaseException | None = None
        async with self._client(timeout=10.0) as client:
            for path in ("/health", "/props"):
                try:
                    resp = await client.get(f"{self._endpoint}{path}", headers=self._headers())
                except httpx.TransportError as exc:
                    last_error = exc
                    continue
                if resp.status_code == 200:
                    self._connected = True
                    logger.info("Connected to llama.cpp at %s", self._endpoint)
                    return
                last_error = None
                logger.debug("llama.cpp %s returned %d", path, resp.status_code)

        if isinstance(last_error, httpx.TransportError):
            raise error_from_transport(
                self.name, last_error, ConnectivityError, label="llama.cpp"
            ) from last_error
        raise ConnectivityError(
            f"llama.cpp server at {self._endpoint} is not healthy",
            provider=self.name,
        )

    async def send(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AIResponse:
        options = options or ChatOptions()
        url, body = self._request(messages, options, stream=False)
        try:
            async with self._client() as client:
                resp = await client.post(url, json=body, headers=self._headers())
        except httpx.TransportError as exc:
            raise error_from_transport(self.name, exc, label="llama.cpp") from exc
        if resp.status_code >= 400:
            raise error_from_response(self.name, resp, label="llama.cpp")

        data = parse_json_body(self.name, resp)
        if self.use_chat_api:
            choices = data.get("choices") or [{}]
            content = (choices[0].get("message") or {}).get("content") or ""
            stop_reason = _chat_stop_reason(choices[0].get("finish_reason"))
        else:
            content = data.get("content") or ""
            stop_reason = _completion_stop_reason(data)
        return AIResponse(
            content=content,
            tool_calls=[],
            stop_reason=stop_reason,
            usage=_usage(data) or Usage(),
            provider=self.name,
        )

    async def stream(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        options = options or ChatOptions()
        url, body = self._request(messages, options, stream=True)
        parse = self._parse_chat_event if self.use_chat_api else self._parse_completion_event
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", url, json=body, headers=self._headers()
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise error_from_response(self.name, response, label="llama.cpp")

                    async for payload in iter_sse_data(response):
                        if payload == "[DONE]":
                            yield StreamChunk.done(StopReason.END_TURN)
                            return
                        try:
                            data = json.loads(payload)
                        except json.JSONDecodeError:
                            logger.warning("llama.cpp: failed to parse SSE data: %s", payload[:200])
                            continue
                        if not isinstance(data, dict):
                            continue
                        if data.get("error"):
                            raise BackendError(
                                f"llama.cpp stream error: {_error_text(data['error'])}",
                                code=ErrorCode.STREAM_ERROR,
                                provider=self.name,
                            )

                        try:
                            chunks = parse(data)
                        except (KeyError, TypeError, ValueError, AttributeError) as exc:
                            logger.warning("llama.cpp: skipping malformed event: %s", exc)
                            continue

                        for chunk in chunks:
                            yield chunk
                            if chunk.type == ChunkType.DONE:
                                return

                    yield StreamChunk.done(StopReason.END_TURN)
        except httpx.TransportError as exc:
            raise error_from_transport(self.name, exc, label="llama.cpp") from exc

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _request(
        self, messages: list[Message], options: ChatOptions, stream: bool
    ) -> tuple[str, dict]:
        temperature = (
            options.temperature if options.temperature is not None else self._temperature
        )
        max_tokens = options.max_tokens or self._max_tokens
        sampling = {
            "temperature": temperature,
            "top_p": self._top_p,
            "top_k": self._top_k,
            "repeat_penalty": self._repeat_penalty,
            "stop": self._stop,
            "stream": stream,
        }

        if self.use_chat_api:
            wire_messages: list[dict] = []
            if options.system_prompt:
                wire_messages.append({"role": "system", "content": options.system_prompt})
            wire_messages.extend({"role": m.role, "content": m.text} for m in messages)
            body = {"messages": wire_messages, "max_tokens": max_tokens, **sampling}
            if self._model:
                body["model"] = self._model
            return f"{self._endpoint}/v1/chat/completions", body

        body = {
            "prompt": build_prompt(messages, options.system_prompt),
            "n_predict": max_tokens,
            **sampling,
        }
        return f"{self._endpoint}/completion", body

    # ------------------------------------------------------------------
    # Stream parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_chat_event(data: dict) -> list[StreamChunk]:
        choices = data.get("choices") or []
        if not choices:
            return []
        choice = choices[0]
        chunks: list[StreamChunk] = []
        text = (choice.get("delta") or {}).get("content") or ""
        if not isinstance(text, str):
            raise TypeError(f"content is {type(text).__name__}")
        if text:
            chunks.append(StreamChunk.text_delta(text))
        finish_reason = choice.get("finish_reason")
        if finish_reason:
            chunks.append(StreamChunk.done(_chat_stop_reason(finish_reason), _usage(data)))
        return chunks

    @staticmethod
    def _parse_completion_event(data: dict) -> list[StreamChunk]:
        chunks: list[StreamChunk] = []
        text = data.get("content") or ""
        if not isinstance(text, str):
            raise TypeError(f"content is {type(text).__name__}")
        if text:
            chunks.append(StreamChunk.text_delta(text))
        if data.get("stop"):
            chunks.append(StreamChunk.done(_completion_stop_reason(data), _usage(data)))
        return chunks


def _chat_stop_reason(finish_reason: str | None) -> str:
    if finish_reason == "length":
        return StopReason.MAX_TOKENS
    return StopReason.END_TURN


def _completion_stop_reason(data: dict) -> str:
    if data.get("stopped_limit"):
        return StopReason.MAX_TOKENS
    return StopReason.END_TURN


def _usage(data: dict) -> Usage | None:
    usage = data.get("usage")
    if isinstance(usage, dict):
        return Usage(
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )
    if "tokens_evaluated" in data or "tokens_predicted" in data:
        return Usage(
            input_tokens=int(data.get("tokens_evaluated") or 0),
            output_tokens=int(data.get("tokens_predicted") or 0),
        )
    return None


def _error_text(error) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)
