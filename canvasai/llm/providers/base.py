"""Abstract base class for LLM providers, plus shared HTTP error helpers."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import AsyncIterator

import httpx

from canvasai.errors import AIError, BackendError, code_for_status
from canvasai.llm.types import (
    AIResponse,
    ChatOptions,
    Message,
    ProviderCapabilities,
    StreamChunk,
)
from canvasai.types import ErrorCode


class Provider(ABC):
    """
    A provider encapsulates access to a single LLM backend.

    Implementations must support:
      - Validating reachability / credentials (``connect``).
      - One-shot completions (``send``).
      - Streaming completions (``stream``) that are observably equivalent to
        draining ``send`` incrementally.

    Neither ``send`` nor ``stream`` retries internally; the router decides
    whether to fall back to another provider.
    """

    _connected: bool = False
    _timeout: float = 120.0
    _transport: httpx.AsyncBaseTransport | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name (e.g. ``"anthropic"``)."""
        ...

    @property
    @abstractmethod
    def capabilities(self) -> ProviderCapabilities:
        ...

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    async def connect(self) -> None:
        """
        Validate that the backend is reachable and accepts our credentials.

        Raises ``ConnectivityError`` on failure.
        """
        ...

    def disconnect(self) -> None:
        self._connected = False

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        # One client per request: leaving the ``async with`` block closes the
        # connection, which is how an abandoned stream aborts its read.
        return httpx.AsyncClient(
            timeout=timeout or self._timeout, transport=self._transport
        )

    @abstractmethod
    async def send(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AIResponse:
        """Return one complete response or raise ``BackendError``."""
        ...

    @abstractmethod
    async def stream(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a response.

        Yields ``StreamChunk`` objects.  The last chunk is a ``done`` chunk.
        """
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield StreamChunk.done()  # type: ignore[misc]


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def extract_error_message(response: httpx.Response) -> str:
    """Pull the backend's own error message out of a failed response."""
    text = response.text
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return text.strip() or response.reason_phrase

    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if data.get("message"):
            return str(data["message"])
    return text.strip() or response.reason_phrase


def error_from_response(
    provider: str,
    response: httpx.Response,
    error_cls: type[AIError] = BackendError,
    label: str | None = None,
) -> AIError:
    """Build an error from a non-2xx response.  The body must be read."""
    message = extract_error_message(response)
    return error_cls(
        f"{label or provider} API error ({response.status_code}): {message}",
        code=code_for_status(response.status_code, message),
        provider=provider,
        status_code=response.status_code,
    )


def error_from_transport(
    provider: str,
    exc: httpx.TransportError,
    error_cls: type[AIError] = BackendError,
    label: str | None = None,
) -> AIError:
    code = ErrorCode.TIMEOUT if isinstance(exc, httpx.TimeoutException) else ErrorCode.NETWORK_ERROR
    if error_cls is not BackendError and code == ErrorCode.NETWORK_ERROR:
        code = ErrorCode.PROVIDER_OFFLINE
    return error_cls(
        f"Failed to reach {label or provider}: {exc or type(exc).__name__}",
        code=code,
        provider=provider,
    )


def parse_json_body(
    provider: str,
    response: httpx.Response,
    error_cls: type[AIError] = BackendError,
) -> dict:
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError) as exc:
        raise error_cls(
            f"{provider} returned a non-JSON body",
            code=ErrorCode.INVALID_RESPONSE,
            provider=provider,
            status_code=response.status_code,
        ) from exc
    if not isinstance(data, dict):
        raise error_cls(
            f"{provider} returned an unexpected body",
            code=ErrorCode.INVALID_RESPONSE,
            provider=provider,
            status_code=response.status_code,
        )
    return data


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
    """
    Yield the payload of every ``data:`` line of a Server-Sent Events body.

    ``event:``/``id:`` lines, comments and blank event boundaries are
    skipped; every payload these back ends send is self-describing JSON.
    """
    async for line in response.aiter_lines():
        line = line.rstrip("\r")
        if not line.startswith("data:"):
            continue
        payload = line[len("data:"):].strip()
        if payload:
            yield payload
