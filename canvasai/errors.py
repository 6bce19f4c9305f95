"""
Error taxonomy for the assistant core.

* ``ConnectivityError`` -- raised by ``Provider.connect``.
* ``BackendError`` -- raised by ``Provider.send`` / ``Provider.stream``,
  carrying the backend's own status code and message where available.
* Registry and orchestration errors (``ProviderNotFoundError``,
  ``NoActiveProviderError``, ``TurnInProgressError``).

Tool-execution failures are never raised; they are reported per call as a
failed :class:`~canvasai.types.ToolResult`.
"""

from __future__ import annotations

from canvasai.types import ErrorCode

_RETRYABLE = {
    ErrorCode.TIMEOUT,
    ErrorCode.SERVER_ERROR,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.PROVIDER_OFFLINE,
    ErrorCode.STREAM_ERROR,
}

_USER_MESSAGES = {
    ErrorCode.PROVIDER_OFFLINE: "AI service is currently unavailable. Please check your connection and try again.",
    ErrorCode.RATE_LIMITED: "Too many requests. Please wait a moment before trying again.",
    ErrorCode.CONTEXT_TOO_LARGE: "The conversation is too long. Please start a new conversation or reduce the context.",
    ErrorCode.MODEL_NOT_FOUND: "The selected model is not available. Please choose a different model.",
    ErrorCode.STREAM_ERROR: "The response was interrupted. Please try again.",
    ErrorCode.AUTH_FAILED: "Authentication failed. Please check your API key.",
    ErrorCode.TIMEOUT: "The request timed out. Please try again.",
    ErrorCode.INVALID_REQUEST: "The request was rejected by the AI service.",
    ErrorCode.INVALID_RESPONSE: "Received an unexpected response. Please try again.",
    ErrorCode.NETWORK_ERROR: "Network connection error. Please check your connection.",
    ErrorCode.SERVER_ERROR: "The AI service encountered an error. Please try again.",
}


class AIError(Exception):
    """Base class for every error raised by the assistant core."""

    default_code = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.provider = provider
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.code in _RETRYABLE

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES.get(
            self.code, "An unexpected error occurred. Please try again."
        )

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "provider": self.provider,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


class ConnectivityError(AIError):
    """The backend is unreachable or rejected the credentials."""

    default_code = ErrorCode.PROVIDER_OFFLINE


class BackendError(AIError):
    """A request to the backend failed."""

    default_code = ErrorCode.SERVER_ERROR


class ProviderNotFoundError(AIError, LookupError):
    default_code = ErrorCode.PROVIDER_NOT_FOUND


class NoActiveProviderError(AIError):
    default_code = ErrorCode.NO_ACTIVE_PROVIDER


class TurnInProgressError(AIError):
    """A new turn was requested while the previous one had not settled."""

    default_code = ErrorCode.TURN_IN_PROGRESS


def code_for_status(status_code: int, message: str = "") -> str:
    """Map an HTTP status code (and error text) to an :class:`ErrorCode`."""
    if status_code in (401, 403):
        return ErrorCode.AUTH_FAILED
    if status_code == 404:
        return ErrorCode.MODEL_NOT_FOUND
    if status_code == 429:
        return ErrorCode.RATE_LIMITED
    if status_code == 400 or status_code == 413:
        lowered = message.lower()
        if "context" in lowered or "too long" in lowered or "too large" in lowered:
            return ErrorCode.CONTEXT_TOO_LARGE
        return ErrorCode.INVALID_REQUEST
    if status_code >= 500:
        return ErrorCode.SERVER_ERROR
    return ErrorCode.UNKNOWN
