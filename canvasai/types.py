from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass
class ToolResult:
    success: bool
    message: str = ""
    error: str | None = None
    error_code: str | None = None
    data: dict | list | None = None
    metadata: dict = field(default_factory=dict)


class ErrorCode:
    # tool execution
    VALIDATION_ERROR = "validation_error"
    TOOL_EXCEPTION = "tool_exception"
    UNKNOWN_TOOL = "unknown_tool"
    # provider / transport
    PROVIDER_OFFLINE = "provider_offline"
    AUTH_FAILED = "auth_failed"
    RATE_LIMITED = "rate_limited"
    MODEL_NOT_FOUND = "model_not_found"
    CONTEXT_TOO_LARGE = "context_too_large"
    INVALID_REQUEST = "invalid_request"
    INVALID_RESPONSE = "invalid_response"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    STREAM_ERROR = "stream_error"
    # registry / orchestration
    PROVIDER_NOT_FOUND = "provider_not_found"
    NO_ACTIVE_PROVIDER = "no_active_provider"
    TURN_IN_PROGRESS = "turn_in_progress"
    UNKNOWN = "unknown"


class AIStatus(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    EXECUTING = "executing"
    ERROR = "error"
