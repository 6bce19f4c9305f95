"""canvasai -- multi-provider LLM assistant core for a vector design editor."""

__version__ = "0.1.0"

from canvasai.config import CanvasAIConfig, load_config, validate_config
from canvasai.errors import (
    AIError,
    BackendError,
    ConnectivityError,
    NoActiveProviderError,
    ProviderNotFoundError,
    TurnInProgressError,
)
from canvasai.host import (
    Bounds,
    EnvCredentialStore,
    HostState,
    SceneNode,
    Screenshot,
    StaticCredentialStore,
    StaticHost,
    Viewport,
)
from canvasai.llm.router import ProviderRouter
from canvasai.llm.types import AIResponse, Message, StreamChunk, ToolCall
from canvasai.orchestrator.core import Orchestrator
from canvasai.session.channel import EventChannel
from canvasai.session.events import AIEvent, EventType
from canvasai.tools.catalog import ToolCatalog, ToolSpec
from canvasai.types import AIStatus, ErrorCode, ToolResult

__all__ = [
    "AIError",
    "AIEvent",
    "AIResponse",
    "AIStatus",
    "BackendError",
    "Bounds",
    "CanvasAIConfig",
    "ConnectivityError",
    "EnvCredentialStore",
    "ErrorCode",
    "EventChannel",
    "EventType",
    "HostState",
    "Message",
    "NoActiveProviderError",
    "Orchestrator",
    "ProviderNotFoundError",
    "ProviderRouter",
    "SceneNode",
    "Screenshot",
    "StaticCredentialStore",
    "StaticHost",
    "StreamChunk",
    "ToolCall",
    "ToolCatalog",
    "ToolResult",
    "ToolSpec",
    "TurnInProgressError",
    "Viewport",
    "__version__",
    "load_config",
    "validate_config",
]
