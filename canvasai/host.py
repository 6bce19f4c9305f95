"""
Host-facing protocols and value types.

The core never owns the canvas.  Everything it knows about the document comes
through these read-only accessors, polled synchronously while a turn's
context is built; everything it does goes through a single tool executor.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, Union, runtime_checkable

from canvasai.types import ToolResult


@dataclass(frozen=True)
class Bounds:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class Viewport:
    zoom: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    visible_bounds: Bounds = field(default_factory=Bounds)
    canvas_width: int = 0
    canvas_height: int = 0


@dataclass
class SceneNode:
    id: str
    name: str
    type: str
    bounds: Bounds = field(default_factory=Bounds)
    fill: str | None = None
    children: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Screenshot:
    """A captured canvas image, base64-encoded without a ``data:`` prefix."""

    data: str
    media_type: str = "image/png"
    width: int = 0
    height: int = 0


@runtime_checkable
class HostState(Protocol):
    def get_viewport(self) -> Viewport: ...

    def get_selected_ids(self) -> list[str]: ...

    def get_node(self, node_id: str) -> SceneNode | None: ...

    def get_child_ids(self, node_id: str) -> list[str]: ...

    def get_root_id(self) -> str | None: ...

    def get_active_tool(self) -> str: ...


@runtime_checkable
class ScreenshotSource(Protocol):
    """Optional host capability: capture the visible canvas."""

    def capture_screenshot(self) -> Screenshot | None | Awaitable[Screenshot | None]: ...


# A tool executor takes (name, arguments) and returns a ToolResult, or a dict
# with ``success``/``message``/``error`` keys, either directly or awaitable.
ToolOutcome = Union[ToolResult, dict]
ToolExecutor = Callable[[str, dict], Union[ToolOutcome, Awaitable[ToolOutcome]]]


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class CredentialStore(Protocol):
    def get(self, provider: str) -> str | None: ...


class EnvCredentialStore:
    """Reads API keys from environment variables, one variable per provider."""

    DEFAULTS = {"anthropic": "ANTHROPIC_API_KEY", "llamacpp": "LLAMACPP_API_KEY"}

    def __init__(self, env_vars: dict[str, str] | None = None) -> None:
        self._env_vars = {**self.DEFAULTS, **(env_vars or {})}

    def get(self, provider: str) -> str | None:
        var = self._env_vars.get(provider)
        if not var:
            return None
        return os.environ.get(var) or None


class StaticCredentialStore:
    def __init__(self, keys: dict[str, str] | None = None) -> None:
        self._keys = dict(keys or {})

    def get(self, provider: str) -> str | None:
        return self._keys.get(provider)

    def set(self, provider: str, key: str) -> None:
        self._keys[provider] = key


# ---------------------------------------------------------------------------
# In-memory host
# ---------------------------------------------------------------------------

class StaticHost:
    """
    A host backed by plain data: a node table, a selection and a viewport.

    Used by the CLI (an empty canvas) and handy for embedding the core in
    scripts.  ``execute`` answers every tool call with a failure unless a
    handler was registered for the name.
    """

    def __init__(
        self,
        nodes: list[SceneNode] | None = None,
        root_id: str | None = None,
        viewport: Viewport | None = None,
        selected: list[str] | None = None,
        active_tool: str = "select",
    ) -> None:
        self.nodes: dict[str, SceneNode] = {n.id: n for n in nodes or []}
        self.root_id = root_id
        self.viewport = viewport or Viewport(
            zoom=1.0,
            visible_bounds=Bounds(0, 0, 1920, 1080),
            canvas_width=1920,
            canvas_height=1080,
        )
        self.selected = list(selected or [])
        self.active_tool = active_tool
        self.handlers: dict[str, Callable[[dict], Any]] = {}

    def get_viewport(self) -> Viewport:
        return self.viewport

    def get_selected_ids(self) -> list[str]:
        return list(self.selected)

    def get_node(self, node_id: str) -> SceneNode | None:
        return self.nodes.get(node_id)

    def get_child_ids(self, node_id: str) -> list[str]:
        node = self.nodes.get(node_id)
        return list(node.children) if node else []

    def get_root_id(self) -> str | None:
        return self.root_id

    def get_active_tool(self) -> str:
        return self.active_tool

    def execute(self, name: str, arguments: dict) -> ToolResult:
        handler = self.handlers.get(name)
        if handler is None:
            return ToolResult(success=False, error=f"No handler for tool: {name}")
        return handler(arguments)
