"""A small in-memory canvas used across tests."""

from __future__ import annotations

from canvasai.host import Bounds, SceneNode, Screenshot, StaticHost, Viewport
from canvasai.tools.catalog import ToolCatalog, ToolSpec
from canvasai.types import ToolResult


def make_host(selected: list[str] | None = None) -> StaticHost:
    """
    A page with a header frame holding a logo and a title, plus a loose
    rectangle.  Viewport: 100% zoom over (0, 0)-(1920, 1080).
    """
    nodes = [
        SceneNode("page-root", "Page", "page", children=["frame-header", "rect-card"]),
        SceneNode(
            "frame-header",
            "Header",
            "frame",
            Bounds(0, 0, 1200, 80),
            fill="#ffffff",
            children=["logo-0001", "text-title"],
        ),
        SceneNode("logo-0001", "Logo", "ellipse", Bounds(16, 12, 56, 56), fill="#ff0000"),
        SceneNode("text-title", "Title", "text", Bounds(90, 24, 300, 32)),
        SceneNode("rect-card", "Card", "rectangle", Bounds(100.4, 200.5, 320, 240), fill="#3366ff"),
    ]
    return StaticHost(nodes=nodes, root_id="page-root", selected=selected)


class ScreenshotHost(StaticHost):
    """A ``StaticHost`` that can also capture the canvas."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.captures = 0

    async def capture_screenshot(self) -> Screenshot:
        self.captures += 1
        return Screenshot(data="aGVsbG8=", media_type="image/png", width=1920, height=1080)


def make_catalog() -> ToolCatalog:
    return ToolCatalog(
        [
            ToolSpec(
                "create_rectangle",
                "Create a rectangle",
                {
                    "type": "object",
                    "properties": {
                        "x": {"type": "number"},
                        "y": {"type": "number"},
                        "width": {"type": "number"},
                        "height": {"type": "number"},
                    },
                    "required": ["x", "y", "width", "height"],
                },
            ),
            ToolSpec(
                "look_at",
                "Point the assistant cursor at a location",
                {
                    "type": "object",
                    "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
                    "required": ["x", "y"],
                },
            ),
            ToolSpec(
                "boolean_union",
                "Union the selected shapes",
                {"type": "object", "properties": {}},
                tier="advanced",
            ),
        ]
    )


class RecordingExecutor:
    """Records every call; answers success unless the name is in ``fail``."""

    def __init__(self, fail: set[str] | None = None) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.fail = fail or set()

    def __call__(self, name: str, arguments: dict) -> ToolResult:
        self.calls.append((name, arguments))
        if name in self.fail:
            return ToolResult(success=False, error=f"{name} failed")
        return ToolResult(success=True, message=f"{name} done")
