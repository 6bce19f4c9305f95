"""Host tool catalog, argument validation and sequential execution."""

from canvasai.tools.catalog import TOOL_TIERS, ToolCatalog, ToolSpec
from canvasai.tools.pipeline import ToolPipeline, normalize_result
from canvasai.tools.validation import ToolValidator

__all__ = [
    "TOOL_TIERS",
    "ToolCatalog",
    "ToolPipeline",
    "ToolSpec",
    "ToolValidator",
    "normalize_result",
]
