"""Coordinate calibration between screenshots and canvas world space."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

from canvasai.host import Bounds, HostState


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up, so 2.5 -> 3."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class CalibrationResult:
    zoom: float
    offset_x: float
    offset_y: float
    visible_bounds: Bounds
    canvas_width: int
    canvas_height: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CoordinateCalibrator:
    """
    Snapshots the host viewport once per turn.

    The snapshot drives both the coordinate-system text in the system prompt
    and the mapping from screenshot pixels back to world coordinates, so the
    two agree for the whole turn even if the host pans meanwhile.
    """

    def __init__(self, host: HostState) -> None:
        self._host = host
        self._last: CalibrationResult | None = None

    def calibrate(self) -> CalibrationResult:
        vp = self._host.get_viewport()
        self._last = CalibrationResult(
            zoom=vp.zoom or 1.0,
            offset_x=vp.offset_x,
            offset_y=vp.offset_y,
            visible_bounds=vp.visible_bounds,
            canvas_width=vp.canvas_width,
            canvas_height=vp.canvas_height,
        )
        return self._last

    @property
    def last(self) -> CalibrationResult | None:
        return self._last

    def _current(self) -> CalibrationResult:
        return self._last or self.calibrate()

    def vision_to_world(self, x: float, y: float) -> tuple[float, float]:
        """Map a screenshot pixel to world coordinates."""
        cal = self._current()
        return (
            cal.visible_bounds.x + x / cal.zoom,
            cal.visible_bounds.y + y / cal.zoom,
        )

    def world_to_vision(self, x: float, y: float) -> tuple[float, float]:
        cal = self._current()
        return (
            (x - cal.visible_bounds.x) * cal.zoom,
            (y - cal.visible_bounds.y) * cal.zoom,
        )

    def calibration_prompt(self) -> str:
        cal = self._current()
        b = cal.visible_bounds
        return "\n".join(
            [
                "COORDINATE SYSTEM:",
                "- The origin (0,0) is marked by a red crosshair on the canvas",
                "- X increases to the right, Y increases downward",
                f"- Current zoom: {round_half_up(cal.zoom * 100)}%",
                f"- Visible area: ({round_half_up(b.x)}, {round_half_up(b.y)}) to "
                f"({round_half_up(b.right)}, {round_half_up(b.bottom)})",
                f"- Screenshot size: {cal.canvas_width}x{cal.canvas_height} pixels; "
                "one screenshot pixel is 1/zoom world units",
                "- Always give tool coordinates in world units",
            ]
        )
