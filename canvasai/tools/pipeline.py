"""
Sequential tool execution.

Tool calls run one at a time, in the order the model produced them: their
effects on the document are order-sensitive and the host executor is not
assumed to be reentrant.  A failing call never stops the queue; every call
gets its own :class:`~canvasai.types.ToolResult`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Callable

from canvasai.host import ToolExecutor
from canvasai.llm.types import ToolCall
from canvasai.session.channel import EventChannel
from canvasai.session.events import (
    cursor_move_event,
    tool_complete_event,
    tool_start_event,
)
from canvasai.tools.catalog import ToolCatalog
from canvasai.tools.validation import ToolValidator
from canvasai.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)


def normalize_result(value: object) -> ToolResult:
    """Accept a ``ToolResult`` or a ``{success, message, error}`` dict."""
    if isinstance(value, ToolResult):
        return value
    if isinstance(value, dict):
        return ToolResult(
            success=bool(value.get("success")),
            message=str(value.get("message") or ""),
            error=value.get("error"),
            error_code=value.get("error_code"),
            data=value.get("data"),
        )
    raise TypeError(f"Tool executor returned {type(value).__name__}, expected ToolResult or dict")


def _coordinate(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class ToolPipeline:
    """
    Runs finished tool calls through the host executor.

    Parameters
    ----------
    executor:
        ``(name, arguments) -> ToolResult | dict``, sync or async.
    channel:
        Where tool start/complete and cursor events are published.
    catalog:
        When given, unknown tool names and arguments that fail the tool's
        JSON schema are rejected before the executor is called.
    cursor_tool:
        Tool whose successful calls also move the assistant cursor to the
        call's ``x``/``y`` arguments.
    tool_timeout:
        Max seconds for a single async execution; ``None`` disables it.
    on_cursor_move:
        Called with ``(x, y)`` after a cursor move is published.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        channel: EventChannel | None = None,
        catalog: ToolCatalog | None = None,
        cursor_tool: str | None = "look_at",
        tool_timeout: float | None = 30.0,
        on_cursor_move: Callable[[float, float], None] | None = None,
    ) -> None:
        self.executor = executor
        self.channel = channel
        self.catalog = catalog
        self.cursor_tool = cursor_tool
        self.tool_timeout = tool_timeout
        self.on_cursor_move = on_cursor_move

    async def execute(self, calls: list[ToolCall], turn_id: str = "") -> list[ToolResult]:
        results: list[ToolResult] = []
        for call in calls:
            results.append(await self.execute_one(call, turn_id))
        return results

    async def execute_one(self, call: ToolCall, turn_id: str = "") -> ToolResult:
        self._publish(tool_start_event(turn_id, call))
        result = await self._run(call)
        if not result.success:
            logger.warning(
                "Tool %s failed (%s): %s", call.name, result.error_code, result.error
            )

        if result.success and call.name == self.cursor_tool:
            x = _coordinate(call.arguments.get("x"))
            y = _coordinate(call.arguments.get("y"))
            if x is not None and y is not None:
                if self.on_cursor_move is not None:
                    self.on_cursor_move(x, y)
                self._publish(cursor_move_event(turn_id, x, y))

        self._publish(tool_complete_event(turn_id, call, result))
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, call: ToolCall) -> ToolResult:
        if self.catalog is not None:
            tool = self.catalog.get(call.name)
            if tool is None:
                return ToolResult(
                    success=False,
                    error=f"Unknown tool: {call.name}",
                    error_code=ErrorCode.UNKNOWN_TOOL,
                )
            valid, error_msg = ToolValidator.validate(tool, call.arguments)
            if not valid:
                return ToolResult(
                    success=False,
                    error=f"Validation error: {error_msg}",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )

        try:
            outcome = self.executor(call.name, call.arguments)
            if inspect.isawaitable(outcome):
                if self.tool_timeout is not None:
                    outcome = await asyncio.wait_for(outcome, timeout=self.tool_timeout)
                else:
                    outcome = await outcome
            return normalize_result(outcome)
        except asyncio.TimeoutError:
            return ToolResult(
                success=False,
                error=f"Timeout after {self.tool_timeout}s",
                error_code=ErrorCode.TIMEOUT,
            )
        except Exception as e:
            return ToolResult(
                success=False,
                error=str(e) or type(e).__name__,
                error_code=ErrorCode.TOOL_EXCEPTION,
            )

    def _publish(self, event) -> None:
        if self.channel is not None:
            self.channel.publish(event)
