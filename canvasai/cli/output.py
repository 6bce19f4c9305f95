"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from canvasai.llm.types import AIResponse, ToolCall
from canvasai.session.events import AIEvent, EventType
from canvasai.tools.catalog import ToolSpec
from canvasai.types import ToolResult

TIER_COLORS = {
    "basic": "green",
    "advanced": "yellow",
    "professional": "magenta",
}


class OutputFormatter:
    """Rich-based output formatting for the canvasai CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_provider_list(self, rows: list[dict]) -> None:
        if not rows:
            self.console.print("[dim]No providers enabled.[/dim]")
            return

        table = Table(title="Providers")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Active", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("Vision", no_wrap=True)
        table.add_column("Tools", no_wrap=True)
        table.add_column("Context", justify="right")

        for row in rows:
            caps = row["capabilities"]
            status = (
                Text("connected", style="green")
                if row["connected"]
                else Text(row.get("error") or "offline", style="red")
            )
            table.add_row(
                row["name"],
                "*" if row["active"] else "",
                status,
                "yes" if caps.vision else "no",
                "yes" if caps.function_calling else "no",
                f"{caps.max_context_tokens:,}",
            )

        self.console.print(table)

    def format_tool_list(self, tools: list[ToolSpec]) -> None:
        if not tools:
            self.console.print("[dim]No tools.[/dim]")
            return

        table = Table(title="Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Tier", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            color = TIER_COLORS.get(t.tier, "white")
            table.add_row(t.name, Text(t.tier, style=color), t.description)

        self.console.print(table)

    def format_tool_info(self, tool: ToolSpec) -> None:
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n"
            f"[dim]Tier:[/dim] {tool.tier}\n\n"
            f"{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(tool.parameters, indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_tool_result(self, call: ToolCall, result: ToolResult) -> None:
        args = json.dumps(call.arguments, default=str)[:80]
        if result.success:
            self.console.print(f"  [{call.name}({args})] [green]OK[/green]: {result.message[:200]}")
        else:
            self.console.print(
                f"  [{call.name}({args})] [red]FAILED[/red] "
                f"({result.error_code or 'error'}): {(result.error or '')[:200]}"
            )

    def format_event(self, event: AIEvent) -> None:
        """Print the events worth showing after a turn; others are skipped."""
        if event.type == EventType.TOOL_COMPLETE:
            self.format_tool_result(event.payload["call"], event.payload["result"])
        elif event.type == EventType.CURSOR_MOVE:
            self.console.print(
                f"  [dim]cursor -> ({event.payload['x']:g}, {event.payload['y']:g})[/dim]"
            )

    def format_response(self, response: AIResponse) -> None:
        self.console.print(response.content)
        usage = response.usage
        self.console.print(
            f"[dim]{response.provider or '?'} | {response.stop_reason} | "
            f"{usage.input_tokens} in / {usage.output_tokens} out[/dim]"
        )

    def format_error(self, error: Any) -> None:
        user_message = getattr(error, "user_message", None)
        if user_message:
            self.console.print(f"[red]{user_message}[/red]")
            self.console.print(f"[dim]{error}[/dim]")
        else:
            self.console.print(f"[red]Error:[/red] {error}")

    def format_config(self, config: dict) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))
