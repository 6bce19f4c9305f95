"""
Main CLI application for canvasai.

Usage:
    canvasai chat MESSAGE [--provider NAME] [--stream/--no-stream] [--tools FILE]
    canvasai providers [--connect]
    canvasai tools list FILE [--tier TIER]
    canvasai config show|validate
    canvasai version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from canvasai import __version__
from canvasai.config import CanvasAIConfig, load_config, validate_config
from canvasai.errors import AIError

app = typer.Typer(name="canvasai", help="canvasai - design assistant core")
tools_app = typer.Typer(help="Tool catalog inspection")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path(explicit: Path | None = None) -> Path | None:
    """Find config file in standard locations."""
    if explicit is not None:
        return explicit
    candidates = [
        Path.cwd() / "canvasai.yaml",
        Path.cwd() / "canvasai.yml",
        Path.home() / ".config" / "canvasai" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _load(config: Path | None, profile: str | None = None) -> CanvasAIConfig:
    cfg = load_config(_get_config_path(config), profile=profile)
    _setup_logging(cfg.logging.level)
    return cfg


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_catalog(path: Path | None):
    from canvasai.tools.catalog import ToolCatalog

    if path is None:
        return ToolCatalog()
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("tools", [])
    return ToolCatalog.from_dicts(data)


async def _run_chat(
    cfg: CanvasAIConfig,
    message: str,
    provider: str | None,
    stream: bool,
    tools_file: Path | None,
    scene: bool | None,
) -> int:
    from canvasai.cli.output import OutputFormatter
    from canvasai.host import StaticHost
    from canvasai.llm.types import ChunkType
    from canvasai.orchestrator.core import Orchestrator

    formatter = OutputFormatter(console)
    host = StaticHost()
    orchestrator = await Orchestrator.from_config(
        cfg, host, host.execute, catalog=_load_catalog(tools_file)
    )
    try:
        if provider:
            orchestrator.set_provider(provider)

        if stream:
            async for chunk in orchestrator.stream_chat(message, include_scene_graph=scene):
                if chunk.type == ChunkType.TEXT:
                    console.print(chunk.text, end="", soft_wrap=True)
            console.print()
        else:
            response = await orchestrator.chat(message, include_scene_graph=scene)
            formatter.format_response(response)

        for event in orchestrator.channel.drain():
            formatter.format_event(event)
        return 0
    except AIError as exc:
        formatter.format_error(exc)
        return 1
    finally:
        orchestrator.dispose()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    provider: Optional[str] = typer.Option(None, help="Provider name (anthropic, ollama, llamacpp)"),
    stream: bool = typer.Option(True, "--stream/--no-stream", help="Stream the response"),
    tools: Optional[Path] = typer.Option(None, "--tools", help="YAML/JSON tool catalog"),
    scene: Optional[bool] = typer.Option(None, "--scene/--no-scene", help="Include the scene outline"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Run one turn against an empty canvas."""
    cfg = _load(config, profile)
    code = asyncio.run(_run_chat(cfg, message, provider, stream, tools, scene))
    raise typer.Exit(code)


@app.command()
def providers(
    connect: bool = typer.Option(True, "--connect/--no-connect", help="Probe each provider"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """List configured providers and whether they are reachable."""
    from canvasai.cli.output import OutputFormatter
    from canvasai.llm.providers import build_providers

    cfg = _load(config)

    async def _run() -> list[dict]:
        rows = []
        for p in build_providers(cfg):
            error = None
            if connect:
                try:
                    await p.connect()
                except AIError as exc:
                    error = exc.code
            rows.append(
                {
                    "name": p.name,
                    "active": p.name == cfg.registry.default_provider,
                    "connected": p.is_connected,
                    "error": error,
                    "capabilities": p.capabilities,
                }
            )
        return rows

    OutputFormatter(console).format_provider_list(asyncio.run(_run()))


@tools_app.command("list")
def tools_list(
    path: Path = typer.Argument(..., help="YAML/JSON tool catalog"),
    tier: Optional[str] = typer.Option(None, help="Capability tier filter"),
):
    """List the tools of a catalog file."""
    from canvasai.cli.output import OutputFormatter

    try:
        catalog = _load_catalog(path)
        tools = catalog.list(tier)
    except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
        console.print(f"[red]Could not load catalog:[/red] {e}")
        raise typer.Exit(1)
    OutputFormatter(console).format_tool_list(tools)


@tools_app.command("info")
def tools_info(
    path: Path = typer.Argument(..., help="YAML/JSON tool catalog"),
    tool_name: str = typer.Argument(..., help="Tool name"),
):
    """Show tool details and schema."""
    from canvasai.cli.output import OutputFormatter

    tool = _load_catalog(path).get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)
    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """Show effective config."""
    from canvasai.cli.output import OutputFormatter

    cfg = _load(config)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """Validate config and summarize it."""
    config_path = _get_config_path(config)
    try:
        cfg = load_config(config_path)
    except (OSError, ValueError, TypeError, AttributeError, yaml.YAMLError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    errors, warnings = validate_config(cfg)
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if errors:
        console.print("[red]Config validation failed:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Default provider: {cfg.registry.default_provider}")
    console.print(f"  Fallback chain: {', '.join(cfg.registry.fallback_chain) or '(none)'}")
    console.print(
        f"  Context budget: {cfg.context.max_tokens} "
        f"(reserve {cfg.context.reserve_for_response})"
    )


@app.command()
def version():
    """Show version."""
    console.print(f"canvasai v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
