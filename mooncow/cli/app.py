"""
Main CLI application for mooncow.

Usage:
    mooncow chat [--show-thoughts]
    mooncow ask PROMPT [--no-stream] [--show-thoughts]
    mooncow tools list|info
    mooncow config show|validate
    mooncow version
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from mooncow import __version__
from mooncow.config import MooncowConfig, load_config
from mooncow.types import ConfigError, MooncowError

app = typer.Typer(name="mooncow", help="Mooncow - streaming research chat with tools")
tools_app = typer.Typer(help="Tool management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()

_state: dict = {"config_path": None, "overrides": {}}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    if _state["config_path"]:
        return Path(_state["config_path"])
    candidates = [
        Path.cwd() / "mooncow.yaml",
        Path.cwd() / "mooncow.yml",
        Path.home() / ".config" / "mooncow" / "config.yaml",
        Path.home() / ".mooncow" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _load() -> MooncowConfig:
    try:
        return load_config(_get_config_path(), cli_overrides=_state["overrides"])
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def _build_registry(cfg: MooncowConfig):
    from mooncow.tools.http import HttpFetcher, ResponseCache
    from mooncow.tools.reader import JinaPageSummariesTool, JinaReaderTool
    from mooncow.tools.registry import ToolRegistry
    from mooncow.tools.search import MultiSourceSearchTool

    fetcher = HttpFetcher(ResponseCache(), timeout=cfg.tools.request_timeout_seconds)
    registry = ToolRegistry()
    registry.register(MultiSourceSearchTool(fetcher))
    jina_key = os.environ.get(cfg.tools.jina_api_key_env, "")
    registry.register(JinaReaderTool(fetcher, api_key=jina_key))
    registry.register(JinaPageSummariesTool(fetcher, api_key=jina_key))
    for name in cfg.tools.disabled:
        registry.unregister(name)
    return registry


def _build_orchestrator(cfg: MooncowConfig):
    """Wire up the full stack."""
    from mooncow.context.budget import ContextBudget
    from mooncow.llm.model_resolver import HttpModelResolver
    from mooncow.llm.providers.openai_compat import OpenAICompatProvider
    from mooncow.llm.text_tool_parser import TextToolCallExtractor
    from mooncow.orchestrator.core import Orchestrator

    api_key = cfg.api_key()
    resolver = HttpModelResolver(cfg.llm.api_base, api_key=api_key)
    provider = OpenAICompatProvider(
        url=cfg.llm.api_base,
        api_key=api_key,
        timeout=float(cfg.llm.timeout_seconds),
        max_retries=cfg.llm.max_retries,
        model_resolver=resolver,
    )
    return Orchestrator(
        provider,
        _build_registry(cfg),
        model=cfg.llm.model,
        temperature=cfg.llm.temperature,
        budget=ContextBudget(
            cfg.budget.max_total_chars,
            cfg.budget.max_message_chars,
            cfg.budget.max_tool_chars,
            cfg.budget.max_blob_chars,
        ),
        model_resolver=resolver,
        extractor=TextToolCallExtractor(cfg.orchestrator.default_search_tool),
        max_tool_loops=cfg.orchestrator.max_tool_loops,
        tool_timeout=cfg.orchestrator.tool_timeout_seconds,
        tools_enabled=cfg.orchestrator.tools_enabled,
        think_open=cfg.orchestrator.think_open,
        think_close=cfg.orchestrator.think_close,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.callback()
def main_options(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id, or 'auto'"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Global options."""
    _state["config_path"] = config
    _state["overrides"] = {}
    if model:
        _state["overrides"]["llm.model"] = model
    cfg = _load()
    _setup_logging("DEBUG" if verbose else cfg.logging.level)


@app.command()
def chat(
    show_thoughts: bool = typer.Option(False, "--show-thoughts", help="Print model reasoning"),
):
    """Start an interactive chat session."""
    from mooncow.cli.chat import ChatHandler

    cfg = _load()
    try:
        orchestrator = _build_orchestrator(cfg)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    handler = ChatHandler(orchestrator, console=console, show_thoughts=show_thoughts)
    asyncio.run(handler.run_loop())


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="The question to ask"),
    no_stream: bool = typer.Option(False, "--no-stream", help="Wait for the whole answer"),
    show_thoughts: bool = typer.Option(False, "--show-thoughts", help="Print model reasoning"),
):
    """Ask a single question and print the answer."""
    from mooncow.cli.chat import ChatHandler
    from mooncow.llm.types import Message

    cfg = _load()
    try:
        orchestrator = _build_orchestrator(cfg)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if no_stream or not cfg.llm.stream:
        try:
            answer = asyncio.run(orchestrator.complete([Message(role="user", content=prompt)]))
        except MooncowError as e:
            console.print(f"[red]Error ({e.code}):[/red] {escape(str(e))}")
            raise typer.Exit(1)
        console.print(answer, markup=False, highlight=False)
        return

    handler = ChatHandler(orchestrator, console=console, show_thoughts=show_thoughts)
    if asyncio.run(handler.ask(prompt)) is None:
        raise typer.Exit(1)


@tools_app.command("list")
def tools_list():
    """List registered tools."""
    from mooncow.cli.output import OutputFormatter

    registry = _build_registry(_load())
    OutputFormatter(console).format_tool_list(registry.list())


@tools_app.command("info")
def tools_info(tool_name: str = typer.Argument(..., help="Tool name")):
    """Show tool details and schema."""
    from mooncow.cli.output import OutputFormatter

    registry = _build_registry(_load())
    tool = registry.get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)
    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show():
    """Show effective config."""
    from mooncow.cli.output import OutputFormatter

    OutputFormatter(console).format_config(_load().to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and report problems."""
    config_path = _get_config_path()
    cfg = _load()
    problems = cfg.validate()
    try:
        cfg.api_key()
    except ConfigError as e:
        problems.append(str(e))
    if problems:
        console.print("[red]Config validation failed:[/red]")
        for p in problems:
            console.print(f"  - {p}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Endpoint: {cfg.llm.api_base} ({cfg.llm.model})")
    console.print(f"  Tools enabled: {cfg.orchestrator.tools_enabled}")


@app.command()
def version():
    """Show version."""
    console.print(f"mooncow v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
