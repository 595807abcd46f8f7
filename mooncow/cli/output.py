"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from mooncow.tools.base import Tool, is_error_result


class OutputFormatter:
    """Rich-based output formatting for the mooncow CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_tool_list(self, tools: list[Tool]) -> None:
        if not tools:
            self.console.print("[dim]No tools registered.[/dim]")
            return
        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Parameters", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            params = ", ".join(sorted((t.parameters or {}).get("properties", {})))
            table.add_row(t.name, params or "-", t.description)

        self.console.print(table)

    def format_tool_info(self, tool: Tool) -> None:
        self.console.print(Panel(f"[bold]{tool.name}[/bold]\n\n{tool.description}", title=f"Tool: {tool.name}"))
        schema_json = json.dumps(tool.parameters, indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_tool_call(self, name: str, arguments: dict) -> None:
        args = json.dumps(arguments, ensure_ascii=False, default=str)
        if len(args) > 200:
            args = args[:200] + "..."
        self.console.print(f"\n[yellow]> tool[/yellow] [bold]{name}[/bold] [dim]{escape(args)}[/dim]")

    def format_tool_result(self, name: str, result: Any, blob: str) -> None:
        if is_error_result(result):
            error = escape(result["error"][:200])
            self.console.print(f"  {escape(f'[{name}]')} [red]FAILED[/red]: {error}")
        else:
            self.console.print(f"  {escape(f'[{name}]')} [green]OK[/green] [dim]({len(blob)} chars to model)[/dim]")

    def format_error(self, message: str, code: str = "") -> None:
        label = f" ({code})" if code else ""
        self.console.print(f"\n[red]Error{label}:[/red] {escape(message)}")

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))
