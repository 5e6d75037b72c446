"""Rich formatting helpers for the clai CLI.

Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from clai.models.config import mask_api_key

if TYPE_CHECKING:
    from clai.models.config import ClaiConfig
    from clai.protocols import ToolCall
    from clai.storage.history import ConversationSummary
    from clai.toolkit.registry import ToolRegistry

TOOL_OUTPUT_PREVIEW_LINES = 3


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_error(message: str, console: Console) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def truncate_output(output: str, max_lines: int = TOOL_OUTPUT_PREVIEW_LINES) -> str:
    """Quote the first few lines of tool output for display."""
    lines = output.splitlines() or [""]
    shown = [f"> {line}" for line in lines[:max_lines]]
    if len(lines) > max_lines:
        shown.append(f"> [...] ({len(lines) - max_lines} more lines)")
    return "\n".join(shown)


def format_tool_request(tool_call: ToolCall, console: Console) -> None:
    """Show a pending tool call before asking for permission."""
    content = (
        f"[bold]Tool:[/bold] {escape(tool_call.name)}\n"
        f"[bold]Arguments:[/bold] {escape(json.dumps(tool_call.arguments, indent=2))}"
    )
    console.print(Panel(content, title="Permission required", border_style="yellow"))


def format_config(config: ClaiConfig, console: Console) -> None:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in config.model_dump().items():
        if key == "api_key":
            value = mask_api_key(value)
        elif key == "system_prompt":
            value = value.splitlines()[0] + " ..." if value else ""
        elif isinstance(value, list):
            value = ", ".join(value)
        table.add_row(key, escape(str(value)))
    console.print(table)


def format_tools(registry: ToolRegistry, allowed: frozenset[str], console: Console) -> None:
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Tool", style="cyan")
    table.add_column("Asks", justify="center")
    table.add_column("Description")
    for tool in registry:
        table.add_row(
            tool.name,
            "[dim]no[/dim]" if tool.name in allowed else "[yellow]yes[/yellow]",
            escape(tool.description),
        )
    console.print(table)


def format_sessions(sessions: list[ConversationSummary], console: Console) -> None:
    if not sessions:
        console.print("[dim]No saved sessions.[/dim]")
        return
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Session", style="yellow")
    table.add_column("Updated", style="dim")
    table.add_column("Messages", justify="right", style="green")
    table.add_column("First prompt")
    for summary in sessions:
        table.add_row(
            summary.session_id,
            summary.updated_at.strftime("%Y-%m-%d %H:%M"),
            str(summary.message_count),
            escape(summary.preview),
        )
    console.print(table)
