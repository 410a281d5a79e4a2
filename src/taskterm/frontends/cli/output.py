"""Output formatting utilities for CLI commands."""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any, NoReturn

import rich_click as click
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Callable

console = Console()


def print_table(headers: list[str], rows: list[list[str]], title: str | None = None) -> None:
    """Print rows as a rich table."""
    table = Table(title=title, header_style="bold")
    for header in headers:
        table.add_column(header)
    for row in rows:
        padded_row = list(row) + [""] * (len(headers) - len(row))
        table.add_row(*padded_row[: len(headers)])
    console.print(table)


def output_json(data: Any, indent: int = 2) -> None:
    """Output data as formatted JSON."""
    click.echo(json.dumps(data, indent=indent))


def output_json_or_table(
    data: Any,
    json_flag: bool,
    table_fn: Callable[[], None],
) -> None:
    """Output as JSON if flag is set, otherwise call table function."""
    if json_flag:
        output_json(data)
    else:
        table_fn()


def format_state(state: str | None, exit_code: int | None = None) -> str:
    """Colourize a terminal state for tables."""
    if state == "running":
        return "[green]running[/green]"
    if state == "spawning":
        return "[yellow]spawning[/yellow]"
    if state == "exited":
        return f"[red]exited ({exit_code})[/red]" if exit_code is not None else "[red]exited[/red]"
    return state or "?"


def error_exit(message: str, code: int = 1) -> NoReturn:
    """Print error message and exit with code."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def error_print(message: str) -> None:
    """Print error message without exiting."""
    click.echo(f"Error: {message}", err=True)
