"""Console output helpers built on rich."""

import json
from typing import Any, Iterable, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

_console: Optional[Console] = None
_err_console: Optional[Console] = None


def _get_console() -> Console:
    global _console
    if _console is None:
        _console = Console(highlight=False)
    return _console


def _get_err_console() -> Console:
    global _err_console
    if _err_console is None:
        _err_console = Console(stderr=True, highlight=False)
    return _err_console


def _rich_echo(message: str, style: Optional[str] = None) -> None:
    """Print a plain message, optionally styled."""
    _get_console().print(message, style=style, soft_wrap=True)


def _rich_success(message: str) -> None:
    _get_console().print(f"✅ {message}", style="green", soft_wrap=True)


def _rich_info(message: str) -> None:
    _get_console().print(message, style="cyan", soft_wrap=True)


def _rich_warning(message: str) -> None:
    _get_console().print(f"⚠️  {message}", style="yellow", soft_wrap=True)


def _rich_error(message: str) -> None:
    _get_err_console().print(f"❌ {message}", style="red", soft_wrap=True)


def _rich_panel(message: str, title: Optional[str] = None, style: str = "cyan") -> None:
    _get_console().print(Panel(message, title=title, border_style=style))


def print_table(title: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    """Render rows as a rich table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*[str(value) for value in row])
    _get_console().print(table)


def print_json(data: Any) -> None:
    """Print data as indented JSON, without rich markup processing."""
    _get_console().print_json(json.dumps(data))


def print_title(title: str) -> None:
    _get_console().rule(f"[bold]{title}[/bold]")
