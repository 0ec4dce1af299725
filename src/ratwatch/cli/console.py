"""Shared console utilities for CLI commands."""

from datetime import UTC, datetime

from rich.console import Console
from rich.table import Table

# Shared console instance for all CLI commands
console = Console()


def error(msg: str) -> None:
    """Print an error message in red."""
    console.print(f"[red]{msg}[/red]")


def warning(msg: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[yellow]{msg}[/yellow]")


def success(msg: str) -> None:
    """Print a success message in green."""
    console.print(f"[green]{msg}[/green]")


def dim(msg: str) -> None:
    """Print a dimmed message."""
    console.print(f"[dim]{msg}[/dim]")


def create_table(
    title: str,
    columns: list[tuple[str, str | dict]],
) -> Table:
    """Create a styled table with consistent formatting.

    Args:
        title: Table title.
        columns: List of (name, style) or (name, kwargs_dict) tuples.
    """
    table = Table(title=title)
    for name, style_or_kwargs in columns:
        if isinstance(style_or_kwargs, dict):
            table.add_column(name, **style_or_kwargs)
        else:
            table.add_column(name, style=style_or_kwargs)
    return table


def format_countdown(target: datetime, now: datetime | None = None) -> str:
    """Format how far away a time is, e.g. "in 2h 5m" or "3d ago"."""
    now = now or datetime.now(UTC)
    total_seconds = int((target - now).total_seconds())
    suffix_past = total_seconds < 0
    total_seconds = abs(total_seconds)

    if total_seconds < 60:
        text = f"{total_seconds}s"
    elif total_seconds < 3600:
        text = f"{total_seconds // 60}m"
    elif total_seconds < 86400:
        hours, minutes = divmod(total_seconds // 60, 60)
        text = f"{hours}h {minutes}m" if minutes else f"{hours}h"
    else:
        days, hours = divmod(total_seconds // 3600, 24)
        text = f"{days}d {hours}h" if hours else f"{days}d"

    return f"{text} ago" if suffix_past else f"in {text}"
