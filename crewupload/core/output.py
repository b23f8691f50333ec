"""Output formatting for crewupload.

Rich tables and status lines for the CLI, plus the human-readable size,
speed, and duration formats used in progress displays.
"""

from __future__ import annotations

import json
import math
from collections.abc import Sequence
from enum import Enum
from typing import Any

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

# =============================================================================
# Console Instances
# =============================================================================

console = Console()
err_console = Console(stderr=True)

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
SPEED_UNITS = ("B/s", "KB/s", "MB/s", "GB/s")


class OutputFormat(Enum):
    """Output format options."""

    JSON = "json"
    TABLE = "table"

    @classmethod
    def from_string(cls, value: str) -> OutputFormat:
        return cls(value.lower())


# =============================================================================
# Human-readable Units
# =============================================================================


def _scale(value: float, units: Sequence[str]) -> tuple[float, int]:
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return value, index


def format_file_size(num_bytes: float) -> str:
    """Format a byte count, e.g. ``1.5 GB``. Bytes are shown without decimals."""
    if num_bytes <= 0:
        return "0 B"
    value, index = _scale(num_bytes, SIZE_UNITS)
    if index == 0:
        return f"{value:.0f} {SIZE_UNITS[0]}"
    return f"{value:.1f} {SIZE_UNITS[index]}"


def format_speed(bytes_per_second: float) -> str:
    """Format a transfer rate, e.g. ``12.3 MB/s``."""
    if bytes_per_second <= 0:
        return "0 B/s"
    value, index = _scale(bytes_per_second, SPEED_UNITS)
    return f"{value:.1f} {SPEED_UNITS[index]}"


def _plural(count: int, unit: str) -> str:
    return f"{count}{unit}{'s' if count > 1 else ''}"


def format_time(seconds: float | None) -> str:
    """Format a duration as ``2hrs 5mins``.

    Seconds are only shown for durations under five minutes. Unknown or
    infinite durations render as ``--``.
    """
    if not seconds or math.isinf(seconds) or math.isnan(seconds):
        return "--"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    parts = []
    if hours > 0:
        parts.append(_plural(hours, "hr"))
    if minutes > 0:
        parts.append(_plural(minutes, "min"))
    if hours == 0 and minutes < 5 and secs > 0:
        parts.append(_plural(secs, "sec"))

    return " ".join(parts) if parts else "< 1sec"


def format_time_remaining(remaining_bytes: int, bytes_per_second: float) -> str:
    """Estimate time left at the current rate."""
    if bytes_per_second <= 0:
        return "--"
    return format_time(math.ceil(remaining_bytes / bytes_per_second))


# =============================================================================
# Table Output
# =============================================================================


def print_table(
    rows: Sequence[dict[str, Any]],
    columns: Sequence[str],
    *,
    title: str | None = None,
    column_labels: dict[str, str] | None = None,
) -> None:
    """Print rows as a Rich table.

    Args:
        rows: List of dictionaries with data.
        columns: Column keys to display.
        title: Optional table title.
        column_labels: Optional mapping of column keys to display labels.
    """
    if not rows:
        console.print("[dim]No files[/dim]")
        return

    table = Table(title=title, show_header=True, header_style="bold")
    labels = column_labels or {}
    for col in columns:
        table.add_column(labels.get(col, col.replace("_", " ").title()))

    for row in rows:
        cells = []
        for col in columns:
            val = row.get(col)
            if val is None:
                cells.append("")
            elif isinstance(val, bool):
                cells.append("Yes" if val else "No")
            else:
                cells.append(str(val))
        table.add_row(*cells)

    console.print(table)


def print_key_value(data: dict[str, Any], *, title: str | None = None) -> None:
    """Print key-value pairs, one per line."""
    if title:
        console.print(f"[bold]{title}[/bold]")

    width = max((len(k) for k in data), default=0)
    for key, value in data.items():
        label = key.replace("_", " ").title()
        if value is None:
            value = "[dim]-[/dim]"
        elif isinstance(value, bool):
            value = "[green]Yes[/green]" if value else "[red]No[/red]"
        elif isinstance(value, (list, dict)):
            value = json.dumps(value)
        console.print(f"  {label:<{width}}  {value}")


def print_json(data: Any, *, indent: int = 2) -> None:
    """Print data as JSON on stdout."""
    print(json.dumps(data, indent=indent, default=str))


def print_output(
    data: Any,
    *,
    format: OutputFormat = OutputFormat.TABLE,
    columns: Sequence[str] | None = None,
    column_labels: dict[str, str] | None = None,
    title: str | None = None,
) -> None:
    """Print data in the requested format.

    Lists are rendered as tables when ``columns`` is given, dicts as
    key/value lines. Anything else falls back to JSON.
    """
    if format == OutputFormat.JSON:
        print_json(data)
    elif isinstance(data, list) and columns:
        print_table(data, columns, title=title, column_labels=column_labels)
    elif isinstance(data, dict):
        print_key_value(data, title=title)
    else:
        print_json(data)


# =============================================================================
# Status Messages
# =============================================================================


def print_error(message: str) -> None:
    """Print error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_warning(message: str) -> None:
    """Print warning message to stderr."""
    err_console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]Info:[/blue] {message}")


# =============================================================================
# Progress
# =============================================================================


def create_progress() -> Progress:
    """Create a Rich progress display for byte transfers."""
    return Progress(
        TextColumn("[progress.description]{task.description}", justify="left"),
        BarColumn(),
        TaskProgressColumn(),
        DownloadColumn(binary_units=True),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=console,
    )
