"""Rich rendering of a capture result, for test-failure diagnostics."""

from __future__ import annotations

import io

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .models import CaptureResult


def _build_table(result: CaptureResult, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Stream", style="cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Text")

    for name, lines in (("stdout", result.stdout), ("stderr", result.stderr)):
        if lines is None:
            table.add_row(name, "", Text("(no output)", style="dim"))
        else:
            for n, line in enumerate(lines, 1):
                # Captured text is data, never markup
                table.add_row(name if n == 1 else "", str(n), Text(line))
        table.add_section()

    if result.error is None:
        table.add_row("error", "", Text("(none)", style="dim"))
    else:
        for n, exc in enumerate(result.error.exceptions, 1):
            table.add_row(
                "error" if n == 1 else "",
                str(n),
                Text(f"{type(exc).__name__}: {exc}", style="red"),
            )
    return table


def print_capture_report(
    result: CaptureResult,
    console: Console | None = None,
    *,
    title: str = "Captured output",
) -> None:
    """Print *result* as a table of stdout lines, stderr lines and errors."""
    if console is None:
        console = Console()
    console.print(_build_table(result, title))


def format_capture_report(
    result: CaptureResult,
    *,
    title: str = "Captured output",
    width: int = 100,
) -> str:
    """Return the report as plain text, e.g. for an assertion message."""
    console = Console(file=io.StringIO(), force_terminal=False, width=width)
    print_capture_report(result, console, title=title)
    return console.file.getvalue()
