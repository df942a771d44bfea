"""Shared console utilities for CLI commands.

The console writes to stderr: stdout belongs to protocol traffic whenever
the proxy runs.
"""

from rich.console import Console
from rich.markup import escape

# Shared console instance for all CLI commands
console = Console(stderr=True)


def error(msg: str) -> None:
    """Print an error message in red."""
    console.print(f"[red]{escape(msg)}[/red]")
