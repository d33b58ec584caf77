"""Console output helpers for the CLI (rich)."""

import json

from rich.console import Console

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def print_json(data) -> None:
    console.print_json(json.dumps(data))


def format_mib(mib) -> str:
    """Human readable size for a MiB figure, e.g. 131043 -> "128.0 GiB"."""
    try:
        value = float(mib)
    except (TypeError, ValueError):
        return "-"
    for unit in ("MiB", "GiB", "TiB"):
        if value < 1024 or unit == "TiB":
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TiB"
