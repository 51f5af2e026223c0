"""Rich console helpers for CLI output."""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

console = Console()
error_console = Console(stderr=True)


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}")


def print_info(message: str) -> None:
    console.print(f"[cyan]ℹ[/cyan] {escape(message)}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {escape(message)}")


def print_error(message: str) -> None:
    error_console.print(f"[red]✗[/red] {escape(message)}")


def print_panel(content: str, title: str | None = None, style: str = "cyan") -> None:
    console.print(Panel(content, title=title, border_style=style))
