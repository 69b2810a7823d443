"""Centralised console management module"""

from typing import Optional

from rich.console import Console

_console: Optional[Console] = None
_error_console: Optional[Console] = None


def get_console() -> Console:
    """Get the shared Console instance"""
    global _console

    if _console is None:
        _console = Console()

    return _console


def get_error_console() -> Console:
    """Get the shared stderr Console instance"""
    global _error_console

    if _error_console is None:
        _error_console = Console(stderr=True)

    return _error_console


def reset_console() -> None:
    """Reset the shared Console instances (for testing purposes)"""
    global _console, _error_console
    _console = None
    _error_console = None


## Convenience Print Functions

def print_success(message: str, console: Optional[Console] = None) -> None:
    """Print a success message to the console"""
    output_console = console or get_console()
    output_console.print(f"[green]{message}[/]")


def print_error(message: str, console: Optional[Console] = None) -> None:
    """Print an error message to stderr"""
    output_console = console or get_error_console()
    output_console.print(f"[red]{message}[/]", highlight=False)


def print_warning(message: str, console: Optional[Console] = None) -> None:
    """Print a warning message to the console"""
    output_console = console or get_console()
    output_console.print(f"[yellow]{message}[/]")


def print_info(message: str, console: Optional[Console] = None) -> None:
    """Print an info message to the console"""
    output_console = console or get_console()
    output_console.print(message, markup=False, highlight=False)
