"""Logging configuration for symdex."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler

# Console instances for stdout/stderr
console = Console()
err_console = Console(stderr=True)

Verbosity = Literal["quiet", "normal", "verbose"]

_LEVELS: dict[str, int] = {
    "quiet": logging.ERROR,
    "normal": logging.INFO,
    "verbose": logging.DEBUG,
}


def setup_logging(verbosity: Verbosity = "normal") -> logging.Logger:
    """Configure logging based on verbosity level."""
    logger = logging.getLogger("symdex")

    # Clear existing handlers
    logger.handlers.clear()
    logger.setLevel(_LEVELS[verbosity])

    # Use Rich handler for pretty output
    handler = RichHandler(
        console=err_console,
        show_time=verbosity == "verbose",
        show_path=verbosity == "verbose",
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    return logger


def setup_daemon_logging(log_path: Path, verbosity: Verbosity = "normal") -> logging.Logger:
    """Configure file logging for a detached background daemon.

    A detached daemon has no terminal, so records go to a plain file
    with timestamps instead of the Rich console.
    """
    logger = logging.getLogger("symdex")
    logger.handlers.clear()
    logger.setLevel(_LEVELS[verbosity])

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(process)d %(name)s %(levelname)s %(message)s")
    )
    logger.addHandler(handler)

    return logger


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message to stderr."""
    err_console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str) -> None:
    """Print a success message to stdout."""
    console.print(f"[green]{message}[/green]")


def print_info(message: str) -> None:
    """Print an info message to stdout."""
    console.print(message)
