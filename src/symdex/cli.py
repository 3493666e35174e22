"""symdex CLI - per-workspace symbol index daemon."""

from __future__ import annotations

from dotenv import load_dotenv

# Load .env file before any other imports that might use env vars
load_dotenv()

import click  # noqa: E402

from symdex import __version__  # noqa: E402
from symdex.commands.lazy import LazyGroup  # noqa: E402
from symdex.logging import Verbosity  # noqa: E402


class SymdexContext:
    """Shared context for CLI commands."""

    def __init__(self) -> None:
        self.verbosity: Verbosity = "normal"
        self.debug: bool = False


pass_context = click.make_pass_decorator(SymdexContext, ensure=True)


# Define lazy subcommands: name -> (module_path, attribute_name)
LAZY_COMMANDS: dict[str, tuple[str, str]] = {
    "daemon": ("symdex.commands.daemon", "daemon"),
    "query": ("symdex.commands.query", "query"),
}


@click.group(cls=LazyGroup, lazy_subcommands=LAZY_COMMANDS)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output")
@click.option("--debug", is_flag=True, help="Show full tracebacks on errors")
@click.version_option(version=__version__, prog_name="symdex")
@pass_context
def cli(ctx: SymdexContext, verbose: bool, quiet: bool, debug: bool) -> None:
    """symdex - symbol lookups backed by a per-workspace daemon.

    \b
    Commands:
      daemon       Start, stop and inspect the workspace daemon
      query        Show the symbols at a source position

    Use 'symdex <command> --help' for details.
    """
    from symdex.logging import setup_logging

    ctx.debug = debug

    if quiet:
        ctx.verbosity = "quiet"
    elif verbose or debug:
        ctx.verbosity = "verbose"
    else:
        ctx.verbosity = "normal"

    setup_logging(ctx.verbosity)


__all__ = ["SymdexContext", "cli", "pass_context"]
