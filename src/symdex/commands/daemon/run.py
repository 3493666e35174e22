"""symdex daemon run command - Run the daemon in foreground."""

from __future__ import annotations

import sys
from pathlib import Path

import click


@click.command("run")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".")
@click.option(
    "--idle-timeout",
    type=float,
    default=None,
    help="Seconds without activity before exiting (<= 0 disables)",
)
@click.option(
    "--debounce",
    type=int,
    default=None,
    help="Debounce delay in milliseconds",
)
@click.option("--detached", is_flag=True, hidden=True, help="Log to the daemon log file")
@click.pass_context
def daemon_run(
    click_ctx: click.Context,
    path: Path,
    idle_timeout: float | None,
    debounce: int | None,
    detached: bool,
) -> None:
    """Run the daemon in foreground (for debugging).

    Press Ctrl+C to stop.

    \b
    Examples:
        symdex daemon run .
        symdex daemon run . --idle-timeout 0
    """
    from symdex.config import DaemonConfig
    from symdex.daemon.supervisor import DaemonOutcome, run_daemon
    from symdex.errors import ConfigError, ExitCode, RegistryError
    from symdex.logging import print_error, print_info, print_warning, setup_daemon_logging
    from symdex.paths import get_daemon_log_path

    root = path.resolve()

    try:
        config = DaemonConfig.load(root)
    except ConfigError as e:
        print_error(e.message)
        sys.exit(ExitCode.CONFIG_ERROR)

    overrides: dict[str, float | int] = {}
    if idle_timeout is not None:
        overrides["idle_timeout_seconds"] = idle_timeout
    if debounce is not None:
        overrides["debounce_ms"] = debounce
    if overrides:
        config = config.model_copy(update=overrides)

    if detached:
        verbosity = getattr(click_ctx.obj, "verbosity", "normal")
        setup_daemon_logging(get_daemon_log_path(root), verbosity)
    else:
        print_info(f"Starting symdex daemon for {root}")
        print_info("Press Ctrl+C to stop")

    try:
        outcome = run_daemon(root, config)
    except RegistryError as e:
        if getattr(click_ctx.obj, "debug", False):
            raise
        print_error(e.message)
        sys.exit(ExitCode.FATAL_ERROR)

    if outcome is DaemonOutcome.ALREADY_RUNNING and not detached:
        print_warning("Daemon already running")
        print_info("Stop it first with 'symdex daemon stop'")


__all__ = ["daemon_run"]
