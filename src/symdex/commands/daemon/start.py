"""symdex daemon start command - Start the daemon in background."""

from __future__ import annotations

import sys
from pathlib import Path

import click


@click.command("start")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".")
def daemon_start(path: Path) -> None:
    """Start the workspace daemon in background.

    Does nothing if a daemon for the workspace is already running.

    \b
    Examples:
        symdex daemon start
        symdex daemon start ~/src/project
    """
    from symdex.daemon.lifecycle import DaemonLifecycle
    from symdex.errors import ConfigError, ExitCode
    from symdex.logging import print_error, print_info, print_success, print_warning

    try:
        lifecycle = DaemonLifecycle(path)
    except ConfigError as e:
        print_error(e.message)
        sys.exit(ExitCode.CONFIG_ERROR)

    running, descriptor = lifecycle.is_running()
    if running and descriptor is not None:
        print_warning(f"Daemon already running (PID {descriptor.process_id})")
        return

    try:
        descriptor = lifecycle.start_background()
    except RuntimeError as e:
        print_error(str(e))
        sys.exit(ExitCode.FATAL_ERROR)

    print_success("symdex daemon started")
    print_info(f"PID: {descriptor.process_id}")
    print_info(f"Channel: {descriptor.channel_name}")
    print_info(f"PID file: {descriptor.file_path}")


__all__ = ["daemon_start"]
