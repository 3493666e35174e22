"""symdex daemon stop command - Stop the running daemon."""

from __future__ import annotations

from pathlib import Path

import click


@click.command("stop")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".")
def daemon_stop(path: Path) -> None:
    """Stop the running workspace daemon.

    \b
    Example:
        symdex daemon stop
    """
    from symdex.config import DaemonConfig
    from symdex.daemon.lifecycle import DaemonLifecycle
    from symdex.errors import ConfigError
    from symdex.logging import print_info, print_success, print_warning

    try:
        lifecycle = DaemonLifecycle(path)
    except ConfigError as e:
        print_warning(f"{e.message} (using default settings)")
        lifecycle = DaemonLifecycle(path, config=DaemonConfig.model_construct())

    if lifecycle.stop():
        print_success("symdex daemon stopped")
    else:
        print_info("Daemon not running")


__all__ = ["daemon_stop"]
