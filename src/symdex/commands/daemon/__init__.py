"""symdex daemon commands - manage the per-workspace symbol index daemon."""

from __future__ import annotations

import click

from symdex.commands.lazy import LazyGroup

# Define lazy subcommands for daemon group
LAZY_DAEMON_COMMANDS: dict[str, tuple[str, str]] = {
    "start": ("symdex.commands.daemon.start", "daemon_start"),
    "stop": ("symdex.commands.daemon.stop", "daemon_stop"),
    "status": ("symdex.commands.daemon.status", "daemon_status"),
    "run": ("symdex.commands.daemon.run", "daemon_run"),
}

DAEMON_ALIASES: dict[str, str] = {
    "discover": "status",
    "shutdown": "stop",
}


@click.group(cls=LazyGroup, lazy_subcommands=LAZY_DAEMON_COMMANDS, aliases=DAEMON_ALIASES)
def daemon() -> None:
    """Workspace daemon commands.

    The daemon keeps an in-memory symbol index of the workspace, updates it
    as files change, and exits on its own after a period without activity.

    \b
    Examples:
        symdex daemon start .         # Start daemon in background
        symdex daemon status          # Check daemon status (alias: discover)
        symdex daemon stop            # Stop running daemon (alias: shutdown)
        symdex daemon run .           # Run in foreground (for debugging)
    """
    pass


__all__ = ["daemon"]
