"""symdex daemon status command - Check daemon status."""

from __future__ import annotations

from pathlib import Path

import click


@click.command("status")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def daemon_status(path: Path, as_json: bool) -> None:
    """Check daemon status without starting one.

    \b
    Example:
        symdex daemon status
        symdex daemon status --json
    """
    import json as json_module

    from rich.table import Table

    from symdex.config import DaemonConfig
    from symdex.daemon.lifecycle import DaemonLifecycle
    from symdex.errors import ConfigError
    from symdex.logging import console, print_info, print_warning

    try:
        lifecycle = DaemonLifecycle(path)
    except ConfigError as e:
        print_warning(f"{e.message} (using default settings)")
        lifecycle = DaemonLifecycle(path, config=DaemonConfig.model_construct())

    status = lifecycle.status()

    if as_json:
        console.print_json(json_module.dumps(status))
        return

    if not status["running"]:
        print_info("Daemon is not running")
        return

    table = Table(title="symdex Daemon Status")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Status", status["status"])
    table.add_row("Workspace", status["root"])
    table.add_row("PID", str(status["pid"]))
    table.add_row("Channel", status["channel"])
    table.add_row("Server", status["server_path"])
    table.add_row("PID file", status["pid_file"])

    console.print(table)


__all__ = ["daemon_status"]
