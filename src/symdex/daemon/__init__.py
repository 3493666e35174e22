"""symdex daemon - per-workspace symbol index service.

Provides a long-running process that:
- Registers itself in the workspace peer registry so clients can find it
- Indexes the workspace and keeps the index current as files change
- Answers symbol queries over a local Unix socket
- Exits on request, on SIGTERM/SIGINT, or after an idle timeout

Example:
    Start the daemon from CLI:

        $ symdex daemon start .
        symdex daemon started
        PID: 12345

        $ symdex daemon status
        $ symdex daemon stop

    Or run it in-process:

        >>> from pathlib import Path
        >>> from symdex.daemon import run_daemon
        >>> run_daemon(Path("."))
"""

from symdex.daemon.events import FileChange, UpdateQueue
from symdex.daemon.lifecycle import DaemonLifecycle
from symdex.daemon.registry import PeerDescriptor, PeerRegistry
from symdex.daemon.server import SymbolServer
from symdex.daemon.supervisor import (
    ActivityClock,
    DaemonOutcome,
    DaemonState,
    DaemonSupervisor,
    create_supervisor,
    run_daemon,
)
from symdex.daemon.watcher import FileWatcher
from symdex.daemon.worker import IndexWorker

__all__ = [
    # Events
    "FileChange",
    "UpdateQueue",
    # Lifecycle
    "DaemonLifecycle",
    # Registry
    "PeerDescriptor",
    "PeerRegistry",
    # Server
    "SymbolServer",
    # Supervisor
    "ActivityClock",
    "DaemonOutcome",
    "DaemonState",
    "DaemonSupervisor",
    "create_supervisor",
    "run_daemon",
    # Watcher
    "FileWatcher",
    # Worker
    "IndexWorker",
]
