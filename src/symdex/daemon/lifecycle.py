"""Daemon lifecycle management.

Handles starting, stopping, and checking status of the workspace daemon
from outside its process.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Any

from symdex.config import DaemonConfig
from symdex.daemon.registry import PeerDescriptor, PeerRegistry, pid_exists
from symdex.paths import get_daemon_log_path, registry_directory

logger = logging.getLogger(__name__)

# Maximum time to wait for daemon startup
STARTUP_TIMEOUT = 10.0

# Maximum time to wait for daemon shutdown
SHUTDOWN_TIMEOUT = 5.0


class DaemonLifecycle:
    """Start, stop and inspect the daemon of one workspace.

    Attributes:
        root: Workspace root
        config: Daemon configuration
        registry: Peer registry for the workspace
    """

    def __init__(
        self,
        root: Path,
        config: DaemonConfig | None = None,
        registry: PeerRegistry | None = None,
    ) -> None:
        self.root = root.resolve()
        self.config = config or DaemonConfig.load(self.root)
        self.registry = registry or PeerRegistry(registry_directory(self.root))

    def is_running(self) -> tuple[bool, PeerDescriptor | None]:
        """Check if a daemon is running.

        Returns:
            Tuple of (is_running, descriptor or None)
        """
        descriptor = self.registry.find_live_peer()
        return descriptor is not None, descriptor

    def status(self) -> dict[str, Any]:
        """Get daemon status without starting anything."""
        running, descriptor = self.is_running()
        if not running or descriptor is None:
            return {"status": "stopped", "running": False, "root": str(self.root)}

        return {
            "status": "running",
            "running": True,
            "root": str(self.root),
            **descriptor.to_dict(),
        }

    def start_background(self) -> PeerDescriptor:
        """Start a detached daemon unless one is already running.

        Returns:
            Descriptor of the running daemon

        Raises:
            RuntimeError: If the daemon fails to start
        """
        running, descriptor = self.is_running()
        if running and descriptor is not None:
            logger.info(f"Daemon already running (PID {descriptor.process_id})")
            return descriptor

        log_path = get_daemon_log_path(self.root)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        process = subprocess.Popen(
            [sys.executable, "-m", "symdex", "daemon", "run", "--detached", str(self.root)],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            cwd=str(self.root),
            start_new_session=True,  # Detach from parent
        )

        start_time = time.time()
        while time.time() - start_time < STARTUP_TIMEOUT:
            time.sleep(0.1)

            running, descriptor = self.is_running()
            if running and descriptor is not None:
                logger.info(f"Daemon started (PID {descriptor.process_id})")
                return descriptor

            # A losing racer exits quickly after finding the winner
            if process.poll() is not None:
                running, descriptor = self.is_running()
                if running and descriptor is not None:
                    return descriptor
                raise RuntimeError(
                    f"Daemon process exited unexpectedly (code {process.returncode}); "
                    f"see {log_path}"
                )

        raise RuntimeError(f"Daemon failed to start within {STARTUP_TIMEOUT}s")

    def stop(self) -> bool:
        """Stop the running daemon.

        Asks politely over the channel first, then escalates to SIGTERM
        and finally SIGKILL.

        Returns:
            True if a daemon was stopped, False if none was running
        """
        running, descriptor = self.is_running()
        if not running or descriptor is None:
            return False

        pid = descriptor.process_id
        logger.info(f"Stopping daemon (PID {pid})")

        from symdex.client import SymbolClient

        client = SymbolClient(self.root, timeout=self.config.connect_timeout, registry=self.registry)
        if client.shutdown() and self._wait_for_exit(descriptor):
            logger.info("Daemon stopped")
            return True

        logger.warning("Daemon did not acknowledge shutdown, sending SIGTERM")
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            descriptor.delete()
            return True
        except OSError as e:
            logger.error(f"Failed to send SIGTERM: {e}")
            return False

        if self._wait_for_exit(descriptor):
            descriptor.delete()
            logger.info("Daemon stopped")
            return True

        logger.warning("Daemon didn't respond to SIGTERM, sending SIGKILL")
        try:
            os.kill(pid, signal.SIGKILL)
            time.sleep(0.5)
        except OSError:
            pass

        descriptor.delete()
        return True

    def _wait_for_exit(self, descriptor: PeerDescriptor) -> bool:
        """Wait until the process is gone or has removed its descriptor."""
        start_time = time.time()
        while time.time() - start_time < SHUTDOWN_TIMEOUT:
            if not pid_exists(descriptor.process_id) or not descriptor.file_path.exists():
                return True
            time.sleep(0.1)
        return False


__all__ = [
    "DaemonLifecycle",
    "SHUTDOWN_TIMEOUT",
    "STARTUP_TIMEOUT",
]
