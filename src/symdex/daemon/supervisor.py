"""Daemon supervisor: owns the daemon's lifetime.

State machine::

    starting -> registering -> serving -> draining -> terminated
        \\-> terminated (another daemon is already running)

A daemon exits when a client asks it to, when it has been idle for the
configured timeout, or on SIGTERM/SIGINT. Every exit path drains the
server and removes the peer descriptor.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import threading
import time
import uuid
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from symdex.config import DaemonConfig
from symdex.daemon.events import ChangeType, FileChange, UpdateQueue
from symdex.daemon.registry import PeerDescriptor, PeerRegistry
from symdex.daemon.server import SymbolServer
from symdex.daemon.watcher import FileWatcher
from symdex.daemon.worker import IndexWorker
from symdex.index.store import SourceIndex
from symdex.paths import registry_directory
from symdex.query.provider import WorkspaceProvider
from symdex.query.router import QueryRouter

logger = logging.getLogger(__name__)


class ActivityClock:
    """Thread-safe record of the last observed activity."""

    def __init__(self, now: Callable[[], float] = time.monotonic) -> None:
        self._now = now
        self._lock = threading.Lock()
        self._last = now()

    def touch(self) -> None:
        with self._lock:
            self._last = self._now()

    def idle_for(self) -> float:
        """Seconds since the last touch."""
        with self._lock:
            return self._now() - self._last


class DaemonState(str, Enum):
    STARTING = "starting"
    REGISTERING = "registering"
    SERVING = "serving"
    DRAINING = "draining"
    TERMINATED = "terminated"


class DaemonOutcome(str, Enum):
    """How a supervisor run ended."""

    STOPPED = "stopped"
    ALREADY_RUNNING = "already_running"


def new_channel_name() -> str:
    """Generate a fresh channel name (short enough for a socket path)."""
    return "s" + uuid.uuid4().hex[:7]


class DaemonSupervisor:
    """Run one daemon instance for a workspace.

    Attributes:
        root: Workspace root
        config: Daemon configuration
        registry: Peer registry used for single-instance enforcement
        index: Workspace source index
        router: Query router answering client requests
        clock: Activity clock driving the idle timeout
        state: Current lifecycle state
        channel_name: Channel this instance listens on
        shutdown_reason: Why draining started, once it has
        indexed: Set once the initial rebuild has finished
    """

    def __init__(
        self,
        root: Path,
        config: DaemonConfig,
        registry: PeerRegistry,
        index: SourceIndex,
        router: QueryRouter,
        clock: ActivityClock | None = None,
        pid: int | None = None,
        server_path: str | None = None,
    ) -> None:
        self.root = root.resolve()
        self.config = config
        self.registry = registry
        self.index = index
        self.router = router
        self.clock = clock or ActivityClock()
        self.pid = pid or os.getpid()
        self.server_path = server_path or sys.executable
        self.state = DaemonState.STARTING
        self.channel_name = new_channel_name()
        self.shutdown_reason: str | None = None
        self.descriptor: PeerDescriptor | None = None

        self.server: SymbolServer | None = None
        self.queue: UpdateQueue | None = None
        self.worker: IndexWorker | None = None
        self.watcher: FileWatcher | None = None
        self.indexed = asyncio.Event()
        self._shutdown_event = asyncio.Event()
        self._idle_task: asyncio.Task[None] | None = None
        self._signals: list[signal.Signals] = []

    def _set_state(self, state: DaemonState) -> None:
        logger.debug(f"Daemon state: {self.state.value} -> {state.value}")
        self.state = state

    def request_shutdown(self, reason: str = "requested") -> None:
        """Begin draining; later calls are ignored."""
        if self.shutdown_reason is not None:
            return
        self.shutdown_reason = reason
        logger.info(f"Shutting down: {reason}")
        self._shutdown_event.set()

    async def run(self, install_signal_handlers: bool = True) -> DaemonOutcome:
        """Run the daemon until it is asked to stop or goes idle.

        Returns:
            ALREADY_RUNNING if another live daemon owns the workspace,
            otherwise STOPPED once draining has finished

        Raises:
            RegistryError: If the peer descriptor cannot be written
        """
        existing = self.registry.find_live_peer(exclude_pid=self.pid)
        if existing is not None:
            logger.info(f"Daemon already running (PID {existing.process_id})")
            self._set_state(DaemonState.TERMINATED)
            return DaemonOutcome.ALREADY_RUNNING

        self._set_state(DaemonState.REGISTERING)
        try:
            self.descriptor = self.registry.register(
                self.pid, self.server_path, self.channel_name
            )
        except Exception:
            self._set_state(DaemonState.TERMINATED)
            raise

        # Two daemons racing past the first check: the lowest pid wins
        rivals = [
            p for p in self.registry.live_peers(exclude_pid=self.pid) if p.process_id < self.pid
        ]
        if rivals:
            logger.info(f"Yielding to daemon PID {rivals[0].process_id}")
            self.registry.unregister(self.descriptor)
            self.descriptor = None
            self._set_state(DaemonState.TERMINATED)
            return DaemonOutcome.ALREADY_RUNNING

        if install_signal_handlers:
            self._install_signal_handlers()

        try:
            if await self._start_components():
                self._set_state(DaemonState.SERVING)
                logger.info(f"Daemon serving {self.root} on channel {self.channel_name}")
                await self._rebuild()
                if not self._shutdown_event.is_set():
                    self.clock.touch()
                    if self.config.idle_timeout_enabled:
                        self._idle_task = asyncio.create_task(self._idle_monitor())
            await self._shutdown_event.wait()
        finally:
            await self._drain()

        return DaemonOutcome.STOPPED

    async def _start_components(self) -> bool:
        """Start the server, queue, worker and watcher.

        Returns:
            False if shutdown was requested before the listener came up
        """
        self.server = SymbolServer(
            self.channel_name,
            query=self.router.query,
            on_shutdown=lambda: self.request_shutdown("client request"),
            on_activity=self.clock.touch,
            drain_timeout=self.config.drain_timeout,
        )
        if not await self.server.start(stop=self._shutdown_event):
            return False

        self.queue = UpdateQueue(debounce_ms=self.config.debounce_ms)
        self.worker = IndexWorker(self.index, self.queue)
        await self.worker.start()

        self.watcher = FileWatcher([self.root], self._on_file_change)
        await self.watcher.start()
        return True

    async def _rebuild(self) -> None:
        """Build the initial index without blocking the event loop.

        Returns early on shutdown. The abandoned rebuild finishes in its
        thread and a failure is only logged.
        """
        rebuild = asyncio.create_task(asyncio.to_thread(self.index.rebuild_all))
        stop = asyncio.create_task(self._shutdown_event.wait())
        done, _ = await asyncio.wait({rebuild, stop}, return_when=asyncio.FIRST_COMPLETED)
        if stop not in done:
            stop.cancel()
        if rebuild in done:
            rebuild.result()
            self.indexed.set()
        else:
            rebuild.add_done_callback(_log_abandoned_rebuild)

    async def _on_file_change(self, change_type: ChangeType, path: Path) -> None:
        self.clock.touch()
        assert self.queue is not None and self.worker is not None
        if change_type == "deleted":
            await self.queue.discard(path)
            await self.worker.remove(path)
        else:
            await self.queue.put(FileChange(change_type, path))

    async def _idle_monitor(self) -> None:
        timeout = self.config.idle_timeout_seconds
        interval = min(self.config.idle_poll_seconds, timeout / 2)
        while not self._shutdown_event.is_set():
            await asyncio.sleep(interval)
            idle = self.clock.idle_for()
            if idle >= timeout:
                self.request_shutdown(f"idle for {idle:.1f}s")
                return

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, f"received {sig.name}")
                self._signals.append(sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug(f"Cannot install handler for {sig.name}: {e}")

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()

    async def _drain(self) -> None:
        self._set_state(DaemonState.DRAINING)
        if self.shutdown_reason is None:
            self.shutdown_reason = "supervisor exited"

        if self._idle_task is not None:
            self._idle_task.cancel()
            try:
                await self._idle_task
            except asyncio.CancelledError:
                pass
            self._idle_task = None

        if self.server is not None:
            await self.server.close()
        if self.watcher is not None:
            await self.watcher.stop()
        if self.queue is not None:
            await self.queue.close()
        if self.worker is not None:
            await self.worker.stop()

        if self.descriptor is not None:
            self.registry.unregister(self.descriptor)
            self.descriptor = None

        self._remove_signal_handlers()
        self._set_state(DaemonState.TERMINATED)
        logger.info(f"Daemon stopped ({self.shutdown_reason})")


def _log_abandoned_rebuild(task: asyncio.Task[int]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"Abandoned index rebuild failed: {task.exception()}")


def create_supervisor(root: Path, config: DaemonConfig | None = None) -> DaemonSupervisor:
    """Build a supervisor with the default collaborators for a workspace."""
    root = root.resolve()
    config = config or DaemonConfig.load(root)
    index = SourceIndex(root)
    return DaemonSupervisor(
        root=root,
        config=config,
        registry=PeerRegistry(registry_directory(root)),
        index=index,
        router=QueryRouter(index, WorkspaceProvider(config.name_match_fallback)),
    )


def run_daemon(root: Path, config: DaemonConfig | None = None) -> DaemonOutcome:
    """Run a daemon for ``root`` in the foreground until it stops."""
    return asyncio.run(create_supervisor(root, config).run())


__all__ = [
    "ActivityClock",
    "DaemonOutcome",
    "DaemonState",
    "DaemonSupervisor",
    "create_supervisor",
    "new_channel_name",
    "run_daemon",
]
