"""File change events and the debouncing queue feeding the index worker."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

ChangeType = Literal["added", "modified", "deleted"]


@dataclass
class FileChange:
    """A file change event from the filesystem watcher.

    Attributes:
        change_type: Type of change - 'added', 'modified', or 'deleted'
        path: Path to the changed file
        timestamp: Unix timestamp when the change was detected
    """

    change_type: ChangeType
    path: Path
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "change_type": self.change_type,
            "path": str(self.path),
            "timestamp": self.timestamp,
        }


class UpdateQueue:
    """Debouncing queue for file changes.

    Repeated changes to the same path within the debounce window collapse
    into the latest one; the batch is released once the window passes
    without new events.

    Attributes:
        debounce_ms: Debounce delay in milliseconds
    """

    def __init__(self, debounce_ms: int = 100) -> None:
        self.debounce_ms = debounce_ms
        self._pending: dict[str, FileChange] = {}
        self._queue: asyncio.Queue[FileChange] = asyncio.Queue()
        self._debounce_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    async def put(self, change: FileChange) -> None:
        """Add a change, replacing any pending change for the same path."""
        async with self._lock:
            self._pending[str(change.path)] = change
            await self._cancel_timer()
            self._debounce_task = asyncio.create_task(self._flush_after_delay())

    async def discard(self, path: Path) -> bool:
        """Drop a pending change for ``path``.

        Returns:
            True if a pending change was dropped
        """
        async with self._lock:
            return self._pending.pop(str(path), None) is not None

    async def _cancel_timer(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            try:
                await self._debounce_task
            except asyncio.CancelledError:
                pass
            self._debounce_task = None

    async def _flush_after_delay(self) -> None:
        """Wait for the debounce delay, then release pending changes."""
        await asyncio.sleep(self.debounce_ms / 1000.0)

        async with self._lock:
            self._release_pending()
            self._debounce_task = None

    def _release_pending(self) -> None:
        for change in self._pending.values():
            self._queue.put_nowait(change)
        self._pending.clear()

    async def get(self) -> FileChange:
        """Get the next released change, blocking until one is available."""
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    def empty(self) -> bool:
        """True if no released changes are waiting (ignores pending ones)."""
        return self._queue.empty()

    async def flush(self) -> None:
        """Immediately release all pending changes."""
        async with self._lock:
            await self._cancel_timer()
            self._release_pending()

    async def close(self) -> None:
        """Cancel the debounce timer and drop pending changes."""
        async with self._lock:
            await self._cancel_timer()
            self._pending.clear()

    async def join(self) -> None:
        """Wait until every released change has been processed."""
        await self._queue.join()

    def pending_count(self) -> int:
        """Number of changes still inside the debounce window."""
        return len(self._pending)

    def queued_count(self) -> int:
        """Number of released changes waiting for the worker."""
        return self._queue.qsize()


__all__ = [
    "ChangeType",
    "FileChange",
    "UpdateQueue",
]
