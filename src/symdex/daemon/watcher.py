"""File system watcher for daemon mode.

Watches the workspace with watchfiles and reports changes to indexable
source files.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from watchfiles import Change, awatch

from symdex.daemon.events import ChangeType
from symdex.index.scanner import is_indexable

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeType, Path], Awaitable[None]]


def _change_type_to_str(change: Change) -> ChangeType:
    """Convert a watchfiles Change into 'added', 'modified' or 'deleted'."""
    if change == Change.added:
        return "added"
    elif change == Change.deleted:
        return "deleted"
    return "modified"


class FileWatcher:
    """Async filesystem watcher with filtering.

    Renames are reported by watchfiles as a deletion of the old path and an
    addition of the new one, so callbacks never see a separate rename type.

    Attributes:
        paths: Resolved paths being watched
        callback: Async callback(change_type, path) invoked per change
    """

    def __init__(self, paths: list[Path], callback: ChangeCallback) -> None:
        self.paths = [p.resolve() for p in paths]
        self.callback = callback
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Start the background watch task."""
        if self._task is not None:
            logger.warning("FileWatcher already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._watch())
        logger.info(f"FileWatcher started, watching {len(self.paths)} paths")

    async def stop(self) -> None:
        """Stop the watch task and wait for it to finish."""
        if self._task is None:
            return

        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("FileWatcher stopped")

    async def _watch(self) -> None:
        try:
            async for changes in awatch(
                *self.paths,
                stop_event=self._stop_event,
                watch_filter=self._watch_filter,
            ):
                for change, path_str in sorted(changes, key=_deletions_first):
                    path = Path(path_str)
                    try:
                        await self.callback(_change_type_to_str(change), path)
                    except Exception as e:
                        logger.error(f"Error processing {path}: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"FileWatcher error: {e}")
            raise

    def _watch_filter(self, change: Change, path: str) -> bool:
        return self._should_process(Path(path))

    def _should_process(self, path: Path) -> bool:
        """Check extension and skip hidden, build and environment directories."""
        for root in self.paths:
            if root == path or root in path.parents:
                return is_indexable(path, root)
        return is_indexable(path)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()


def _deletions_first(item: tuple[Change, str]) -> tuple[int, str]:
    # A batch holding a rename must evict the old path before indexing the new
    change, path = item
    return (0 if change == Change.deleted else 1, path)


__all__ = [
    "ChangeCallback",
    "FileWatcher",
]
