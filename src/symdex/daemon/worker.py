"""Index worker for incremental updates.

Consumes debounced file changes from the UpdateQueue and applies them to
the SourceIndex.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from symdex.daemon.events import FileChange, UpdateQueue
from symdex.index.store import SourceIndex

logger = logging.getLogger(__name__)


class IndexWorker:
    """Single consumer that applies file changes to the index.

    Parsing runs in a worker thread; the index lock keeps successive
    updates of one file in delivery order.

    Attributes:
        index: The SourceIndex to update
        queue: The UpdateQueue to read file changes from
    """

    def __init__(self, index: SourceIndex, queue: UpdateQueue) -> None:
        self.index = index
        self.queue = queue
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self.processed = 0

    async def start(self) -> None:
        """Start the worker processing loop."""
        if self._task is not None:
            logger.warning("IndexWorker already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._process_loop())
        logger.info("IndexWorker started")

    async def stop(self) -> None:
        """Stop the worker processing loop."""
        if self._task is None:
            return

        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("IndexWorker stopped")

    async def remove(self, path: Path) -> bool:
        """Evict a deleted file immediately, bypassing the debounce queue."""
        try:
            return await asyncio.to_thread(self.index.remove, path)
        except Exception as e:
            logger.error(f"Error removing {path}: {e}")
            return False

    async def _process_loop(self) -> None:
        """Main processing loop - reads from queue and updates the index."""
        while not self._stop_event.is_set():
            try:
                # Use wait_for to allow periodic checking of stop event
                change = await asyncio.wait_for(self.queue.get(), timeout=1.0)
            except TimeoutError:
                continue

            try:
                await self._process_change(change)
            except Exception as e:
                logger.error(f"Error processing change {change.path}: {e}")
            finally:
                self.queue.task_done()

    async def _process_change(self, change: FileChange) -> None:
        if change.change_type == "deleted":
            await asyncio.to_thread(self.index.remove, change.path)
        else:
            await asyncio.to_thread(self.index.upsert, change.path)
        self.processed += 1
        logger.debug(f"Applied {change.change_type} {change.path}")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()


__all__ = [
    "IndexWorker",
]
