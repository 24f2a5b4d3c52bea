"""
Background Task Queue

In-process queue for fire-and-forget work enqueued by request handlers
(card updates, welcome messages, alignment cleanup) so that responses are
not held up by conversation I/O. One worker executes items in order.

The queue is unbounded: items are small and rare, and everything in it can
be re-derived by the next scheduler pass or user action. Items still queued
when the process dies are lost.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass
class WorkItem:
    name: str
    operation: Callable[[], Awaitable[Any]]


class BackgroundTaskQueue:
    """Single-consumer queue of deferred async operations."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._accepting = True
        self._worker_task: Optional[asyncio.Task] = None
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, operation: Callable[[], Awaitable[Any]], name: Optional[str] = None) -> bool:
        """
        Add a work item.

        Args:
            operation: Zero-argument callable returning an awaitable
            name: Label used in logs

        Returns:
            False if the queue is shutting down and the item was dropped
        """
        if operation is None:
            raise ValueError("operation is required")

        name = name or getattr(operation, "__name__", "work-item")
        if not self._accepting:
            logger.warning(f"Task queue is shutting down, dropping {name}")
            return False

        self._queue.put_nowait(WorkItem(name=name, operation=operation))
        logger.debug(f"Queued {name} ({self.pending} pending)")
        return True

    async def _execute(self, item: WorkItem) -> None:
        try:
            await item.operation()
            self.completed += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed += 1
            logger.error(f"Background task {item.name} failed: {e}", exc_info=True)

    async def run(self) -> None:
        """Consume items until stop() is called and everything before it has run."""
        logger.info("Background task worker started")
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    break
                await self._execute(item)
            finally:
                self._queue.task_done()
        logger.info(f"Background task worker stopped ({self.completed} completed, {self.failed} failed)")

    def start(self) -> asyncio.Task:
        if self._worker_task is None or self._worker_task.done():
            self._accepting = True
            self._worker_task = asyncio.create_task(self.run())
        return self._worker_task

    async def join(self) -> None:
        """Wait until every queued item has been processed."""
        await self._queue.join()

    async def stop(self, timeout: Optional[float] = 10.0) -> None:
        """
        Stop accepting work and drain what is already queued.

        Draining is best effort: if it takes longer than the timeout the
        worker is cancelled and the remaining items are dropped.
        """
        self._accepting = False
        if self._worker_task is None or self._worker_task.done():
            return

        self._queue.put_nowait(_STOP)
        try:
            await asyncio.wait_for(asyncio.shield(self._worker_task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Task queue drain timed out after {timeout}s with {self.pending} item(s) left")
            self._worker_task.cancel()
