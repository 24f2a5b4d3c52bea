"""
Periodic background worker.

Runs one pass at each cron fire time until stopped. Passes never overlap
for the same worker; a failed pass is logged and the loop waits for the
next fire time. Stopping is cooperative: the loop stops waiting at once,
and a running pass checks `stopping` before starting each new item.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from croniter import croniter

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def group_by_owner(items: Iterable, owner_of: Callable) -> Dict[str, List]:
    """Group entities by owner key, keeping first-seen order."""
    grouped: Dict[str, List] = {}
    for item in items:
        grouped.setdefault(owner_of(item), []).append(item)
    return grouped


class PeriodicWorker(ABC):
    """Base class for cron-driven background loops."""

    name = "periodic-worker"

    def __init__(self, cron_expression: str, clock: Clock = utc_now):
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression for {self.name}: {cron_expression!r}")
        self.cron_expression = cron_expression
        self.clock = clock
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[datetime] = None

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def next_run(self, after: Optional[datetime] = None) -> datetime:
        """Next fire time strictly after the given time (default: now)."""
        base_time = after or self.clock()
        return croniter(self.cron_expression, base_time).get_next(datetime)

    @abstractmethod
    async def run_once(self):
        """Run one pass."""

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def run_forever(self) -> None:
        logger.info(f"{self.name} started with schedule '{self.cron_expression}'")

        while not self.stopping:
            now = self.clock()
            delay = max(0.0, (self.next_run(now) - now).total_seconds())
            if await self._wait_for_stop(delay):
                break

            try:
                await self.run_once()
                self.last_run = self.clock()
            except asyncio.CancelledError:
                logger.info(f"{self.name} cancelled")
                raise
            except Exception as e:
                logger.error(f"{self.name} pass failed: {e}", exc_info=True)

        logger.info(f"{self.name} stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run_forever())
            logger.info(f"{self.name} background task started")
        return self._task

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Request shutdown and wait for the current pass to finish its item."""
        self._stop_event.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} did not stop within {timeout}s, cancelling")
            self._task.cancel()
