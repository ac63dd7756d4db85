"""
Background scheduling of incremental indexing.

Posts are indexed every hour at minute 0 and comments at minute 30, so
the two jobs do not compete. Both also run once shortly after startup.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .indexer import MemoryIndexer
from .memory.types import KindSummary, SourceKind, utc_now


logger = logging.getLogger(__name__)


def seconds_until_minute(now: datetime, minute: int) -> float:
    """
    Seconds from `now` until the next time the clock shows `minute`.

    A target equal to the current minute means the next hour.
    """
    if not 0 <= minute < 60:
        raise ValueError("minute must be between 0 and 59")
    target = now.replace(minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(hours=1)
    return (target - now).total_seconds()


class IndexScheduler:
    """
    Runs the indexer on an hourly schedule inside the event loop.

    The indexer is synchronous and runs in the default executor. A run of
    a kind that is still in progress is not started again.
    """

    def __init__(
        self,
        indexer: MemoryIndexer,
        post_minute: int = 0,
        comment_minute: int = 30,
        startup_delay: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.indexer = indexer
        self.minutes: Dict[SourceKind, int] = {
            SourceKind.POST: post_minute,
            SourceKind.COMMENT: comment_minute,
        }
        self.startup_delay = startup_delay
        self._clock = clock
        self._locks: Dict[SourceKind, asyncio.Lock] = {}
        self._tasks: List[asyncio.Task] = []
        self.last_results: Dict[SourceKind, KindSummary] = {}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def _lock(self, kind: SourceKind) -> asyncio.Lock:
        if kind not in self._locks:
            self._locks[kind] = asyncio.Lock()
        return self._locks[kind]

    async def run_kind(self, kind: SourceKind) -> Optional[KindSummary]:
        """
        Index new items of one kind in a worker thread.

        Returns:
            The run summary, or None when the run was skipped or failed
        """
        lock = self._lock(kind)
        if lock.locked():
            logger.info(f"Skipping {kind.value} indexing: previous run still in progress")
            return None

        async with lock:
            loop = asyncio.get_running_loop()
            try:
                summary = await loop.run_in_executor(None, self.indexer.process_new, kind)
            except Exception:
                logger.exception(f"Error in {kind.value} processing job")
                return None

        self.last_results[kind] = summary
        return summary

    async def _periodic(self, kind: SourceKind):
        minute = self.minutes[kind]
        while True:
            delay = seconds_until_minute(self._clock(), minute)
            logger.debug(f"Next {kind.value} indexing in {delay:.0f}s")
            await asyncio.sleep(delay)
            await self.run_kind(kind)

    async def _startup_run(self):
        await asyncio.sleep(self.startup_delay)
        logger.info("Running initial news processing...")
        for kind in SourceKind:
            await self.run_kind(kind)

    def start(self):
        """Schedule the startup run and the hourly jobs on the running loop."""
        if self.running:
            return
        self._tasks = [asyncio.create_task(self._startup_run())]
        self._tasks.extend(asyncio.create_task(self._periodic(kind)) for kind in SourceKind)
        logger.info(
            f"News processor scheduled: posts at :{self.minutes[SourceKind.POST]:02d}, "
            f"comments at :{self.minutes[SourceKind.COMMENT]:02d}"
        )

    async def stop(self):
        """Cancel all scheduled jobs and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("News processor stopped")
