"""
Periodic Tick Scheduler

ScheduledLoop fires an async callback at a fixed interval on the running
event loop, measuring against the loop's monotonic clock so callback
execution time does not accumulate as drift. Missed intervals are skipped
rather than queued.

The gateway runs its three ticks (dispatch, progress, status heartbeat)
as one SchedulerGroup on a single event loop.

Usage:
    group = SchedulerGroup()
    group.add("dispatch", 1.0, dispatcher.tick)
    await group.start_all()
    ...
    group.stop_all()
"""

import asyncio
from typing import Awaitable, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


class ScheduledLoop:
    """
    Fixed-interval scheduler for one async callback.

    Exceptions raised by the callback are logged and the loop keeps
    running, so one failing tick cannot stop later ticks.

    Attributes:
        interval: Seconds between executions
        callback: Async function called each interval
        skipped_count: Intervals skipped because a callback overran
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._running = False
        self._task: asyncio.Task | None = None

        self._execution_count = 0
        self._error_count = 0
        self._skipped_count = 0
        self._last_execution_time = 0.0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop in a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"tick:{self.name}")

    def stop(self) -> None:
        """Stop the loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + self.interval

        while self._running:
            delay = next_run - loop.time()
            if delay > 0:
                try:
                    await asyncio.sleep(delay)
                except asyncio.CancelledError:
                    break

            if not self._running:
                break

            started = loop.time()
            try:
                await self.callback()
                self._execution_count += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._error_count += 1
                logger.error(f"Scheduled callback '{self.name}' error: {e}")
            self._last_execution_time = loop.time() - started

            # Skip missed intervals to catch up (don't queue up missed executions)
            now = loop.time()
            skipped = 0
            while next_run <= now:
                next_run += self.interval
                skipped += 1

            if skipped > 1:
                self._skipped_count += skipped - 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped {skipped - 1} intervals "
                    f"(execution took {self._last_execution_time:.3f}s)"
                )

    @property
    def execution_count(self) -> int:
        return self._execution_count

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def skipped_count(self) -> int:
        return self._skipped_count

    def get_stats(self) -> dict:
        """Get scheduler statistics for the health endpoint."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "execution_count": self._execution_count,
            "error_count": self._error_count,
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }


class SchedulerGroup:
    """Start/stop several scheduled loops together."""

    def __init__(self):
        self._schedulers: dict[str, ScheduledLoop] = {}

    def add(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> ScheduledLoop:
        """Add a scheduler to the group."""
        scheduler = ScheduledLoop(interval_seconds, callback, name)
        self._schedulers[name] = scheduler
        return scheduler

    async def start_all(self) -> None:
        for scheduler in self._schedulers.values():
            await scheduler.start()

    def stop_all(self) -> None:
        for scheduler in self._schedulers.values():
            scheduler.stop()

    def get_stats(self) -> dict:
        return {
            name: scheduler.get_stats()
            for name, scheduler in self._schedulers.items()
        }

    def get(self, name: str) -> ScheduledLoop | None:
        return self._schedulers.get(name)
