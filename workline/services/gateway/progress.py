"""
Progress Tracker

Keeps a live view of the work item the device is executing. The device
only reports STARTED and a terminal event, so remaining time between
those is recomputed from the start instant on every tick.

One slot only: the device runs one job at a time.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable

from workline.common.logging_setup import get_service_logger
from workline.common.models import WorkItem
from workline.common.timestamp import from_epoch_iso

logger = get_service_logger("gateway.progress")

STATUS_WAITING = "WAITING"
STATUS_STARTED = "STARTED"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELED = "CANCELED"


@dataclass
class ProgressSnapshot:
    """Current-work projection published to the status file"""
    active: bool = False
    work_id: int | None = None
    code: str = ""
    name: str = ""
    duration: int = 0
    started_at: float | None = None  # epoch seconds
    remaining: int = 0
    status: str = STATUS_WAITING

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "work_id": self.work_id,
            "code": self.code,
            "name": self.name,
            "duration": self.duration,
            "started_at": from_epoch_iso(self.started_at) if self.started_at is not None else None,
            "remaining": self.remaining,
            "status": self.status,
        }


class ProgressTracker:
    """
    Single-slot tracker for the executing work item.

    Args:
        clock: monotonic seconds used for elapsed time; injectable for tests
        wall_clock: epoch seconds stamped as started_at
        on_change: called after start/complete/cancel and after each
            active tick (the status publisher hooks in here)
    """

    # Log remaining time every N seconds while active
    LOG_EVERY_S = 5

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        on_change: Callable[[], None] | None = None,
    ):
        self._clock = clock
        self._wall_clock = wall_clock
        self._on_change = on_change
        self._snapshot = ProgressSnapshot()
        self._started_mono: float | None = None

    def set_listener(self, on_change: Callable[[], None] | None) -> None:
        self._on_change = on_change

    @property
    def active(self) -> bool:
        return self._snapshot.active

    @property
    def current_work_id(self) -> int | None:
        return self._snapshot.work_id if self._snapshot.active else None

    def _notify(self) -> None:
        if self._on_change:
            self._on_change()

    def start(self, item: WorkItem) -> None:
        """Begin tracking `item` (device reported STARTED)"""
        current = self._snapshot
        if current.active and current.work_id != item.id:
            logger.warning(
                f"STARTED for {item.code} while {current.code} still active; "
                f"replacing tracked work"
            )

        self._snapshot = ProgressSnapshot(
            active=True,
            work_id=item.id,
            code=item.code,
            name=item.name,
            duration=item.duration,
            started_at=self._wall_clock(),
            remaining=item.duration,
            status=STATUS_STARTED,
        )
        self._started_mono = self._clock()
        logger.info(f"Tracking started for {item.code} - {item.duration}s")
        self._notify()

    def _recompute(self) -> int:
        snapshot = self._snapshot
        elapsed = max(0, int(self._clock() - self._started_mono))
        snapshot.remaining = max(0, snapshot.duration - elapsed)
        return elapsed

    def tick(self) -> None:
        """Recompute remaining time; no-op while idle"""
        if not self._snapshot.active:
            return

        elapsed = self._recompute()
        if elapsed % self.LOG_EVERY_S == 0 and self._snapshot.remaining > 0:
            logger.debug(f"{self._snapshot.code}: {self._snapshot.remaining}s remaining")
        self._notify()

    def _clear(self, work_id: int, status: str) -> bool:
        if not self._snapshot.active or self._snapshot.work_id != work_id:
            return False

        code = self._snapshot.code
        self._snapshot = ProgressSnapshot(status=status)
        self._started_mono = None
        logger.info(f"Tracking {status.lower()} for {code}")
        self._notify()
        return True

    def complete(self, work_id: int) -> bool:
        """Clear the slot if it tracks `work_id`. Returns True if cleared."""
        return self._clear(work_id, STATUS_COMPLETED)

    def cancel(self, work_id: int) -> bool:
        """Clear the slot if it tracks `work_id`. Returns True if cleared."""
        return self._clear(work_id, STATUS_CANCELED)

    def snapshot(self) -> ProgressSnapshot:
        """Copy of the current projection, with remaining time refreshed"""
        if self._snapshot.active:
            self._recompute()
        s = self._snapshot
        return ProgressSnapshot(
            active=s.active,
            work_id=s.work_id,
            code=s.code,
            name=s.name,
            duration=s.duration,
            started_at=s.started_at,
            remaining=s.remaining,
            status=s.status,
        )
