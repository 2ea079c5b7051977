"""
Event Reconciler

Applies device events to the work store and the progress tracker.

    ACCEPTED   log only
    STARTED    log, start progress tracking
    COMPLETED  log, clear progress (item stays DISPATCHED)
    REJECTED   log, item back to CONFIGURED, clear progress
    CANCELED   log, item back to CONFIGURED, clear progress
"""

import asyncio

from workline.common.exceptions import StoreError
from workline.common.logging_setup import get_service_logger, log_work_event
from workline.common.models import RESETTING_EVENTS, EventKind, WorkState
from workline.services.device.codec import DeviceEvent
from workline.services.store.local_db import WorkStore

from .progress import ProgressTracker

logger = get_service_logger("gateway.reconciler")

EVENT_NOTES = {
    EventKind.ACCEPTED: "accepted by operator (button 1)",
    EventKind.STARTED: "started, countdown begun (button 2)",
    EventKind.COMPLETED: "completed successfully",
    EventKind.REJECTED: "rejected by operator (button 3)",
    EventKind.CANCELED: "canceled during countdown (button 3)",
}


class EventReconciler:
    """Reconciles device events into durable state"""

    def __init__(
        self,
        store: WorkStore,
        progress: ProgressTracker,
        lock: asyncio.Lock,
    ):
        self.store = store
        self.progress = progress
        self.lock = lock

        self.applied_count = 0
        self.dropped_count = 0

    async def apply(self, event: DeviceEvent) -> bool:
        """
        Apply one device event.

        Returns:
            True if the event was recorded; False for an unknown identity
            or a store failure (the event is dropped, not retried).
        """
        async with self.lock:
            try:
                item = await self.store.run(self.store.find_item, event.identity)
                if item is None:
                    logger.warning(
                        f"{event.kind.value} for unknown work item '{event.identity}' ignored",
                        extra={"identity": event.identity},
                    )
                    self.dropped_count += 1
                    return False

                note = EVENT_NOTES.get(event.kind)
                await self.store.run(self.store.append_event, item, event.kind, note)
                if event.kind in RESETTING_EVENTS:
                    await self.store.run(self.store.set_state, item.id, WorkState.CONFIGURED)
            except StoreError as e:
                logger.error(f"Dropping {event.kind.value}:{event.identity}: {e.message}")
                self.dropped_count += 1
                return False

            if event.kind is EventKind.STARTED:
                self.progress.start(item)
            elif event.kind is EventKind.COMPLETED:
                self.progress.complete(item.id)
            elif event.kind in RESETTING_EVENTS:
                self.progress.cancel(item.id)

        self.applied_count += 1
        log_work_event(logger, item.id, item.code, event.kind.value, note)
        return True
