"""
Dispatch Loop

Once per tick: take the oldest QUEUED work item, send it to the device
if the link is up, and record the dispatch. At most one item per tick.
"""

import asyncio
from enum import Enum

from workline.common.config import DispatchSettings
from workline.common.exceptions import StoreError
from workline.common.logging_setup import get_service_logger, log_device_send, log_work_event
from workline.common.models import EventKind
from workline.services.device.codec import encode_work_item
from workline.services.device.link import DeviceLink
from workline.services.store.local_db import WorkStore

logger = get_service_logger("gateway.dispatcher")


class DispatchOutcome(str, Enum):
    SENT = "SENT"
    SIMULATED = "SIMULATED"
    SEND_FAILED = "SEND_FAILED"


DISPATCH_NOTES = {
    DispatchOutcome.SENT: "sent via serial",
    DispatchOutcome.SIMULATED: "simulated (device not connected)",
    DispatchOutcome.SEND_FAILED: "serial write failed",
}


class Dispatcher:
    """
    Polls the store for queued work and hands it to the device link.

    The lock is shared with the event reconciler; both do store
    read-modify-write through executor threads.
    """

    def __init__(
        self,
        store: WorkStore,
        link: DeviceLink,
        lock: asyncio.Lock,
        settings: DispatchSettings | None = None,
    ):
        self.store = store
        self.link = link
        self.lock = lock
        self.settings = settings or DispatchSettings()

        self.dispatch_count = 0

    async def tick(self) -> DispatchOutcome | None:
        """
        Dispatch at most one queued item.

        Returns:
            The outcome, or None if nothing was dispatched (empty queue,
            store failure).
        """
        async with self.lock:
            try:
                item = await self.store.run(self.store.next_queued)
            except StoreError as e:
                logger.error(f"Queue poll failed: {e.message}")
                return None

            if item is None:
                return None

            logger.info(f"Dispatching work item {item.code} - {item.name} ({item.duration}s)")

            if self.link.connected:
                port = self.link.state.port
                sent = await self.link.send(encode_work_item(item))
                log_device_send(logger, port, item.id, item.code, success=sent)
                outcome = DispatchOutcome.SENT if sent else DispatchOutcome.SEND_FAILED
            else:
                logger.info(f"Simulation: {item.code} not transmitted (device not connected)")
                outcome = DispatchOutcome.SIMULATED

            if outcome is DispatchOutcome.SEND_FAILED and not self.settings.advance_on_send_failure:
                logger.warning(f"{item.code} left QUEUED after failed write; retrying next tick")
                return outcome

            note = DISPATCH_NOTES[outcome]
            try:
                await self.store.run(self.store.mark_dispatched, item, note)
            except StoreError as e:
                logger.error(f"Recording dispatch of {item.code} failed: {e.message}")
                return None

        self.dispatch_count += 1
        log_work_event(logger, item.id, item.code, EventKind.DISPATCHED.value, note)
        return outcome
