"""Tests for device event reconciliation."""

import asyncio
from unittest.mock import patch

import pytest

from conftest import FakeLink
from workline.common.exceptions import StoreError
from workline.common.models import EventKind, WorkState
from workline.services.device.codec import parse_line
from workline.services.gateway.dispatcher import Dispatcher
from workline.services.gateway.progress import ProgressTracker
from workline.services.gateway.reconciler import EventReconciler


@pytest.fixture
def tracker(clock):
    return ProgressTracker(clock=clock)


@pytest.fixture
def reconciler(store, tracker):
    return EventReconciler(store, tracker, asyncio.Lock())


def dispatched(store, code="LAV001", name="Standard job", duration=30):
    item = store.create_item(code, name, duration)
    store.queue_item(item.id)
    store.mark_dispatched(store.get_item(item.id), "sent via serial")
    return store.get_item(item.id)


class TestEventReconciler:
    """Device events applied to store and progress."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, store, tracker, clock):
        lock = asyncio.Lock()
        link = FakeLink(connected=True)
        dispatcher = Dispatcher(store, link, lock)
        reconciler = EventReconciler(store, tracker, lock)

        item = store.create_item("LAV001", "Standard job", 30)
        store.queue_item(item.id)
        await dispatcher.tick()
        assert store.get_item(item.id).state is WorkState.DISPATCHED

        assert await reconciler.apply(parse_line(f"ACCEPTED:{item.id}"))
        assert await reconciler.apply(parse_line(f"STARTED:{item.id}"))
        assert tracker.snapshot().remaining == 30

        clock.advance(10)
        tracker.tick()
        assert tracker.snapshot().remaining == 20

        assert await reconciler.apply(parse_line(f"COMPLETED:{item.id}"))
        assert not tracker.active
        assert store.get_item(item.id).state is WorkState.DISPATCHED

        kinds = [e.kind for e in reversed(store.list_events(work_id=item.id))]
        assert kinds == [
            EventKind.DISPATCHED,
            EventKind.ACCEPTED,
            EventKind.STARTED,
            EventKind.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_rejected_returns_item_to_configured(self, store, tracker, reconciler):
        item = dispatched(store)
        await reconciler.apply(parse_line(f"STARTED:{item.id}"))

        assert await reconciler.apply(parse_line(f"REJECTED:{item.id}"))

        assert store.get_item(item.id).state is WorkState.CONFIGURED
        assert not tracker.active
        assert tracker.snapshot().status == "CANCELED"
        rejected = [e for e in store.list_events() if e.kind is EventKind.REJECTED]
        assert len(rejected) == 1
        assert store.queue_item(item.id)

    @pytest.mark.asyncio
    async def test_canceled_returns_item_to_configured(self, store, tracker, reconciler):
        item = dispatched(store)
        await reconciler.apply(parse_line(f"STARTED:{item.id}"))

        assert await reconciler.apply(parse_line(f"CANCELLATA:{item.id}"))

        assert store.get_item(item.id).state is WorkState.CONFIGURED
        assert store.last_event().kind is EventKind.CANCELED
        assert not tracker.active

    @pytest.mark.asyncio
    async def test_identity_by_code(self, store, tracker, reconciler):
        item = dispatched(store, code="PROD01")
        assert await reconciler.apply(parse_line("STARTED:PROD01"))
        assert tracker.current_work_id == item.id

    @pytest.mark.asyncio
    async def test_unknown_identity(self, store, tracker, reconciler):
        item = dispatched(store)
        events_before = store.list_events()

        assert not await reconciler.apply(parse_line("STARTED:999"))
        assert not await reconciler.apply(parse_line("COMPLETED:NOPE"))

        assert store.list_events() == events_before
        assert store.get_item(item.id).state is WorkState.DISPATCHED
        assert not tracker.active
        assert reconciler.dropped_count == 2

    @pytest.mark.asyncio
    async def test_completion_for_other_item_keeps_progress(self, store, tracker, reconciler):
        a = dispatched(store, code="A")
        b = dispatched(store, code="B")
        await reconciler.apply(parse_line(f"STARTED:{a.id}"))

        await reconciler.apply(parse_line(f"COMPLETED:{b.id}"))

        assert tracker.current_work_id == a.id

    @pytest.mark.asyncio
    async def test_replayed_terminal_event(self, store, tracker, reconciler):
        item = dispatched(store)
        await reconciler.apply(parse_line(f"STARTED:{item.id}"))
        await reconciler.apply(parse_line(f"COMPLETED:{item.id}"))
        await reconciler.apply(parse_line(f"COMPLETED:{item.id}"))

        assert not tracker.active
        assert store.get_item(item.id).state is WorkState.DISPATCHED

    @pytest.mark.asyncio
    async def test_replayed_rejection_keeps_item_configured(self, store, tracker, reconciler):
        item = dispatched(store)
        assert await reconciler.apply(parse_line(f"REJECTED:{item.id}"))
        assert await reconciler.apply(parse_line(f"REJECTED:{item.id}"))

        assert not tracker.active
        assert store.get_item(item.id).state is WorkState.CONFIGURED
        kinds = [e.kind for e in reversed(store.list_events(work_id=item.id))]
        assert kinds == [EventKind.DISPATCHED, EventKind.REJECTED, EventKind.REJECTED]
        assert store.queue_item(item.id)

    @pytest.mark.asyncio
    async def test_store_failure_drops_event(self, store, tracker, reconciler):
        item = dispatched(store)

        with patch.object(store, "append_event", side_effect=StoreError("database is locked")):
            assert not await reconciler.apply(parse_line(f"STARTED:{item.id}"))

        assert not tracker.active
        assert reconciler.applied_count == 0
