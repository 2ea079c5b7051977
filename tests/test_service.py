"""Tests for the gateway service wiring."""

import asyncio
import json
from unittest.mock import patch

import pytest

from workline.common.config import (
    DeviceSettings,
    DispatchSettings,
    GatewayConfig,
    HealthSettings,
    ProgressSettings,
    StatusSettings,
)
from workline.common.exceptions import StoreError
from workline.common.models import EventKind, WorkState
from workline.services.device.link import DeviceLink, LinkEvent, LinkEventType
from workline.services.gateway.publisher import MemoryStatusSink
from workline.services.gateway.service import GatewayService


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def config(tmp_path, device_settings):
    return GatewayConfig(
        device=device_settings,
        dispatch=DispatchSettings(interval_s=0.02),
        progress=ProgressSettings(interval_s=0.02),
        status=StatusSettings(path=str(tmp_path / "device_status.json"), heartbeat_interval_s=0.05),
        health=HealthSettings(enabled=False),
    )


@pytest.fixture
def sink():
    return MemoryStatusSink()


@pytest.fixture
def service(config, store, serial_port, sink, clock):
    link = DeviceLink(config.device, opener=serial_port)
    return GatewayService(config, store=store, link=link, sink=sink, clock=clock)


class TestLinkEventHandling:
    """The single link event consumer."""

    @pytest.mark.asyncio
    async def test_device_line_reconciled(self, service, store, sink):
        item = store.create_item("LAV001", "Standard job", 30)

        handled = await service._handle_link_event(
            LinkEvent(LinkEventType.LINE_RECEIVED, port="/dev/ttyACM0", line=f"STARTED:{item.id}")
        )

        assert handled
        assert store.last_event().kind is EventKind.STARTED
        assert service.progress.current_work_id == item.id
        assert sink.last["current_work"]["work_id"] == item.id

    @pytest.mark.asyncio
    async def test_banner_and_noise_ignored(self, service, store):
        for line in ("==== READY ====", "\U0001F4CB menu", "booting"):
            assert not await service._handle_link_event(
                LinkEvent(LinkEventType.LINE_RECEIVED, line=line)
            )
        assert store.list_events() == []

    @pytest.mark.asyncio
    async def test_state_change_publishes(self, service, sink):
        service.link.state.mark_connected("/dev/ttyACM0")

        assert await service._handle_link_event(LinkEvent(LinkEventType.OPENED, port="/dev/ttyACM0"))
        assert sink.last["connected"] is True

        service.link.state.mark_disconnected()
        await service._handle_link_event(LinkEvent(LinkEventType.ERRORED, port="/dev/ttyACM0", error="EOF"))
        assert sink.last["connected"] is False


class TestHealthHandlers:
    """HTTP endpoint payloads."""

    @pytest.mark.asyncio
    async def test_status_handler(self, service, store):
        item = store.create_item("LAV001", "Standard job", 30)
        store.queue_item(item.id)
        store.append_event(item, EventKind.ACCEPTED, "accepted")

        response = await service._status_handler(None)
        body = json.loads(response.text)

        assert response.status == 200
        assert body["items"] == {"CONFIGURED": 0, "QUEUED": 1, "DISPATCHED": 0}
        assert body["last_activity"]["kind"] == "ACCEPTED"
        assert body["current_work"]["active"] is False

    @pytest.mark.asyncio
    async def test_status_handler_store_failure(self, service, store):
        with patch.object(store, "count_by_state", side_effect=StoreError("locked")):
            response = await service._status_handler(None)
        assert response.status == 503

    @pytest.mark.asyncio
    async def test_health_and_progress_handlers(self, service):
        health = json.loads((await service._health_handler(None)).text)
        assert health["service"] == "gateway"
        assert health["status"] == "unhealthy"
        assert health["link"]["connected"] is False

        progress = json.loads((await service._progress_handler(None)).text)
        assert progress["status"] == "WAITING"


class TestGatewayRun:
    """Start, dispatch, reconcile, stop."""

    @pytest.mark.asyncio
    async def test_round_trip_over_serial(self, service, store, serial_port, sink):
        item = store.create_item("LAV001", "Standard job", 30)
        runner = asyncio.create_task(service.start(install_signal_handlers=False))

        await wait_until(lambda: service.link.connected)
        store.queue_item(item.id)
        await wait_until(lambda: store.get_item(item.id).state is WorkState.DISPATCHED)

        payload = json.loads(bytes(serial_port.writer.buffer))
        assert payload["identificativo"] == "LAV001"
        assert store.get_item(item.id).state is WorkState.DISPATCHED
        assert store.last_event().note == "sent via serial"

        serial_port.reader.feed_data(f"ACCEPTED:{item.id}\nSTARTED:{item.id}\n".encode())
        await wait_until(lambda: service.progress.active)

        serial_port.reader.feed_data(f"COMPLETED:{item.id}\n".encode())
        await wait_until(
            lambda: store.last_event().kind is EventKind.COMPLETED and not service.progress.active
        )

        service.request_shutdown()
        await asyncio.wait_for(runner, 1.0)
        await service.stop()

        assert sink.last["connected"] is False
        assert not service.link.connected
        assert store.get_item(item.id).state is WorkState.DISPATCHED

    @pytest.mark.asyncio
    async def test_simulation_mode_dispatch(self, config, store, sink, tmp_path):
        config.device = DeviceSettings(simulate=True)
        service = GatewayService(config, store=store, sink=sink)
        item = store.create_item("TEST01", "Short test", 5)
        store.queue_item(item.id)

        runner = asyncio.create_task(service.start(install_signal_handlers=False))
        await wait_until(lambda: store.get_item(item.id).state is WorkState.DISPATCHED)

        assert store.last_event().note == "simulated (device not connected)"
        await wait_until(lambda: sink.last is not None and sink.last["simulation"] is True)

        service.request_shutdown()
        await asyncio.wait_for(runner, 1.0)
        await service.stop()

    @pytest.mark.asyncio
    async def test_store_unreachable_is_fatal(self, service, store):
        with patch.object(store, "ping", side_effect=StoreError("unable to open", recoverable=False)):
            with pytest.raises(StoreError):
                await service.start(install_signal_handlers=False)
        assert not service.is_running
