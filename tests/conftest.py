"""Shared pytest fixtures for workline tests."""

import asyncio

import pytest

from workline.common.config import DeviceSettings
from workline.services.device.link import LinkState
from workline.services.store.local_db import WorkStore


@pytest.fixture
def store(tmp_path):
    """Work store backed by a temporary SQLite file."""
    return WorkStore(tmp_path / "workline.db")


@pytest.fixture
def seeded_store(store):
    """Work store with the sample items."""
    store.seed_samples()
    return store


class FakeClock:
    """Manually advanced clock (stands in for both monotonic and epoch time)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class FakeLink:
    """Stand-in for DeviceLink as seen by the dispatcher."""

    def __init__(self, connected: bool = True, send_ok: bool = True):
        self.state = LinkState()
        if connected:
            self.state.mark_connected("/dev/ttyACM0")
        self.send_ok = send_ok
        self.sent: list[bytes] = []

    @property
    def connected(self) -> bool:
        return self.state.connected

    async def send(self, data: bytes) -> bool:
        self.sent.append(data)
        return self.send_ok


@pytest.fixture
def fake_link():
    return FakeLink()


class FakeSerialWriter:
    """Minimal StreamWriter replacement recording written bytes."""

    def __init__(self, fail_on_drain: bool = False):
        self.buffer = bytearray()
        self.closed = False
        self.fail_on_drain = fail_on_drain

    def write(self, data: bytes) -> None:
        self.buffer.extend(data)

    async def drain(self) -> None:
        if self.fail_on_drain:
            raise OSError("write failed")

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


class FakeSerialPort:
    """Opener for DeviceLink returning an in-memory reader/writer pair."""

    def __init__(self):
        self.reader: asyncio.StreamReader | None = None
        self.writer: FakeSerialWriter | None = None
        self.open_calls: list[dict] = []
        self.fail_with: Exception | None = None

    async def __call__(self, **kwargs):
        self.open_calls.append(kwargs)
        if self.fail_with is not None:
            raise self.fail_with
        self.reader = asyncio.StreamReader()
        self.writer = FakeSerialWriter()
        return self.reader, self.writer


@pytest.fixture
def serial_port():
    return FakeSerialPort()


@pytest.fixture
def device_settings():
    """Link settings with no stabilization wait and a short reconnect delay."""
    return DeviceSettings(
        port="/dev/ttyACM0",
        stabilize_s=0,
        reconnect_delay_s=0.05,
        open_timeout_s=0.5,
        write_timeout_s=0.5,
    )


async def drain_events(queue: asyncio.Queue) -> list:
    """Pop everything currently in a queue."""
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events
