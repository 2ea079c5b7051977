"""
Device Link Manager

Owns the single serial connection to the device:
- Discovery (or a pinned port) and open with timeout
- Stabilization delay after open (the board resets and prints noise)
- Line reader task
- Fixed-delay reconnection after open failures and link errors
- Simulation mode when no device is attached

Link activity is reported as LinkEvents on an asyncio.Queue, consumed
by a single routine in the gateway service.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

import serial
import serial_asyncio

from workline.common.config import DeviceSettings
from workline.common.exceptions import CommunicationError
from workline.common.logging_setup import get_service_logger
from workline.common.timestamp import utc_now

from .discovery import discover_port

logger = get_service_logger("device.link")

Opener = Callable[..., Awaitable[tuple[asyncio.StreamReader, Any]]]


class LinkEventType(str, Enum):
    OPENED = "opened"
    CLOSED = "closed"
    ERRORED = "errored"
    LINE_RECEIVED = "line_received"


@dataclass(frozen=True)
class LinkEvent:
    type: LinkEventType
    port: str | None = None
    line: str | None = None
    error: str | None = None


@dataclass
class LinkState:
    """Connection state read by the dispatcher and the status publisher"""
    connected: bool = False
    port: str | None = None
    simulation: bool = False
    updated_at: datetime = field(default_factory=utc_now)

    def mark_connected(self, port: str) -> None:
        self.connected = True
        self.port = port
        self.simulation = False
        self.updated_at = utc_now()

    def mark_disconnected(self, simulation: bool = False) -> None:
        self.connected = False
        self.port = None
        self.simulation = simulation
        self.updated_at = utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "port": self.port,
            "simulation": self.simulation,
            "updated_at": self.updated_at.isoformat(),
        }


class DeviceLink:
    """
    Serial link to the device.

    Attributes:
        state: shared LinkState (mutated only here)
        events: queue receiving LinkEvents
    """

    def __init__(
        self,
        settings: DeviceSettings,
        state: LinkState | None = None,
        events: asyncio.Queue | None = None,
        discover: Callable[[], str | None] = discover_port,
        opener: Opener | None = None,
    ):
        self.settings = settings
        self.state = state or LinkState()
        self.events: asyncio.Queue = events if events is not None else asyncio.Queue()

        self._discover = discover
        self._opener = opener or serial_asyncio.open_serial_connection

        self._reader: asyncio.StreamReader | None = None
        self._writer: Any = None
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._write_lock = asyncio.Lock()
        self._closing = False

        self.connect_attempts = 0

    @property
    def connected(self) -> bool:
        return self.state.connected and self._writer is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def _emit(self, event: LinkEvent) -> None:
        self.events.put_nowait(event)

    async def connect(self) -> bool:
        """
        Find and open the device.

        Returns:
            True if the link is usable, False in simulation mode or after
            a failed open (which schedules a reconnection).
        """
        self._closing = False
        self.connect_attempts += 1

        if self.settings.simulate:
            logger.info("Simulation mode forced by configuration")
            self._enter_simulation()
            return False

        port = self.settings.port
        if port:
            logger.info(f"Using configured device port {port}")
        else:
            logger.info("Searching for device...")
            loop = asyncio.get_running_loop()
            port = await loop.run_in_executor(None, self._discover)

        if not port:
            logger.info("Device not found - simulation mode active")
            self._enter_simulation()
            return False

        try:
            await self._open(port)
        except CommunicationError as e:
            logger.error(str(e), extra={"port": port})
            self.state.mark_disconnected()
            self._emit(LinkEvent(LinkEventType.ERRORED, port=port, error=e.message))
            self._schedule_reconnect()
            return False

        if self._closing:
            # close() ran during the stabilization delay
            await self._close_transport()
            return False

        self.state.mark_connected(port)
        self._reader_task = asyncio.create_task(self._read_loop(port), name="device-reader")
        logger.info(f"Device connected on {port}", extra={"port": port})
        self._emit(LinkEvent(LinkEventType.OPENED, port=port))
        return True

    async def _open(self, port: str) -> None:
        """Open the port within the timeout, then wait for the board to settle"""
        try:
            self._reader, self._writer = await asyncio.wait_for(
                self._opener(url=port, baudrate=self.settings.baudrate),
                timeout=self.settings.open_timeout_s,
            )
        except asyncio.TimeoutError:
            raise CommunicationError(
                f"timed out opening {port} after {self.settings.open_timeout_s:.0f}s",
                port=port,
            )
        except (serial.SerialException, OSError, ValueError) as e:
            raise CommunicationError(f"cannot open {port}: {e}", port=port)

        if self.settings.stabilize_s > 0:
            await asyncio.sleep(self.settings.stabilize_s)

    def _enter_simulation(self) -> None:
        self.state.mark_disconnected(simulation=True)
        self._emit(LinkEvent(LinkEventType.CLOSED, error="no device"))

    async def _read_loop(self, port: str) -> None:
        """Forward device lines as LINE_RECEIVED events until the link fails"""
        try:
            while True:
                raw = await self._reader.readline()
                if not raw:
                    raise CommunicationError("device closed the link", port=port)
                line = raw.decode("utf-8", errors="replace").strip()
                if line:
                    self._emit(LinkEvent(LinkEventType.LINE_RECEIVED, port=port, line=line))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._reader_task = None
            await self._handle_link_error(port, e)

    async def _handle_link_error(self, port: str, error: Exception) -> None:
        logger.error(f"Device link error on {port}: {error}", extra={"port": port})
        await self._close_transport()
        self.state.mark_disconnected()
        self._emit(LinkEvent(LinkEventType.ERRORED, port=port, error=str(error)))
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        """Schedule one reconnection attempt unless one is already pending"""
        if self._closing:
            return
        # A failing attempt reschedules from inside the reconnect task itself
        if self.reconnect_pending and self._reconnect_task is not asyncio.current_task():
            return
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(self.settings.reconnect_delay_s),
            name="device-reconnect",
        )

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._closing:
            return
        logger.info("Attempting device reconnection")
        await self.connect()

    async def send(self, data: bytes) -> bool:
        """
        Write bytes to the device.

        Returns:
            False if not connected or the write failed (never raises).
        """
        if not self.connected:
            return False

        try:
            async with self._write_lock:
                self._writer.write(data)
                await asyncio.wait_for(
                    self._writer.drain(),
                    timeout=self.settings.write_timeout_s,
                )
            return True
        except Exception as e:
            logger.error(f"Write to {self.state.port} failed: {e}", extra={"port": self.state.port})
            return False

    async def close(self) -> None:
        """Caller-initiated shutdown: no automatic reconnection"""
        self._closing = True

        if self._reconnect_task:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        was_connected = self.state.connected
        port = self.state.port
        await self._close_transport()

        if was_connected:
            self.state.mark_disconnected()
            logger.info(f"Device disconnected from {port}", extra={"port": port})
            self._emit(LinkEvent(LinkEventType.CLOSED, port=port))

    async def _close_transport(self) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except Exception as e:
            logger.debug(f"Ignoring error while closing serial port: {e}")
