"""
Gateway Service - Device dispatch and event reconciliation

Responsible for:
- Wiring the store, device link, dispatcher, reconciler and publisher
- Running the dispatch, progress and status ticks
- Consuming link events (state changes and device lines)
- Serving /health, /status and /progress
- Graceful shutdown on SIGINT/SIGTERM
"""

import asyncio
import signal
import time
from datetime import datetime, timezone
from typing import Callable

from aiohttp import web

from workline.common.config import GatewayConfig
from workline.common.exceptions import StoreError
from workline.common.logging_setup import get_service_logger, log_device_line
from workline.common.scheduler import SchedulerGroup
from workline.services.device.codec import parse_line
from workline.services.device.link import DeviceLink, LinkEvent, LinkEventType
from workline.services.store.local_db import WorkStore

from .dispatcher import Dispatcher
from .progress import ProgressTracker
from .publisher import FileStatusSink, StatusPublisher, StatusSink
from .reconciler import EventReconciler

logger = get_service_logger("gateway")


class GatewayService:
    """
    Device dispatch and protocol gateway.

    Components (store, link, sink) may be injected; by default they are
    built from the configuration.
    """

    def __init__(
        self,
        config: GatewayConfig,
        store: WorkStore | None = None,
        link: DeviceLink | None = None,
        sink: StatusSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.config = config

        self.store = store or WorkStore(config.database.path)
        self.link = link or DeviceLink(config.device)
        self.events = self.link.events

        # Shared by dispatch and reconciliation
        self.lock = asyncio.Lock()

        self.progress = ProgressTracker(clock=clock, wall_clock=wall_clock)
        self.publisher = StatusPublisher(
            self.link.state,
            self.progress,
            sink or FileStatusSink(config.status.path),
        )
        self.progress.set_listener(self.publisher.publish)

        self.dispatcher = Dispatcher(self.store, self.link, self.lock, config.dispatch)
        self.reconciler = EventReconciler(self.store, self.progress, self.lock)
        self.schedulers = SchedulerGroup()

        self._start_time = datetime.now(timezone.utc)

        # Health server
        self._health_app: web.Application | None = None
        self._health_runner: web.AppRunner | None = None

        # State
        self._running = False
        self._consumer_task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, install_signal_handlers: bool = True) -> None:
        """
        Start the gateway and run until shutdown is requested.

        Raises:
            StoreError: work store unreachable (not recoverable)
        """
        logger.info("Starting Gateway Service")

        try:
            await self.store.run(self.store.ping)
        except StoreError as e:
            logger.critical(f"Work store unavailable: {e.message}")
            raise

        self._running = True
        self._start_time = datetime.now(timezone.utc)

        # Initial status document, then consume link events before connecting
        self.publisher.publish()
        self._consumer_task = asyncio.create_task(
            self._consume_link_events(), name="link-events"
        )

        await self.link.connect()

        self.schedulers.add("dispatch", self.config.dispatch.interval_s, self.dispatcher.tick)
        self.schedulers.add("progress", self.config.progress.interval_s, self._progress_tick)
        self.schedulers.add(
            "status", self.config.status.heartbeat_interval_s, self.publisher.heartbeat
        )
        await self.schedulers.start_all()

        if self.config.health.enabled:
            await self._start_health_server()

        mode = "connected" if self.link.connected else "simulation"
        logger.info(
            f"Gateway Service started ({mode})",
            extra={"port": self.link.state.port, "simulation": self.link.state.simulation},
        )

        if install_signal_handlers:
            self._setup_signal_handlers()

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the gateway service"""
        logger.info("Stopping Gateway Service")

        self._running = False
        self.schedulers.stop_all()

        self.publisher.publish_disconnected()

        await self.link.close()

        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        await self._stop_health_server()

        logger.info("Gateway Service stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def _progress_tick(self) -> None:
        self.progress.tick()

    # -------------------------------------------------------------------
    # Link events
    # -------------------------------------------------------------------

    async def _consume_link_events(self) -> None:
        """Single consumer for everything the device link reports"""
        while True:
            event = await self.events.get()
            try:
                await self._handle_link_event(event)
            except Exception as e:
                logger.error(f"Link event {event.type.value} failed: {e}", exc_info=True)

    async def _handle_link_event(self, event: LinkEvent) -> bool:
        """
        Handle one link event.

        Returns:
            True if a device line was reconciled or a status was written.
        """
        if event.type is LinkEventType.LINE_RECEIVED:
            log_device_line(logger, event.port, event.line)
            device_event = parse_line(event.line or "", self.config.device.banner_markers)
            if device_event is None:
                return False
            return await self.reconciler.apply(device_event)

        if event.type is LinkEventType.ERRORED:
            logger.warning(f"Device link error: {event.error}", extra={"port": event.port})
        else:
            logger.info(f"Device link {event.type.value}", extra={"port": event.port})

        return self.publisher.publish()

    # -------------------------------------------------------------------
    # Health server
    # -------------------------------------------------------------------

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        host = self.config.health.host
        port = self.config.health.port

        self._health_app = web.Application()
        self._health_app.router.add_get("/health", self._health_handler)
        self._health_app.router.add_get("/status", self._status_handler)
        self._health_app.router.add_get("/progress", self._progress_handler)

        self._health_runner = web.AppRunner(self._health_app)
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, host, port)
        await site.start()

        logger.info(f"Health server started on {host}:{port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()

        return web.json_response({
            "status": "healthy" if self._running else "unhealthy",
            "service": "gateway",
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "link": self.link.state.to_dict(),
            "reconnect_pending": self.link.reconnect_pending,
            "schedulers": self.schedulers.get_stats(),
            "dispatched": self.dispatcher.dispatch_count,
            "events_applied": self.reconciler.applied_count,
            "events_dropped": self.reconciler.dropped_count,
            "status_writes": self.publisher.publish_count,
            "status_failures": self.publisher.failure_count,
        })

    async def _status_handler(self, request: web.Request) -> web.Response:
        """Link status, per-state item counts and the most recent activity"""
        try:
            counts = await self.store.run(self.store.count_by_state)
            last_event = await self.store.run(self.store.last_event)
        except StoreError as e:
            return web.json_response({"error": e.message}, status=503)

        state = self.link.state
        return web.json_response({
            "connected": state.connected,
            "port": state.port,
            "simulation": state.simulation,
            "items": counts,
            "last_activity": last_event.to_dict() if last_event else None,
            "current_work": self.progress.snapshot().to_dict(),
        })

    async def _progress_handler(self, request: web.Request) -> web.Response:
        """Current progress snapshot"""
        return web.json_response(self.progress.snapshot().to_dict())
