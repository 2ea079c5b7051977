"""
Status Publisher

Externalizes link state and the progress snapshot to a sink. The
production sink is the shared status file read by other processes.
Publishing is best-effort: failures are logged and never propagate.
"""

from pathlib import Path
from typing import Any, Protocol

from workline.common.logging_setup import get_service_logger
from workline.common.state import StatusFile
from workline.common.timestamp import utc_now_iso
from workline.services.device.link import LinkState

from .progress import ProgressTracker

logger = get_service_logger("gateway.publisher")


class StatusSink(Protocol):
    def publish(self, document: dict[str, Any]) -> None:
        ...


class FileStatusSink:
    """Rewrites the shared status file on every publish"""

    def __init__(self, path: str | Path):
        self.file = StatusFile(path)

    @property
    def path(self) -> Path:
        return self.file.path

    def publish(self, document: dict[str, Any]) -> None:
        self.file.write(document)


class MemoryStatusSink:
    """Keeps published documents in memory"""

    def __init__(self):
        self.documents: list[dict[str, Any]] = []

    @property
    def last(self) -> dict[str, Any] | None:
        return self.documents[-1] if self.documents else None

    def publish(self, document: dict[str, Any]) -> None:
        self.documents.append(document)


class NullStatusSink:
    def publish(self, document: dict[str, Any]) -> None:
        pass


class StatusPublisher:
    """Builds the status document and hands it to the sink"""

    def __init__(
        self,
        link_state: LinkState,
        progress: ProgressTracker,
        sink: StatusSink,
    ):
        self.link_state = link_state
        self.progress = progress
        self.sink = sink

        self.publish_count = 0
        self.failure_count = 0

    def build(self, connected: bool | None = None) -> dict[str, Any]:
        state = self.link_state
        is_connected = state.connected if connected is None else connected
        return {
            "connected": is_connected,
            "port": state.port if is_connected else None,
            "simulation": state.simulation,
            "timestamp": utc_now_iso(),
            "current_work": self.progress.snapshot().to_dict(),
        }

    def publish(self) -> bool:
        """Write the current status. Returns False if the sink failed."""
        return self._write(self.build())

    def publish_disconnected(self) -> bool:
        """Write a disconnected status (used at shutdown)"""
        return self._write(self.build(connected=False))

    async def heartbeat(self) -> None:
        """Scheduled heartbeat callback"""
        self.publish()

    def _write(self, document: dict[str, Any]) -> bool:
        try:
            self.sink.publish(document)
        except Exception as e:
            self.failure_count += 1
            logger.error(f"Status publish failed: {e}")
            return False
        self.publish_count += 1
        return True
