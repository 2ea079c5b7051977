"""
Shared Status File

File-based state sharing between the gateway and unrelated processes
(operator CLI, dashboards). The gateway rewrites the whole document on
every publish; readers never see a partially written file because the
write goes to a temp file that is then renamed over the target.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from .timestamp import age_seconds

# Consumers treat an older document as disconnected regardless of its flag
DEFAULT_STALE_AFTER_S = 10.0


class StatusFile:
    """A JSON document rewritten wholesale on every write"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def write(self, data: dict[str, Any]) -> None:
        """
        Atomically replace the file with `data` serialized as JSON.

        Raises:
            OSError: directory not writable, disk full, ...
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(self.path.name + ".tmp")

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        temp_path.replace(self.path)

    def read(self) -> dict[str, Any]:
        """Read the document, or an empty dict if missing or corrupt"""
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError):
            return {}

        return data if isinstance(data, dict) else {}


def read_device_status(
    path: str | Path,
    stale_after_s: float = DEFAULT_STALE_AFTER_S,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Read the published device status the way consumers must interpret it.

    A document whose timestamp is missing or more than `stale_after_s` old
    is reported as disconnected with no port.
    """
    status = StatusFile(path).read()
    if not status:
        return {
            "connected": False,
            "port": None,
            "simulation": False,
            "last_update": None,
            "stale": True,
            "current_work": None,
        }

    age = age_seconds(status.get("timestamp"), now)
    stale = age is None or age > stale_after_s

    return {
        "connected": bool(status.get("connected")) and not stale,
        "port": None if stale else status.get("port"),
        "simulation": bool(status.get("simulation", False)),
        "last_update": status.get("timestamp"),
        "stale": stale,
        "current_work": status.get("current_work"),
    }
