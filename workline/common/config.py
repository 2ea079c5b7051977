"""
Configuration Dataclasses

Type-safe configuration structures for the gateway.
Loaded from a YAML file (see config.example.yaml).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

DEFAULT_BANNER_MARKERS = ("=", "\U0001F527", "\U0001F4CB")


@dataclass
class DatabaseSettings:
    """Work store location"""
    path: str = "data/workline.db"


@dataclass
class DeviceSettings:
    """Serial link settings"""
    port: str | None = None  # Pin a port and skip discovery
    simulate: bool = False  # Never open a port
    baudrate: int = 9600
    open_timeout_s: float = 3.0
    stabilize_s: float = 2.0  # Board resets on open and prints noise
    reconnect_delay_s: float = 5.0
    write_timeout_s: float = 2.0
    banner_markers: list[str] = field(default_factory=lambda: list(DEFAULT_BANNER_MARKERS))


@dataclass
class DispatchSettings:
    """Dispatch loop settings"""
    interval_s: float = 1.0
    advance_on_send_failure: bool = True


@dataclass
class ProgressSettings:
    """Progress tracker tick"""
    interval_s: float = 1.0


@dataclass
class StatusSettings:
    """Shared status artifact"""
    path: str = "data/device_status.json"
    heartbeat_interval_s: float = 5.0
    stale_after_s: float = 10.0


@dataclass
class HealthSettings:
    """Local health/status HTTP server"""
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8090


@dataclass
class LoggingSettings:
    """Log output"""
    level: str = "INFO"
    json: bool = True


@dataclass
class GatewayConfig:
    """Complete gateway configuration"""
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    device: DeviceSettings = field(default_factory=DeviceSettings)
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    progress: ProgressSettings = field(default_factory=ProgressSettings)
    status: StatusSettings = field(default_factory=StatusSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _section(data: dict, name: str) -> dict:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"section '{name}' must be a mapping")
    return value


def _positive(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return number


def load_gateway_config(data: dict | None) -> GatewayConfig:
    """Load GatewayConfig from dictionary (e.g., parsed YAML)"""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("configuration root must be a mapping")

    database_data = _section(data, "database")
    database = DatabaseSettings(
        path=str(database_data.get("path", DatabaseSettings.path)),
    )

    device_data = _section(data, "device")
    markers = device_data.get("banner_markers", list(DEFAULT_BANNER_MARKERS))
    if not isinstance(markers, list) or not all(isinstance(m, str) and m for m in markers):
        raise ConfigError("device.banner_markers must be a list of non-empty strings")
    device = DeviceSettings(
        port=device_data.get("port") or None,
        simulate=bool(device_data.get("simulate", False)),
        baudrate=int(_positive(device_data.get("baudrate", 9600), "device.baudrate")),
        open_timeout_s=_positive(device_data.get("open_timeout_s", 3.0), "device.open_timeout_s"),
        stabilize_s=float(device_data.get("stabilize_s", 2.0)),
        reconnect_delay_s=_positive(device_data.get("reconnect_delay_s", 5.0), "device.reconnect_delay_s"),
        write_timeout_s=_positive(device_data.get("write_timeout_s", 2.0), "device.write_timeout_s"),
        banner_markers=markers,
    )
    if device.stabilize_s < 0:
        raise ConfigError("device.stabilize_s must not be negative")

    dispatch_data = _section(data, "dispatch")
    dispatch = DispatchSettings(
        interval_s=_positive(dispatch_data.get("interval_s", 1.0), "dispatch.interval_s"),
        advance_on_send_failure=bool(dispatch_data.get("advance_on_send_failure", True)),
    )

    progress_data = _section(data, "progress")
    progress = ProgressSettings(
        interval_s=_positive(progress_data.get("interval_s", 1.0), "progress.interval_s"),
    )

    status_data = _section(data, "status")
    status = StatusSettings(
        path=str(status_data.get("path", StatusSettings.path)),
        heartbeat_interval_s=_positive(
            status_data.get("heartbeat_interval_s", 5.0), "status.heartbeat_interval_s"
        ),
        stale_after_s=_positive(status_data.get("stale_after_s", 10.0), "status.stale_after_s"),
    )

    health_data = _section(data, "health")
    health = HealthSettings(
        enabled=bool(health_data.get("enabled", True)),
        host=str(health_data.get("host", "127.0.0.1")),
        port=int(_positive(health_data.get("port", 8090), "health.port")),
    )

    logging_data = _section(data, "logging")
    level = str(logging_data.get("level", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(f"logging.level must be a standard level name, got {level!r}")
    logging_settings = LoggingSettings(
        level=level,
        json=bool(logging_data.get("json", True)),
    )

    return GatewayConfig(
        database=database,
        device=device,
        dispatch=dispatch,
        progress=progress,
        status=status,
        health=health,
        logging=logging_settings,
    )


def load_config_file(config_path: str | Path) -> GatewayConfig:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigError: file missing, unreadable, or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read {path}: {e}")

    return load_gateway_config(data)
