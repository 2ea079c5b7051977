"""
Common Utilities

Shared modules used across all services:
- state.py - Shared status file
- config.py - Configuration dataclasses
- models.py - Work item / work event records
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Periodic tick scheduler
- timestamp.py - UTC timestamp helpers
"""

from .state import StatusFile, read_device_status
from .config import (
    GatewayConfig,
    DatabaseSettings,
    DeviceSettings,
    DispatchSettings,
    ProgressSettings,
    StatusSettings,
    HealthSettings,
    LoggingSettings,
    load_gateway_config,
    load_config_file,
)
from .models import WorkState, EventKind, WorkItem, WorkEvent
from .exceptions import (
    WorklineError,
    ConfigError,
    DeviceError,
    CommunicationError,
    ProtocolError,
    StoreError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    reconfigure_service_loggers,
    set_service_log_level,
    log_device_send,
    log_device_line,
    log_work_event,
)
from .scheduler import ScheduledLoop, SchedulerGroup

__all__ = [
    # State
    "StatusFile",
    "read_device_status",
    # Config
    "GatewayConfig",
    "DatabaseSettings",
    "DeviceSettings",
    "DispatchSettings",
    "ProgressSettings",
    "StatusSettings",
    "HealthSettings",
    "LoggingSettings",
    "load_gateway_config",
    "load_config_file",
    # Models
    "WorkState",
    "EventKind",
    "WorkItem",
    "WorkEvent",
    # Exceptions
    "WorklineError",
    "ConfigError",
    "DeviceError",
    "CommunicationError",
    "ProtocolError",
    "StoreError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "reconfigure_service_loggers",
    "set_service_log_level",
    "log_device_send",
    "log_device_line",
    "log_work_event",
    # Scheduling
    "ScheduledLoop",
    "SchedulerGroup",
]
