"""
Structured Logging Setup

Consistent logging configuration across the gateway services.
Uses JSON format for structured logs in production.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# LogRecord attributes that are not "extra" fields
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "service",
    "message", "taskName",
))


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Set up structured logging for a service.

    Args:
        service_name: Name of the service (e.g., "gateway", "device.link")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"workline.{service_name}")
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Level and format come from WORKLINE_LOG_LEVEL / WORKLINE_LOG_FORMAT.
    """
    log_level = os.environ.get("WORKLINE_LOG_LEVEL", "INFO")
    json_format = os.environ.get("WORKLINE_LOG_FORMAT", "json").lower() == "json"

    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def reconfigure_service_loggers(log_level: str, json_format: bool) -> None:
    """
    Re-apply level/format to every workline logger created so far.

    Module-level loggers are built at import time from the environment;
    the entry point calls this once the config file has been read.
    """
    os.environ["WORKLINE_LOG_LEVEL"] = log_level.upper()
    os.environ["WORKLINE_LOG_FORMAT"] = "json" if json_format else "text"

    for name, existing in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith("workline.") and isinstance(existing, logging.Logger):
            setup_logging(name[len("workline."):], log_level, json_format)


def set_service_log_level(log_level: str) -> None:
    """Change the level of every workline logger, keeping its handlers"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    for name, existing in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith("workline.") and isinstance(existing, logging.Logger):
            existing.setLevel(numeric_level)
            for handler in existing.handlers:
                handler.setLevel(numeric_level)


def log_device_send(
    logger: logging.LoggerAdapter,
    port: str | None,
    work_id: int,
    code: str,
    success: bool = True,
) -> None:
    """Log an outbound work item transmission"""
    if success:
        logger.info(
            f"Sent work item {code} (id={work_id}) to {port}",
            extra={"port": port, "work_id": work_id, "code": code},
        )
    else:
        logger.error(
            f"Failed to send work item {code} (id={work_id}) to {port}",
            extra={"port": port, "work_id": work_id, "code": code},
        )


def log_device_line(logger: logging.LoggerAdapter, port: str | None, line: str) -> None:
    """Log a raw inbound device line"""
    logger.debug(f"Device: {line}", extra={"port": port, "line": line})


def log_work_event(
    logger: logging.LoggerAdapter,
    work_id: int,
    code: str,
    kind: str,
    note: str | None = None,
) -> None:
    """Log a work event appended to the store"""
    logger.info(
        f"Work item {code} (id={work_id}): {kind}" + (f" - {note}" if note else ""),
        extra={"work_id": work_id, "code": code, "kind": kind},
    )
