"""
Device Service - Serial link and line protocol

Responsibilities:
- Discover the device's serial port
- Maintain the connection (timeout, stabilization, reconnection)
- Encode work items and decode device status lines
"""

from .codec import DeviceEvent, decode_line, encode_work_item, parse_line
from .discovery import discover_port, select_port
from .link import DeviceLink, LinkEvent, LinkEventType, LinkState

__all__ = [
    "DeviceEvent",
    "decode_line",
    "encode_work_item",
    "parse_line",
    "discover_port",
    "select_port",
    "DeviceLink",
    "LinkEvent",
    "LinkEventType",
    "LinkState",
]
