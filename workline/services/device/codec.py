"""
Device Line Protocol

Outbound: one JSON object per work item, newline-terminated.
Inbound: free-text lines; data lines carry "<TOKEN>:<identity>".

The board firmware has shipped with both English and Italian status
tokens, so both vocabularies are accepted.
"""

import json
import re
from dataclasses import dataclass
from typing import Iterable

from workline.common.config import DEFAULT_BANNER_MARKERS
from workline.common.exceptions import ProtocolError
from workline.common.logging_setup import get_service_logger
from workline.common.models import EventKind, WorkItem

logger = get_service_logger("device.codec")

TOKENS: dict[str, EventKind] = {
    "ACCEPTED": EventKind.ACCEPTED,
    "STARTED": EventKind.STARTED,
    "COMPLETED": EventKind.COMPLETED,
    "REJECTED": EventKind.REJECTED,
    "CANCELED": EventKind.CANCELED,
    "CANCELLED": EventKind.CANCELED,
    "ACCETTATA": EventKind.ACCEPTED,
    "AVVIATA": EventKind.STARTED,
    "COMPLETATA": EventKind.COMPLETED,
    "RIFIUTATA": EventKind.REJECTED,
    "CANCELLATA": EventKind.CANCELED,
}

# Longest alternatives first so CANCELLED is not read as CANCELED + "L..."
_EVENT_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(TOKENS, key=len, reverse=True)) + r")\s*:\s*([A-Za-z0-9_-]+)"
)


@dataclass(frozen=True)
class DeviceEvent:
    """A status event reported by the device"""
    kind: EventKind
    identity: str
    raw: str


def encode_work_item(item: WorkItem) -> bytes:
    """Serialize a work item to the device payload (JSON line)"""
    payload = {
        "id": item.id,
        "name": item.name,
        "identificativo": item.code,
        "durata": item.duration,
    }
    return (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")


def is_banner(line: str, markers: Iterable[str] = DEFAULT_BANNER_MARKERS) -> bool:
    """True for decoration lines the firmware prints around its output"""
    return any(marker in line for marker in markers)


def decode_line(line: str) -> DeviceEvent:
    """
    Strict decode of a data line.

    Raises:
        ProtocolError: no "<TOKEN>:<identity>" in the line
    """
    text = line.strip()
    match = _EVENT_PATTERN.search(text)
    if not match:
        raise ProtocolError("unrecognized device line", line=text)

    return DeviceEvent(
        kind=TOKENS[match.group(1)],
        identity=match.group(2),
        raw=text,
    )


def parse_line(
    line: str,
    markers: Iterable[str] = DEFAULT_BANNER_MARKERS,
) -> DeviceEvent | None:
    """
    Tolerant decode used on the live link.

    Blank and banner lines are dropped silently; anything else that is
    not a data line is logged and dropped.
    """
    text = line.strip()
    if not text or is_banner(text, markers):
        return None

    try:
        return decode_line(text)
    except ProtocolError:
        logger.info(f"Ignoring device line: {text!r}", extra={"line": text})
        return None
