"""
Timestamp Utilities

All persisted and published timestamps are timezone-aware UTC,
serialized as ISO-8601 strings.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string"""
    return utc_now().isoformat()


def from_epoch_iso(epoch_seconds: float) -> str:
    """Convert epoch seconds to an ISO-8601 UTC string"""
    return datetime.fromtimestamp(epoch_seconds, timezone.utc).isoformat()


def parse_iso(ts_iso: str | None) -> datetime | None:
    """
    Parse an ISO timestamp string.

    Accepts a trailing "Z". Naive values are assumed to be UTC.
    Returns None if the value is empty or unparseable.
    """
    if not ts_iso:
        return None

    try:
        dt = datetime.fromisoformat(ts_iso.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def age_seconds(ts_iso: str | None, now: datetime | None = None) -> float | None:
    """
    Seconds elapsed since an ISO timestamp.

    Returns None if the timestamp cannot be parsed.
    """
    dt = parse_iso(ts_iso)
    if dt is None:
        return None
    return ((now or utc_now()) - dt).total_seconds()
