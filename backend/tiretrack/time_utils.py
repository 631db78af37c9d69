"""
Time handling for tire history.

Everything is stored as naive UTC. Callers may hand in aware datetimes or
ISO-8601 strings (trailing "Z" or an offset); both are converted on the way
in. Output always uses the "...Z" form with second precision.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_datetime(dt: datetime) -> datetime:
    """Convert to naive UTC. A naive input is taken to be UTC already."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Blank or None gives None; malformed text raises ValueError."""
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return normalize_datetime(datetime.fromisoformat(text))


def coerce_occurred_at(value) -> Optional[datetime]:
    """Business time from a command: None, a datetime or an ISO-8601 string."""
    if value is None or isinstance(value, datetime):
        return normalize_datetime(value) if value is not None else None
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError(f"unsupported occurred_at type: {type(value).__name__}")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return normalize_datetime(dt).replace(microsecond=0).isoformat() + "Z"
