from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

# Every timestamp column and session field holds naive UTC.


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return _naive_utc(datetime.now(timezone.utc))


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Read a timestamp written by to_utc_z (or any ISO-8601 string).

    Blank input is None. An offset is folded into UTC; a value without one
    is already UTC.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """API and session form: whole seconds with a trailing Z."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = _naive_utc(dt)
    return dt.replace(microsecond=0).isoformat() + "Z"


def from_unix_timestamp(value) -> Optional[datetime]:
    """WhatsApp sends message timestamps as unix seconds (string). Garbage reads as None."""
    if value in (None, ""):
        return None
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    try:
        return _naive_utc(datetime.fromtimestamp(seconds, tz=timezone.utc))
    except (ValueError, OverflowError, OSError):
        return None
