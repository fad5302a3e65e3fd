"""Timestamp helpers. Stored timestamps are integer epoch milliseconds."""

from __future__ import annotations

import math
import time
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from brain.config import settings

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)

# Epoch values below this are read as seconds, anything larger as milliseconds.
# 1e11 seconds is the year 5138; 1e11 milliseconds is March 1973.
_SECONDS_CUTOFF = 1e11


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def zone(tz_name: str | None = None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.memory_timezone)


def local_now(tz_name: str | None = None) -> datetime:
    """Current time as an aware datetime in the memory timezone."""
    return datetime.now(zone(tz_name))


def to_ms(dt: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return (dt - _EPOCH) // _ONE_MS


def from_ms(ms: int, tz_name: str | None = None) -> datetime:
    return (_EPOCH + timedelta(milliseconds=ms)).astimezone(zone(tz_name))


def to_iso(ms: int) -> str:
    """Render epoch milliseconds as ISO-8601 UTC, e.g. ``2025-01-01T09:30:00.000Z``."""
    dt = _EPOCH + timedelta(milliseconds=ms)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def start_of_day(now: datetime) -> int:
    """Epoch milliseconds of midnight on *now*'s calendar day, in *now*'s zone."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return to_ms(midnight)


def _epoch_to_ms(value: float) -> int:
    if not math.isfinite(value):
        msg = f"Invalid epoch value: {value!r}"
        raise ValueError(msg)
    if abs(value) < _SECONDS_CUTOFF:
        value *= 1000
    return round(value)


def parse_timestamp(value: str | float, tz_name: str | None = None) -> int:
    """Parse ISO-8601 text or an epoch value into epoch milliseconds.

    Naive ISO text is interpreted in the memory timezone. Raises ValueError
    for anything unparseable.
    """
    if isinstance(value, bool):
        msg = f"Invalid date: {value!r}"
        raise ValueError(msg)
    if isinstance(value, (int, float)):
        return _epoch_to_ms(float(value))

    text = value.strip()
    if not text:
        msg = "Date must not be empty"
        raise ValueError(msg)

    try:
        number = float(text)
    except ValueError:
        pass
    else:
        return _epoch_to_ms(number)

    try:
        dt = datetime.fromisoformat(text)
    except ValueError as exc:
        msg = f"Unrecognised date {value!r}: use ISO-8601 or an epoch timestamp"
        raise ValueError(msg) from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone(tz_name))
    return to_ms(dt)
