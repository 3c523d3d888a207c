"""Common time helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime, time


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def from_iso(value: str) -> datetime:
    """Parse ISO datetime and ensure timezone-aware UTC fallback."""

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def to_epoch_seconds(value: str | float | int) -> int:
    """Convert an ISO string or epoch seconds into whole epoch seconds."""

    if isinstance(value, str):
        return int(from_iso(value).timestamp())
    return int(value)


def start_of_day(day: date) -> int:
    """Epoch seconds of midnight UTC for ``day``."""

    return int(datetime.combine(day, time.min, tzinfo=UTC).timestamp())
