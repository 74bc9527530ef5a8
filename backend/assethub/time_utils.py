from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


# Every timestamp column stores UTC without tzinfo.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2024-05-01", "2024-05-01T08:30", "2024-05-01T08:30:00Z" and offset forms
    all parse; values without an offset are taken as UTC. Blank -> None.

    Raises ValueError for anything else.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def parse_range_bound(value: Optional[str], *, end: bool = False) -> Optional[datetime]:
    """
    Like parse_iso_datetime, for the edges of a date filter. A bare date used
    as the ``end`` bound covers that whole day.
    """
    parsed = parse_iso_datetime(value)
    if parsed is None or not end:
        return parsed
    text = (value or "").strip()
    try:
        day = date.fromisoformat(text)
    except ValueError:
        return parsed
    return datetime.combine(day, time.min) + timedelta(days=1) - timedelta(microseconds=1)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing Z (naive input counts as UTC)."""
    if dt is None:
        return None
    stamp = _as_utc_naive(dt).replace(microsecond=0)
    return f"{stamp.isoformat()}Z"
