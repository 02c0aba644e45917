from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight of that day
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    if value is None or not value.strip():
        return None
    return date.fromisoformat(value.strip())


def parse_clock_time(value: Optional[str]) -> Optional[time]:
    """Parse "HH:MM" or "HH:MM:SS" into a time of day."""
    if value is None or not value.strip():
        return None
    return time.fromisoformat(value.strip())


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def sunday_based_weekday(dt: datetime) -> int:
    """Day of week with Sunday=0 .. Saturday=6."""
    return dt.isoweekday() % 7
