from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_datetime(dt: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are already UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value) -> Optional[datetime]:
    """
    Parse a business date or timestamp into a UTC-naive datetime.

    Accepted:
    - None / "" -> None
    - a datetime (normalized)
    - "2026-01-15" -> midnight UTC of that day
    - "2026-01-15T09:30" -> naive, read as UTC
    - "...Z" / "...+02:00" -> converted to UTC

    Raises ValueError (or TypeError) for anything else.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return normalize_datetime(value)

    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return normalize_datetime(datetime.fromisoformat(text))


def business_time(value) -> datetime:
    """When a ledger event happened: the given date/time, or now when absent."""
    return parse_iso_datetime(value) or utcnow()


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
