from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is interpreted as midnight UTC
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
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def coerce_datetime(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Accept ISO strings, dates and datetimes; return UTC-naive or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError(f"invalid datetime value: {value!r}")


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


def local_day_bounds_utc(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """
    Start (00:00:00) and end (23:59:59) of the current calendar day in the
    process's local time zone, both returned as UTC-naive datetimes.
    """
    today = (now.astimezone() if now is not None else datetime.now().astimezone()).date()
    # Localize each bound on its own: a DST change shifts the offset mid-day.
    start_local = datetime.combine(today, time(0, 0, 0)).astimezone()
    end_local = datetime.combine(today, time(23, 59, 59)).astimezone()
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def local_date_of(dt: datetime) -> date:
    """Calendar date, in the local time zone, of a UTC-naive datetime."""
    return dt.replace(tzinfo=timezone.utc).astimezone().date()


def days_until(dt: datetime, today: Optional[date] = None) -> int:
    today = today or datetime.now().astimezone().date()
    return (local_date_of(dt) - today).days


