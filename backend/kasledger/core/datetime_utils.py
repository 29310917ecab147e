from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


def to_utc_naive(dt: datetime) -> datetime:
    """Normalize datetimes for DB storage.

    Timestamps are stored as UTC in timezone-naive DateTime columns. Clients
    often send ISO timestamps with 'Z' (tz-aware); SQL Server/pyodbc can
    error when binding tz-aware datetimes into DateTime(timezone=False).
    """

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(dt: datetime) -> datetime:
    """Treat a DB-stored UTC-naive datetime as UTC-aware for API responses."""

    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc)

    return dt.replace(tzinfo=timezone.utc)


def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_in(time_zone: str) -> date:
    return datetime.now(ZoneInfo(time_zone)).date()


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def parse_month_key(value: str) -> tuple[int, int]:
    """Split a 'YYYY-MM' key into (year, month); ValueError when malformed."""

    match = _MONTH_KEY_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid month format (YYYY-MM): {value!r}")
    year, month = int(match.group(1)), int(match.group(2))
    if month < 1 or month > 12:
        raise ValueError(f"Invalid month: {value!r}")
    return year, month


def previous_month_key(key: str) -> str:
    year, month = parse_month_key(key)
    if month == 1:
        return f"{year - 1:04d}-12"
    return f"{year:04d}-{month - 1:02d}"


def month_bounds(key: str) -> tuple[date, date]:
    """First and last calendar day of the month, both inclusive."""

    year, month = parse_month_key(key)
    start = date(year, month, 1)
    if month == 12:
        next_start = date(year + 1, 1, 1)
    else:
        next_start = date(year, month + 1, 1)
    return start, next_start - timedelta(days=1)
