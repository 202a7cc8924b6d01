"""Timestamp helpers shared by the services and pages."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_iso(dt: datetime | None = None) -> str:
    """Return an ISO 8601 string in UTC for ``dt`` (defaults to now, tolerates naive input)."""

    if dt is None:
        dt = utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ``value`` into an aware UTC datetime, or ``None`` when it cannot be parsed."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        try:
            dt = date_parser.parse(str(value))
        except (ValueError, OverflowError, TypeError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_past(value: Any, now: datetime | None = None) -> bool:
    dt = parse_datetime(value)
    if dt is None:
        return False
    return dt < (now or utc_now())


def format_ts(value: Any, fmt: str = "%Y-%m-%d %H:%M") -> str:
    dt = parse_datetime(value)
    if dt is None:
        return ""
    return dt.astimezone().strftime(fmt)


__all__ = ["utc_now", "utc_iso", "parse_datetime", "is_past", "format_ts"]
