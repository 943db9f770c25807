from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


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


def get_zone(tz_name: str | None, fallback: str = "UTC") -> ZoneInfo:
    """Resolve an IANA zone name, falling back when it is unknown or empty."""
    for name in (tz_name, fallback, "UTC"):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


def today_in_timezone(tz_name: str | None, now: Optional[datetime] = None) -> date:
    """
    Calendar date "today" in the given zone.

    `now` is UTC (naive or aware). Promotion windows and report ranges are
    business dates, so comparing against the UTC date would flip a day early
    or late around local midnight.
    """
    now = now or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(get_zone(tz_name)).date()


def local_day_start_utc(day: date, tz_name: str | None) -> datetime:
    """UTC-naive instant at which `day` begins in the given zone."""
    local_start = datetime.combine(day, time.min, tzinfo=get_zone(tz_name))
    return local_start.astimezone(timezone.utc).replace(tzinfo=None)
