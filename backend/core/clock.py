from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from core.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def calendar_zone(name: Optional[str] = None) -> Optional[tzinfo]:
    """Zone that defines calendar months. None means the server's local zone."""
    name = settings.calendar_timezone if name is None else name
    if not name:
        return None
    return ZoneInfo(name)


def month_start(now: Optional[datetime] = None, zone_name: Optional[str] = None) -> datetime:
    """
    First instant of the calendar month containing `now`, returned in UTC.

    The month is evaluated in the configured calendar zone (server local by
    default); naive inputs are taken to be UTC.
    """
    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(calendar_zone(zone_name))
    start = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start.astimezone(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
