"""
Calendar arithmetic in the platform timezone.

Campaign windows (birthdays, ISO weeks, seasonal periods) are defined by the
local calendar while every stored timestamp is UTC.
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from engagement.config import settings


def platform_tz(tz: str | None = None) -> ZoneInfo:
    return ZoneInfo(tz or settings.PLATFORM_TIMEZONE)


def to_local(now: datetime, tz: str | None = None) -> datetime:
    return now.astimezone(platform_tz(tz))


def start_of_local_day(now: datetime, tz: str | None = None) -> datetime:
    local = to_local(now, tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_local_iso_week(now: datetime, tz: str | None = None) -> datetime:
    day_start = start_of_local_day(now, tz)
    monday = day_start - timedelta(days=day_start.weekday())
    # Rebuild from the date so a DST change inside the week keeps midnight
    return datetime(monday.year, monday.month, monday.day, tzinfo=platform_tz(tz))


def start_of_local_year(now: datetime, tz: str | None = None) -> datetime:
    local = to_local(now, tz)
    return datetime(local.year, 1, 1, tzinfo=platform_tz(tz))


def iso_week_key(now: datetime, tz: str | None = None) -> str:
    year, week, _ = to_local(now, tz).isocalendar()
    return f"{year}-W{week:02d}"
