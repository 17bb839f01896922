"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form timestamps are stored in"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(utc_naive: datetime, tz_name: str) -> datetime:
    """Convert a stored naive-UTC timestamp to naive wall-clock time in ``tz_name``"""
    return utc_naive.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


def to_utc(local_naive: datetime, tz_name: str) -> datetime:
    """Convert naive wall-clock time in ``tz_name`` back to naive UTC"""
    return local_naive.replace(tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc).replace(tzinfo=None)


def tomorrow_in(tz_name: str, now_utc: datetime) -> date:
    """Calendar date of tomorrow in the given timezone"""
    return to_local(now_utc, tz_name).date() + timedelta(days=1)
