"""Next-run calculation for recurring schedules"""

import calendar
from datetime import datetime, timedelta
from typing import Any, Mapping, Tuple

from muaythai_gateway.domain.models import Frequency

DEFAULT_TIME = "09:00"


def _parse_time(value: Any) -> Tuple[int, int]:
    """Parse "HH:MM", falling back to 09:00 on anything malformed"""
    try:
        hours, minutes = str(value or DEFAULT_TIME).split(":")[:2]
        hour, minute = int(hours), int(minutes)
    except ValueError:
        return 9, 0
    if not (0 <= hour < 24 and 0 <= minute < 60):
        return 9, 0
    return hour, minute


def _int_option(config: Mapping[str, Any], key: str, default: int) -> int:
    try:
        return int(config.get(key) or default)
    except (TypeError, ValueError):
        return default


def _at_day(year: int, month: int, day: int, hour: int, minute: int) -> datetime:
    """Build a datetime, clamping the day to the month length (31 -> 28/29/30)"""
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(max(day, 1), last_day), hour, minute)


def add_months(year: int, month: int, months: int) -> Tuple[int, int]:
    """Shift a (year, month) pair by a number of months"""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def calculate_next_run_at(frequency: str, config: Mapping[str, Any], now: datetime) -> datetime:
    """
    Compute the next firing time strictly after ``now``.

    A candidate is built at the configured time on the configured day of the
    current period; when it is not strictly after ``now`` it rolls forward by
    one period. The result is always in the future, however late the caller runs.

    Config keys:
        time: "HH:MM" (default 09:00)
        dayOfWeek: 1=Monday .. 7=Sunday (weekly, default 1)
        dayOfMonth: 1-31, clamped to the month length (monthly/quarterly/yearly, default 1)
        month: 1-12 (yearly, default 1)

    Unknown frequencies use ``config["nextRunAt"]`` when it lies in the future,
    else tomorrow at 09:00.
    """
    config = config or {}
    hour, minute = _parse_time(config.get("time"))
    tzinfo = now.tzinfo

    try:
        freq = Frequency(frequency)
    except ValueError:
        explicit = config.get("nextRunAt")
        if explicit:
            try:
                candidate = datetime.fromisoformat(str(explicit))
            except ValueError:
                candidate = None
            if candidate is not None and candidate.tzinfo is None and tzinfo is not None:
                candidate = candidate.replace(tzinfo=tzinfo)
            if candidate is not None and (candidate.tzinfo is None) == (tzinfo is None) and candidate > now:
                return candidate
        return (now + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)

    if freq == Frequency.DAILY:
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    if freq == Frequency.WEEKLY:
        day_of_week = _int_option(config, "dayOfWeek", 1)
        day_of_week = min(max(day_of_week, 1), 7)
        days_ahead = (day_of_week - now.isoweekday()) % 7
        candidate = (now + timedelta(days=days_ahead)).replace(
            hour=hour, minute=minute, second=0, microsecond=0
        )
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    day_of_month = _int_option(config, "dayOfMonth", 1)

    if freq == Frequency.MONTHLY:
        candidate = _at_day(now.year, now.month, day_of_month, hour, minute)
        if candidate.replace(tzinfo=tzinfo) <= now:
            year, month = add_months(now.year, now.month, 1)
            candidate = _at_day(year, month, day_of_month, hour, minute)
        return candidate.replace(tzinfo=tzinfo)

    if freq == Frequency.QUARTERLY:
        quarter_start = (now.month - 1) // 3 * 3 + 1
        candidate = _at_day(now.year, quarter_start, day_of_month, hour, minute)
        if candidate.replace(tzinfo=tzinfo) <= now:
            year, month = add_months(now.year, quarter_start, 3)
            candidate = _at_day(year, month, day_of_month, hour, minute)
        return candidate.replace(tzinfo=tzinfo)

    # Yearly
    month = min(max(_int_option(config, "month", 1), 1), 12)
    candidate = _at_day(now.year, month, day_of_month, hour, minute)
    if candidate.replace(tzinfo=tzinfo) <= now:
        candidate = _at_day(now.year + 1, month, day_of_month, hour, minute)
    return candidate.replace(tzinfo=tzinfo)
