"""
Day-boundary and timestamp helpers

Every record lookup keyed by "day" goes through current_day(); timestamps
are stored as naive UTC and rendered with an explicit offset.
"""
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional, Tuple
from zoneinfo import ZoneInfo


DATE_FILTERS = ("today", "yesterday", "this_week", "this_month")


@lru_cache()
def get_zone(tz_name: str) -> ZoneInfo:
    return ZoneInfo(tz_name)


def utc_now() -> datetime:
    """Current time as naive UTC (storage form)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def current_day(tz_name: str, now: Optional[datetime] = None) -> date:
    """
    Calendar day in the fixed zone.

    Parameters:
        tz_name: IANA zone name, e.g. "Asia/Phnom_Penh"
        now: naive UTC instant to evaluate (defaults to now)
    """
    instant = (now or utc_now()).replace(tzinfo=timezone.utc)
    return instant.astimezone(get_zone(tz_name)).date()


def day_bounds(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """[start, end) of a local day, as naive UTC."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return to_storage(start, tz_name), to_storage(end, tz_name)


def to_storage(value: datetime, tz_name: str) -> datetime:
    """
    Convert a datetime to naive UTC.

    Aware values are converted; naive values are read as local time in the
    fixed zone (that is what a client in the hotel means).
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=get_zone(tz_name))
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


def date_filter_window(date_filter: Optional[str], tz_name: str,
                       now: Optional[datetime] = None) -> Optional[Tuple[date, date]]:
    """
    Resolve a named window to an inclusive-exclusive range of days.

    Returns None for no filter ("all" or empty). Weeks start on Monday.
    """
    if not date_filter or date_filter == "all":
        return None
    if date_filter not in DATE_FILTERS:
        raise ValueError(
            f"Unknown date filter {date_filter!r}, expected one of: all, {', '.join(DATE_FILTERS)}"
        )

    today = current_day(tz_name, now)
    if date_filter == "today":
        return today, today + timedelta(days=1)
    if date_filter == "yesterday":
        return today - timedelta(days=1), today
    if date_filter == "this_week":
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=7)
    # this_month
    start = today.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end
