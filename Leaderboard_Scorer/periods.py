from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import Tuple

from .constants import LeaderboardPeriod, parse_period

# Platform launch; start of every all-time window
ALL_TIME_ANCHOR = "2020-01-01"


# ---------- Helpers ----------
def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    # Mongo stores milliseconds, so .999 is the last representable instant
    return dt.replace(hour=23, minute=59, second=59, microsecond=999000)


def parse_anchor(anchor: str | datetime, tzinfo=None) -> datetime:
    if isinstance(anchor, datetime):
        return anchor
    parsed = datetime.fromisoformat(anchor)
    if parsed.tzinfo is None and tzinfo is not None:
        parsed = parsed.replace(tzinfo=tzinfo)
    return parsed


def resolve_period(
    period: LeaderboardPeriod | str,
    now: datetime,
    all_time_anchor: str | datetime | None = None,
) -> Tuple[datetime, datetime]:
    """
    Map a period label onto a concrete [start, end] window around `now`.

    Boundaries are wall-clock times in the timezone carried by `now`.
    daily/weekly windows end at the close of the current day, so a later run
    on the same day resolves to the same window. all_time ends at `now`.
    """
    period = parse_period(period)

    if period is LeaderboardPeriod.DAILY:
        return start_of_day(now), end_of_day(now)

    if period is LeaderboardPeriod.WEEKLY:
        # weekday(): Monday=0 .. Sunday=6
        days_since_sunday = (now.weekday() + 1) % 7
        start = start_of_day(now - timedelta(days=days_since_sunday))
        return start, end_of_day(now)

    if period is LeaderboardPeriod.MONTHLY:
        last_day = calendar.monthrange(now.year, now.month)[1]
        start = start_of_day(now.replace(day=1))
        end = end_of_day(now.replace(day=last_day))
        return start, end

    if period is LeaderboardPeriod.YEARLY:
        start = start_of_day(now.replace(month=1, day=1))
        end = end_of_day(now.replace(month=12, day=31))
        return start, end

    # all_time
    start = parse_anchor(all_time_anchor or ALL_TIME_ANCHOR, tzinfo=now.tzinfo)
    return start, now


def windows_match(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
    tolerance: timedelta,
) -> bool:
    """True when both boundaries sit strictly within `tolerance` of each other."""
    return abs(start_a - start_b) < tolerance and abs(end_a - end_b) < tolerance
