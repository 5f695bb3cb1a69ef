"""
Trade Rule Engine - Session and Calendar Helpers.

============================================================
PURPOSE
============================================================
All calendar math happens in the TRADER'S time zone, never in
the evaluating process's zone:

- A trade at 23:50 local time belongs to that local day
- Weeks start on Monday (local)
- Session bands are matched against the local hour

============================================================
SESSION BANDS (local hours, end exclusive)
============================================================
    asian      00 - 09
    london     08 - 17
    new-york   13 - 22
    overlap    13 - 17   (London / New York)
    other      any hour not covered above

============================================================
"""

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Dict, List, Tuple

from .clock import ensure_utc
from .config import WEEKDAYS
from .types import GoalPeriod, TradingSession


SESSION_BANDS: Dict[TradingSession, Tuple[int, int]] = {
    TradingSession.ASIAN: (0, 9),
    TradingSession.LONDON: (8, 17),
    TradingSession.NEW_YORK: (13, 22),
    TradingSession.OVERLAP: (13, 17),
}

# Most specific session first
SESSION_PRIORITY: List[TradingSession] = [
    TradingSession.OVERLAP,
    TradingSession.LONDON,
    TradingSession.NEW_YORK,
    TradingSession.ASIAN,
]


def to_local(value: datetime, tz: tzinfo) -> datetime:
    """Convert a timestamp to the trader's zone. Naive values are UTC."""
    return ensure_utc(value).astimezone(tz)


def local_date(value: datetime, tz: tzinfo) -> date:
    return to_local(value, tz).date()


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def same_week(day: date, reference: date) -> bool:
    return week_start(day) == week_start(reference)


def weekday_name(value: datetime, tz: tzinfo) -> str:
    return WEEKDAYS[to_local(value, tz).weekday()]


def sessions_at(hour: int) -> List[TradingSession]:
    """Every session whose band contains ``hour``, most specific first."""
    matching = [
        session for session in SESSION_PRIORITY
        if SESSION_BANDS[session][0] <= hour < SESSION_BANDS[session][1]
    ]
    return matching or [TradingSession.OTHER]


def current_session(value: datetime, tz: tzinfo) -> TradingSession:
    return sessions_at(to_local(value, tz).hour)[0]


def session_hours(session: TradingSession) -> Tuple[int, int]:
    """Band of a session; OTHER has no band and spans the whole day."""
    return SESSION_BANDS.get(session, (0, 24))


def hour_in_window(hour: int, start_hour: int, end_hour: int) -> bool:
    """
    Whether ``hour`` lies in [start_hour, end_hour).

    Windows may wrap midnight (22 -> 2). An empty window
    (start == end) places no restriction.
    """
    if start_hour == end_hour:
        return True
    if start_hour < end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour


def valid_hour_window(start_hour: int, end_hour: int) -> bool:
    return 0 <= start_hour <= 24 and 0 <= end_hour <= 24


def local_midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_local_day(value: datetime, tz: tzinfo) -> datetime:
    """Start of the next local day after ``value``."""
    return local_midnight(local_date(value, tz) + timedelta(days=1), tz)


def period_window(period: GoalPeriod, anchor: datetime, tz: tzinfo) -> Tuple[datetime, datetime]:
    """
    Local calendar window of a goal period containing ``anchor``.

    Returns:
        (start, end) with end exclusive, both aware in ``tz``
    """
    day = local_date(anchor, tz)

    if period == GoalPeriod.DAILY:
        start_day = day
        end_day = day + timedelta(days=1)
    elif period == GoalPeriod.WEEKLY:
        start_day = week_start(day)
        end_day = start_day + timedelta(days=7)
    elif period == GoalPeriod.MONTHLY:
        start_day = day.replace(day=1)
        if day.month == 12:
            end_day = date(day.year + 1, 1, 1)
        else:
            end_day = date(day.year, day.month + 1, 1)
    else:
        start_day = date(day.year, 1, 1)
        end_day = date(day.year + 1, 1, 1)

    return local_midnight(start_day, tz), local_midnight(end_day, tz)
