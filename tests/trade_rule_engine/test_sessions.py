"""
Tests for session and time-window helpers.

============================================================
TEST SCENARIOS
============================================================
1. Local day / week boundaries in the trader's zone
2. Session bands and overlap priority
3. Hour windows, including windows wrapping midnight
4. Goal period windows

============================================================
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from trade_rule_engine import get_default_config
from trade_rule_engine.sessions import (
    current_session,
    end_of_local_day,
    hour_in_window,
    local_date,
    period_window,
    same_week,
    sessions_at,
    week_start,
    weekday_name,
)
from trade_rule_engine.types import GoalPeriod, TradingSession


MADRID = ZoneInfo("Europe/Madrid")
NEW_YORK = ZoneInfo("America/New_York")


class TestLocalBoundaries:
    """Day and week are computed in the trader's zone."""

    def test_local_date_differs_from_utc_date(self):
        # 23:30 UTC on Jan 10 is already Jan 11 in Madrid (UTC+1)
        value = datetime(2024, 1, 10, 23, 30, tzinfo=timezone.utc)
        assert local_date(value, MADRID) == date(2024, 1, 11)
        assert local_date(value, ZoneInfo("UTC")) == date(2024, 1, 10)

    def test_naive_datetimes_are_utc(self):
        naive = datetime(2024, 1, 10, 23, 30)
        assert local_date(naive, MADRID) == date(2024, 1, 11)

    def test_week_starts_on_monday(self):
        assert week_start(date(2024, 1, 10)) == date(2024, 1, 8)
        assert week_start(date(2024, 1, 8)) == date(2024, 1, 8)
        assert week_start(date(2024, 1, 14)) == date(2024, 1, 8)

    def test_same_week(self):
        assert same_week(date(2024, 1, 8), date(2024, 1, 14))
        assert not same_week(date(2024, 1, 7), date(2024, 1, 8))

    def test_weekday_name_in_local_zone(self):
        # Sunday 23:30 UTC is Monday in Madrid
        value = datetime(2024, 1, 7, 23, 30, tzinfo=timezone.utc)
        assert weekday_name(value, MADRID) == "monday"
        assert weekday_name(value, ZoneInfo("UTC")) == "sunday"

    def test_weekday_names_match_allowed_days_keys(self):
        days = get_default_config().sessions.allowed_days
        monday = datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)
        names = [
            weekday_name(monday + timedelta(days=offset), ZoneInfo("UTC"))
            for offset in range(7)
        ]
        assert names == list(days)

    def test_end_of_local_day(self):
        value = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
        end = end_of_local_day(value, NEW_YORK)
        # Midnight Jan 11 in New York is 05:00 UTC
        assert end.astimezone(timezone.utc) == datetime(2024, 1, 11, 5, 0, tzinfo=timezone.utc)


class TestSessions:

    @pytest.mark.parametrize("hour,expected", [
        (3, TradingSession.ASIAN),
        (8, TradingSession.LONDON),
        (10, TradingSession.LONDON),
        (14, TradingSession.OVERLAP),
        (18, TradingSession.NEW_YORK),
        (23, TradingSession.OTHER),
    ])
    def test_primary_session(self, hour, expected):
        assert sessions_at(hour)[0] == expected

    def test_overlap_hours_report_every_active_session(self):
        active = sessions_at(14)
        assert TradingSession.OVERLAP in active
        assert TradingSession.LONDON in active
        assert TradingSession.NEW_YORK in active

    def test_current_session_uses_local_hour(self):
        # 07:00 UTC is 02:00 in New York → asian band
        value = datetime(2024, 1, 10, 7, 0, tzinfo=timezone.utc)
        assert current_session(value, NEW_YORK) == TradingSession.ASIAN


class TestHourWindow:

    def test_regular_window(self):
        assert hour_in_window(9, 9, 17)
        assert hour_in_window(16, 9, 17)
        assert not hour_in_window(17, 9, 17)
        assert not hour_in_window(8, 9, 17)

    def test_window_wrapping_midnight(self):
        assert hour_in_window(23, 22, 2)
        assert hour_in_window(1, 22, 2)
        assert not hour_in_window(2, 22, 2)
        assert not hour_in_window(12, 22, 2)

    def test_empty_window_is_unrestricted(self):
        assert hour_in_window(5, 9, 9)


class TestPeriodWindow:

    def test_daily(self):
        anchor = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
        start, end = period_window(GoalPeriod.DAILY, anchor, ZoneInfo("UTC"))
        assert start == datetime(2024, 1, 10, tzinfo=ZoneInfo("UTC"))
        assert end == datetime(2024, 1, 11, tzinfo=ZoneInfo("UTC"))

    def test_weekly_starts_monday(self):
        anchor = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
        start, end = period_window(GoalPeriod.WEEKLY, anchor, ZoneInfo("UTC"))
        assert start.date() == date(2024, 1, 8)
        assert end.date() == date(2024, 1, 15)

    def test_monthly_december_rolls_over(self):
        anchor = datetime(2024, 12, 15, tzinfo=timezone.utc)
        start, end = period_window(GoalPeriod.MONTHLY, anchor, ZoneInfo("UTC"))
        assert start.date() == date(2024, 12, 1)
        assert end.date() == date(2025, 1, 1)

    def test_yearly(self):
        anchor = datetime(2024, 6, 1, tzinfo=timezone.utc)
        start, end = period_window(GoalPeriod.YEARLY, anchor, ZoneInfo("UTC"))
        assert start.date() == date(2024, 1, 1)
        assert end.date() == date(2025, 1, 1)
