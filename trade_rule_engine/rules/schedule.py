"""
Trade Rule Engine - Schedule Rules.

CHECKS:
- trading-hours: local hour outside the allowed window
- session-not-allowed: the candidate's declared session (or, without
  one, every active session) is outside the allow-list
- day-not-allowed: local weekday not in the allow-list

Session and day rules only fire when blocking outside the
allowed session is enabled.
"""

from typing import Optional

from ..aggregator import WindowAggregates
from ..config import EngineSettings
from ..sessions import hour_in_window, valid_hour_window
from ..types import Candidate, RuleId, Violation
from .base import RuleCategory, TradingRule, violation


def check_trading_hours(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    hours = settings.rules.allowed_hours
    if not hours.enabled or not valid_hour_window(hours.start_hour, hours.end_hour):
        return None

    if not hour_in_window(aggregates.hour, hours.start_hour, hours.end_hour):
        return violation(
            RuleId.TRADING_HOURS,
            f"Outside allowed trading hours ({hours.start_hour:02d}:00 - "
            f"{hours.end_hour:02d}:00, now {aggregates.hour:02d}:00 "
            f"{settings.sessions.timezone})",
        )
    return None


def check_session_allowed(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    sessions = settings.sessions
    if not sessions.block_outside_session:
        return None

    if candidate is not None and candidate.session is not None:
        active_sessions = [candidate.session]
    else:
        active_sessions = aggregates.active_sessions

    allowed = [
        session for session in active_sessions
        if sessions.allowed_sessions.get(session, True)
    ]
    if not allowed:
        active = ", ".join(session.value for session in active_sessions)
        return violation(
            RuleId.SESSION_NOT_ALLOWED,
            f"Trading is not allowed during the current session ({active})",
        )
    return None


def check_day_allowed(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    sessions = settings.sessions
    if not sessions.block_outside_session:
        return None

    if not sessions.allowed_days.get(aggregates.weekday, True):
        return violation(
            RuleId.DAY_NOT_ALLOWED,
            f"Trading is not allowed on {aggregates.weekday.capitalize()}",
        )
    return None


SCHEDULE_RULES = (
    TradingRule(
        rule_id=RuleId.TRADING_HOURS,
        category=RuleCategory.TRADING_RULES,
        description="Allowed trading-hours window in the trader's zone",
        check=check_trading_hours,
    ),
    TradingRule(
        rule_id=RuleId.SESSION_NOT_ALLOWED,
        category=RuleCategory.SESSIONS,
        description="Per-session allow-list",
        check=check_session_allowed,
    ),
    TradingRule(
        rule_id=RuleId.DAY_NOT_ALLOWED,
        category=RuleCategory.SESSIONS,
        description="Per-weekday allow-list",
        check=check_day_allowed,
    ),
)
