"""
Trade Rule Engine - Rule Catalog.

============================================================
RULES
============================================================
Each module covers one settings group:

- limits: trade counts, position size, daily PnL
- schedule: trading hours, sessions, weekdays
- risk: per-trade / daily / weekly risk caps, drawdown
- discipline: cooldown, loss streak, reminders

DEFAULT_RULES is the ordered catalog used by the evaluator.

============================================================
"""

from typing import Tuple

from .base import (
    RuleCategory,
    RuleCheck,
    TradingRule,
    violation,
)
from .discipline import DISCIPLINE_RULES
from .limits import LIMIT_RULES
from .risk import (
    RISK_RULES,
    candidate_risk_pct,
    drawdown_breached,
)
from .schedule import SCHEDULE_RULES


DEFAULT_RULES: Tuple[TradingRule, ...] = (
    LIMIT_RULES
    + SCHEDULE_RULES
    + RISK_RULES
    + DISCIPLINE_RULES
)


__all__ = [
    # Base
    "RuleCategory",
    "RuleCheck",
    "TradingRule",
    "violation",
    # Catalog
    "DEFAULT_RULES",
    "LIMIT_RULES",
    "SCHEDULE_RULES",
    "RISK_RULES",
    "DISCIPLINE_RULES",
    # Helpers
    "candidate_risk_pct",
    "drawdown_breached",
]
