"""
Trade Rule Engine - Trading Limit Rules.

CHECKS:
- max-trades-per-day: today's count + 1 > max
- max-trades-per-week: this week's count + 1 > max
- max-position-size: candidate size > max
- daily-loss-limit: today's realised loss >= limit
- daily-profit-target: today's realised profit >= target (info)
"""

from typing import Optional

from ..aggregator import WindowAggregates, finite_or_none
from ..config import EngineSettings, effective_limit
from ..types import Candidate, RuleId, Severity, Violation
from .base import RuleCategory, TradingRule, violation


def check_max_trades_per_day(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    max_trades = effective_limit(settings.rules.max_trades_per_day)
    if max_trades is None:
        return None

    if aggregates.trades_today + 1 > max_trades:
        return violation(
            RuleId.MAX_TRADES_PER_DAY,
            f"Max trades per day reached: {aggregates.trades_today} of "
            f"{int(max_trades)} already opened today",
        )
    return None


def check_max_trades_per_week(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    max_trades = effective_limit(settings.rules.max_trades_per_week)
    if max_trades is None:
        return None

    if aggregates.trades_this_week + 1 > max_trades:
        return violation(
            RuleId.MAX_TRADES_PER_WEEK,
            f"Max trades per week reached: {aggregates.trades_this_week} of "
            f"{int(max_trades)} already opened this week",
        )
    return None


def check_max_position_size(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    max_size = effective_limit(settings.rules.max_position_size)
    size = finite_or_none(candidate.position_size)
    if max_size is None or size is None:
        return None

    if size > max_size:
        return violation(
            RuleId.MAX_POSITION_SIZE,
            f"Position size {size:g} exceeds the maximum of {max_size:g}",
        )
    return None


def check_daily_loss_limit(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    limit = effective_limit(settings.rules.daily_loss_limit)
    if limit is None:
        return None

    loss = aggregates.loss_today
    if loss > 0 and loss >= limit:
        return violation(
            RuleId.DAILY_LOSS_LIMIT,
            f"Daily loss limit reached: lost {loss:.2f} today (limit {limit:.2f})",
        )
    return None


def check_daily_profit_target(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    target = effective_limit(settings.rules.daily_profit_target)
    if target is None or target == 0:
        return None

    profit = aggregates.profit_today
    if profit >= target:
        return violation(
            RuleId.DAILY_PROFIT_TARGET,
            f"Daily profit target reached: {profit:.2f} (target {target:.2f})",
            Severity.INFO,
        )
    return None


LIMIT_RULES = (
    TradingRule(
        rule_id=RuleId.MAX_TRADES_PER_DAY,
        category=RuleCategory.TRADING_RULES,
        description="Maximum number of trades opened per local day",
        check=check_max_trades_per_day,
    ),
    TradingRule(
        rule_id=RuleId.MAX_TRADES_PER_WEEK,
        category=RuleCategory.TRADING_RULES,
        description="Maximum number of trades opened per local week",
        check=check_max_trades_per_week,
    ),
    TradingRule(
        rule_id=RuleId.MAX_POSITION_SIZE,
        category=RuleCategory.TRADING_RULES,
        description="Maximum position size of a single trade",
        check=check_max_position_size,
        needs_candidate=True,
    ),
    TradingRule(
        rule_id=RuleId.DAILY_LOSS_LIMIT,
        category=RuleCategory.TRADING_RULES,
        description="Realised loss allowed per local day",
        check=check_daily_loss_limit,
    ),
    TradingRule(
        rule_id=RuleId.DAILY_PROFIT_TARGET,
        category=RuleCategory.TRADING_RULES,
        description="Realised profit target per local day (informational)",
        check=check_daily_profit_target,
    ),
)
