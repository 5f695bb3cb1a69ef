"""
Trade Rule Engine - Risk Management Rules.

CHECKS:
- risk-per-trade: candidate risk % > max risk per trade
- daily-risk-cap: today's risk % + candidate risk % > daily cap
- weekly-risk-cap: week's risk % + candidate risk % > weekly cap
- max-drawdown: drawdown % >= max drawdown, severity by mode
    hard-stop     -> error
    partial-block -> warning
    warn-only     -> info

All percentages are of the base capital. A non-positive base
capital disables the percentage rules.
"""

from typing import Optional

from ..aggregator import WindowAggregates, candidate_risk, to_percent
from ..config import EngineSettings, effective_limit
from ..types import Candidate, DrawdownMode, RuleId, Severity, Violation
from .base import RuleCategory, TradingRule, violation


PCT_TOLERANCE = 1e-9
"""Float slack so a size computed exactly at a cap is not rejected."""

DRAWDOWN_SEVERITY = {
    DrawdownMode.HARD_STOP: Severity.ERROR,
    DrawdownMode.PARTIAL_BLOCK: Severity.WARNING,
    DrawdownMode.WARN_ONLY: Severity.INFO,
}


def candidate_risk_pct(
    candidate: Optional[Candidate],
    base_capital: float,
) -> Optional[float]:
    """Candidate risk as % of base capital, None if not evaluable."""
    amount = candidate_risk(candidate)
    if amount is None:
        return None
    return to_percent(amount, base_capital)


def check_risk_per_trade(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    cap = effective_limit(settings.risk.max_risk_per_trade)
    risk_pct = candidate_risk_pct(candidate, aggregates.base_capital)
    if cap is None or risk_pct is None:
        return None

    if risk_pct > cap + PCT_TOLERANCE:
        return violation(
            RuleId.RISK_PER_TRADE,
            f"Risk per trade {risk_pct:.2f}% exceeds the limit of {cap:g}%",
        )
    return None


def _window_cap(
    rule_id: RuleId,
    label: str,
    cap: Optional[float],
    used_pct: float,
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
) -> Optional[Violation]:
    if cap is None or aggregates.base_capital <= 0:
        return None

    added_pct = candidate_risk_pct(candidate, aggregates.base_capital) or 0.0
    total = used_pct + added_pct

    if total > cap + PCT_TOLERANCE:
        if added_pct:
            message = (
                f"{label} risk would reach {total:.2f}% "
                f"({used_pct:.2f}% used + {added_pct:.2f}%), limit {cap:g}%"
            )
        else:
            message = f"{label} risk {total:.2f}% exceeds the limit of {cap:g}%"
        return violation(rule_id, message)
    return None


def check_daily_risk_cap(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    return _window_cap(
        RuleId.DAILY_RISK_CAP,
        "Daily",
        effective_limit(settings.risk.max_risk_daily),
        aggregates.risk_today_pct,
        candidate,
        aggregates,
    )


def check_weekly_risk_cap(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    return _window_cap(
        RuleId.WEEKLY_RISK_CAP,
        "Weekly",
        effective_limit(settings.risk.max_risk_weekly),
        aggregates.risk_this_week_pct,
        candidate,
        aggregates,
    )


def drawdown_breached(aggregates: WindowAggregates, settings: EngineSettings) -> bool:
    max_drawdown = effective_limit(settings.risk.max_drawdown)
    if max_drawdown is None:
        return False
    drawdown = aggregates.current_drawdown_pct
    return drawdown > 0 and drawdown >= max_drawdown


def check_max_drawdown(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    if not drawdown_breached(aggregates, settings):
        return None

    mode = settings.risk.drawdown_mode
    return violation(
        RuleId.MAX_DRAWDOWN,
        f"Current drawdown {aggregates.current_drawdown_pct:.2f}% exceeds the "
        f"maximum of {settings.risk.max_drawdown:g}% ({mode.value})",
        DRAWDOWN_SEVERITY.get(mode, Severity.INFO),
    )


RISK_RULES = (
    TradingRule(
        rule_id=RuleId.RISK_PER_TRADE,
        category=RuleCategory.RISK,
        description="Risk of the candidate as % of base capital",
        check=check_risk_per_trade,
        needs_candidate=True,
    ),
    TradingRule(
        rule_id=RuleId.DAILY_RISK_CAP,
        category=RuleCategory.RISK,
        description="Summed risk of today's trades plus the candidate",
        check=check_daily_risk_cap,
    ),
    TradingRule(
        rule_id=RuleId.WEEKLY_RISK_CAP,
        category=RuleCategory.RISK,
        description="Summed risk of this week's trades plus the candidate",
        check=check_weekly_risk_cap,
    ),
    TradingRule(
        rule_id=RuleId.MAX_DRAWDOWN,
        category=RuleCategory.RISK,
        description="Drawdown from equity peak against the configured maximum",
        check=check_max_drawdown,
    ),
)
