"""
Trade Rule Engine - Risk Status Aggregator.

============================================================
PURPOSE
============================================================
Single authoritative precedence order for the overall status.

============================================================
PRECEDENCE
============================================================
(a) Active lockout             → BLOCKED (short-circuit)
(b) Any ERROR violation        → BLOCKED
    Goal full block            → BLOCKED
(c) Any WARNING violation      → WARNING
    Drawdown breach, not hard-stop → WARNING
    Goal partial block         → WARNING
(d) Otherwise                  → OPERABLE

Reasons: error first, then warning, then informational
context. Duplicates collapsed.

============================================================
"""

from datetime import datetime
from typing import Iterable, List, Optional
import logging

from .aggregator import WindowAggregates
from .config import EngineSettings, effective_limit
from .evaluator import sort_violations
from .lockout import is_blocked
from .rules import drawdown_breached
from .types import (
    DrawdownMode,
    OverallStatus,
    RiskStatus,
    RuleId,
    Severity,
    Violation,
)


logger = logging.getLogger(__name__)


APPROACHING_LIMIT_RATIO = 0.8
"""Share of a cap at which an "approaching limit" reason is added."""


def _unique(reasons: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for reason in reasons:
        if reason not in seen:
            seen.add(reason)
            ordered.append(reason)
    return ordered


class RiskStatusAggregator:
    """
    Combines violations, drawdown and lockout into one status.

    Usage:
        aggregator = RiskStatusAggregator()
        status = aggregator.aggregate(violations, aggregates, settings, now)
    """

    def __init__(self, approaching_ratio: float = APPROACHING_LIMIT_RATIO):
        self._approaching_ratio = approaching_ratio

    def aggregate(
        self,
        violations: Iterable[Violation],
        aggregates: WindowAggregates,
        settings: EngineSettings,
        now: Optional[datetime] = None,
    ) -> RiskStatus:
        """
        Compute the overall status.

        Args:
            violations: Rule and goal violations
            aggregates: Windowed history (drawdown, daily risk)
            settings: Engine configuration (lockout, goal blocks)
            now: Evaluation instant (defaults to aggregates.now)

        Returns:
            RiskStatus, never raises on rule data
        """
        now = now or aggregates.now
        ordered = sort_violations(violations)

        status = RiskStatus(
            status=OverallStatus.OPERABLE,
            risk_per_trade_allowed=settings.risk.max_risk_per_trade,
            risk_daily_allowed=settings.risk.max_risk_daily,
            drawdown_max_allowed=settings.risk.max_drawdown,
            violations=ordered,
            partial_block=settings.goal_blocks.partial_block,
            current_drawdown_pct=aggregates.current_drawdown_pct,
            persistent_warnings=settings.discipline.persistent_warnings,
        )

        # (a) Lockout short-circuits everything else
        lockout = settings.lockout
        if is_blocked(lockout, now):
            status.status = OverallStatus.BLOCKED
            status.blocked_until = lockout.blocked_until
            status.reasons = [f"Temporary lockout until {lockout.blocked_until.isoformat()}"]
            logger.debug(f"Status blocked by lockout until {lockout.blocked_until}")
            return status

        error_reasons: List[str] = []
        warning_reasons: List[str] = []
        info_reasons: List[str] = []

        soft_drawdown = (
            drawdown_breached(aggregates, settings)
            and settings.risk.drawdown_mode != DrawdownMode.HARD_STOP
        )

        for violation in ordered:
            severity = violation.severity
            if violation.rule_id == RuleId.MAX_DRAWDOWN and soft_drawdown:
                severity = Severity.WARNING

            if severity == Severity.ERROR:
                error_reasons.append(violation.message)
            elif severity == Severity.WARNING:
                warning_reasons.append(violation.message)
            else:
                info_reasons.append(violation.message)

        # (b) Goal full block
        blocks = settings.goal_blocks
        reported = {v.rule_id for v in ordered}
        if blocks.full_block and RuleId.GOAL_FULL_BLOCK not in reported:
            error_reasons.append(
                f"Full block set by failed binding goal ({', '.join(blocks.goal_ids) or 'unknown goal'})"
            )

        # (c) Goal partial block and soft drawdown
        if blocks.partial_block and RuleId.GOAL_PARTIAL_BLOCK not in reported:
            warning_reasons.append(
                f"New trades disabled by failed binding goal ({', '.join(blocks.goal_ids) or 'unknown goal'})"
            )
        if soft_drawdown and not any(v.rule_id == RuleId.MAX_DRAWDOWN for v in ordered):
            warning_reasons.append(
                f"Current drawdown {aggregates.current_drawdown_pct:.2f}% exceeds the "
                f"maximum of {settings.risk.max_drawdown:g}%"
            )

        info_reasons.extend(self._approaching_reasons(aggregates, settings))

        if error_reasons:
            status.status = OverallStatus.BLOCKED
        elif warning_reasons:
            status.status = OverallStatus.WARNING

        status.reasons = _unique(error_reasons + warning_reasons + info_reasons)

        logger.debug(
            f"Status {status.status.value}: {len(error_reasons)} blocking, "
            f"{len(warning_reasons)} warning, {len(info_reasons)} info reasons"
        )

        return status

    def _approaching_reasons(
        self,
        aggregates: WindowAggregates,
        settings: EngineSettings,
    ) -> List[str]:
        reasons = []

        max_drawdown = effective_limit(settings.risk.max_drawdown)
        drawdown = aggregates.current_drawdown_pct
        if max_drawdown and self._approaching_ratio * max_drawdown <= drawdown < max_drawdown:
            reasons.append(
                f"Drawdown {drawdown:.2f}% approaching the maximum of {max_drawdown:g}%"
            )

        daily_cap = effective_limit(settings.risk.max_risk_daily)
        used = aggregates.risk_today_pct
        if daily_cap and self._approaching_ratio * daily_cap <= used <= daily_cap:
            reasons.append(
                f"Daily risk {used:.2f}% approaching the limit of {daily_cap:g}%"
            )

        return reasons
