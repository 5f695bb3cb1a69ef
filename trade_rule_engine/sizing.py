"""
Trade Rule Engine - Position Size Suggester.

============================================================
PURPOSE
============================================================
Derives the largest position size that satisfies every
violated size-relevant cap.

============================================================
CALCULATION
============================================================
For each violated cap:
    risk_amount = headroom% x base_capital / 100
    size        = risk_amount / (|entry - stop| x leverage)

    headroom for risk-per-trade = the cap itself
    headroom for daily/weekly   = cap - risk already used

Result = min(all sizes), clamped to max position size.

Returns None when:
- No size-relevant violation exists
- Entry equals stop (no price distance)
- Entry or stop is missing or non-finite

============================================================
"""

from typing import Iterable, List, Optional
import logging

from .aggregator import WindowAggregates, finite_or_none
from .config import EngineSettings, effective_limit
from .types import Candidate, RuleId, Violation


logger = logging.getLogger(__name__)


class PositionSizeSuggester:
    """
    Computes a safe position size from violations.
    """

    def suggest(
        self,
        candidate: Candidate,
        violations: Iterable[Violation],
        settings: EngineSettings,
        aggregates: Optional[WindowAggregates] = None,
    ) -> Optional[float]:
        """
        Suggest a position size satisfying the violated caps.

        Args:
            candidate: The candidate that produced the violations
            violations: Violations from the rule evaluator
            settings: Engine configuration
            aggregates: Windowed history (for daily/weekly headroom)

        Returns:
            Suggested size, or None if not applicable
        """
        violated = {v.rule_id for v in violations if v.rule_id.is_size_relevant}
        if not violated:
            return None

        entry = finite_or_none(candidate.entry_price)
        stop = finite_or_none(candidate.stop_loss)
        if entry is None or stop is None:
            return None

        distance = abs(entry - stop)
        if distance == 0:
            return None

        leverage = finite_or_none(candidate.leverage)
        if not leverage:
            leverage = 1.0
        risk_per_unit = distance * abs(leverage)

        base_capital = settings.base_capital()
        sizes: List[float] = []

        if RuleId.RISK_PER_TRADE in violated:
            cap = effective_limit(settings.risk.max_risk_per_trade)
            if cap is not None:
                sizes.append(self._size_for(cap, base_capital, risk_per_unit))

        if RuleId.DAILY_RISK_CAP in violated:
            cap = effective_limit(settings.risk.max_risk_daily)
            if cap is not None:
                used = aggregates.risk_today_pct if aggregates else 0.0
                sizes.append(self._size_for(cap - used, base_capital, risk_per_unit))

        if RuleId.WEEKLY_RISK_CAP in violated:
            cap = effective_limit(settings.risk.max_risk_weekly)
            if cap is not None:
                used = aggregates.risk_this_week_pct if aggregates else 0.0
                sizes.append(self._size_for(cap - used, base_capital, risk_per_unit))

        max_size = effective_limit(settings.rules.max_position_size)
        if max_size is not None and (sizes or RuleId.MAX_POSITION_SIZE in violated):
            sizes.append(max_size)

        if not sizes:
            return None

        suggested = max(0.0, min(sizes))
        logger.debug(f"Suggested position size {suggested:g} for {sorted(r.value for r in violated)}")
        return suggested

    @staticmethod
    def _size_for(headroom_pct: float, base_capital: float, risk_per_unit: float) -> float:
        if headroom_pct <= 0 or base_capital <= 0:
            return 0.0
        return headroom_pct / 100 * base_capital / risk_per_unit
