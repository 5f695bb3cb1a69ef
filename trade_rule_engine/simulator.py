"""
Trade Rule Engine - Simulator.

============================================================
PURPOSE
============================================================
Previews a hypothetical candidate.

Runs aggregation → rule evaluation → status aggregation as if
the candidate were already part of the history.

CRITICAL CONSTRAINT:
- Nothing is written: trade history, settings and lockout
  state are left untouched
- Lockout transitions are NOT computed

============================================================
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence
import logging

from .aggregator import HistoricalAggregator
from .config import EngineSettings
from .evaluator import RuleEvaluator
from .goals import GoalConstraintEvaluator
from .rules import candidate_risk_pct
from .status import RiskStatusAggregator
from .types import (
    Candidate,
    SimulationResult,
    TradeRecord,
    TradingGoal,
    Violation,
)


logger = logging.getLogger(__name__)


class Simulator:
    """
    Side-effect free preview of a candidate.

    Usage:
        simulator = Simulator()
        result = simulator.simulate(candidate, trades, settings, now)
    """

    def __init__(
        self,
        evaluator: Optional[RuleEvaluator] = None,
        status_aggregator: Optional[RiskStatusAggregator] = None,
    ):
        self._evaluator = evaluator or RuleEvaluator()
        self._status = status_aggregator or RiskStatusAggregator()

    def simulate(
        self,
        candidate: Candidate,
        trades: Sequence[TradeRecord],
        settings: EngineSettings,
        now: datetime,
        goals: Iterable[TradingGoal] = (),
    ) -> SimulationResult:
        """
        Simulate a candidate.

        Args:
            candidate: Hypothetical action
            trades: Trade history snapshot
            settings: Configuration snapshot
            now: Evaluation instant, unless the candidate carries
                its own entry time
            goals: Goals snapshot (binding constraints are included)

        Returns:
            SimulationResult
        """
        goals = list(goals)
        history = list(trades)
        aggregator = HistoricalAggregator.from_settings(settings)

        at = candidate.evaluated_at(now)
        baseline = aggregator.aggregate(history, at)

        record = candidate.to_trade_record(now)
        with_candidate = aggregator.aggregate(history + [record], at)

        # Count rules already include the candidate (count + 1),
        # so they run against the baseline aggregates.
        without = self._violations(None, baseline, history, settings, at, goals)
        hypothetical = self._violations(candidate, baseline, history, settings, at, goals)

        present = {(v.rule_id, v.severity) for v in without}
        would_trigger = [
            v for v in hypothetical
            if (v.rule_id, v.severity) not in present
        ]

        status = self._status.aggregate(hypothetical, with_candidate, settings, now)

        result = SimulationResult(
            before=baseline.risk_today_pct,
            after=with_candidate.risk_today_pct,
            would_trigger=would_trigger,
            final_status=status.status,
            weekly_before=baseline.risk_this_week_pct,
            weekly_after=with_candidate.risk_this_week_pct,
            candidate_risk_pct=candidate_risk_pct(candidate, baseline.base_capital),
            drawdown_before=baseline.current_drawdown_pct,
            drawdown_after=with_candidate.current_drawdown_pct,
        )

        logger.debug(
            f"Simulated candidate: daily risk {result.before:.2f}% → "
            f"{result.after:.2f}%, {len(would_trigger)} new violations, "
            f"status {result.final_status.value}"
        )

        return result

    def _violations(
        self,
        candidate: Optional[Candidate],
        aggregates,
        trades: List[TradeRecord],
        settings: EngineSettings,
        now: datetime,
        goals: List[TradingGoal],
    ) -> List[Violation]:
        violations = self._evaluator.evaluate(candidate, aggregates, settings)
        if goals:
            goal_evaluator = GoalConstraintEvaluator(settings.sessions.tzinfo())
            violations.extend(goal_evaluator.evaluate(goals, trades, now))
        return violations
