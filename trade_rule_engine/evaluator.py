"""
Trade Rule Engine - Rule Evaluator.

============================================================
PURPOSE
============================================================
Runs the rule catalog against one candidate.

============================================================
CRITICAL BEHAVIOR
============================================================
1. NEVER THROWS
   - A rule that raises is logged and skipped
   - A partially evaluable candidate still yields every
     violation that can be computed

2. PURE
   - Same input = same violation set
   - No writes, no hidden state

3. ORDER-INDEPENDENT
   - Catalog order only affects list order, never content
   - Callers sort by severity for display

============================================================
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence
import logging

from .aggregator import WindowAggregates
from .config import EngineSettings
from .rules import DEFAULT_RULES, TradingRule
from .types import (
    ActionDecision,
    Candidate,
    Severity,
    TradeRecord,
    TradeRuleStatus,
    Violation,
)


logger = logging.getLogger(__name__)


def sort_violations(violations: Iterable[Violation]) -> List[Violation]:
    """Most severe first; stable within a severity."""
    return sorted(violations, key=lambda v: v.severity, reverse=True)


def has_severity(violations: Iterable[Violation], severity: Severity) -> bool:
    return any(v.severity == severity for v in violations)


def errors_of(violations: Iterable[Violation]) -> List[Violation]:
    return [v for v in violations if v.severity == Severity.ERROR]


def trade_rule_status(trade: TradeRecord) -> TradeRuleStatus:
    """
    Classify a recorded trade by the violations it was accepted with.

    Any ERROR makes the trade critical; anything else is minor.
    """
    if not trade.violations:
        return TradeRuleStatus.CLEAN
    if errors_of(trade.violations):
        return TradeRuleStatus.CRITICAL_VIOLATION
    return TradeRuleStatus.MINOR_VIOLATION


def record_trade(
    candidate: Candidate,
    decision: ActionDecision,
    now: datetime,
    trade_id: str,
) -> TradeRecord:
    """
    Trade record for a candidate the trader went ahead with.

    The violations of the decision are stored on the record so
    the journal can show how the trade was taken.
    """
    record = candidate.to_trade_record(now, trade_id=trade_id)
    record.violations = list(decision.violations)
    return record


class RuleEvaluator:
    """
    Evaluates the rule catalog.

    Usage:
        evaluator = RuleEvaluator()
        violations = evaluator.evaluate(candidate, aggregates, settings)
    """

    def __init__(self, rules: Optional[Sequence[TradingRule]] = None):
        """
        Initialize evaluator.

        Args:
            rules: Rule catalog (uses DEFAULT_RULES if None)
        """
        self._rules = tuple(rules) if rules is not None else DEFAULT_RULES

    @property
    def rules(self) -> Sequence[TradingRule]:
        return self._rules

    def evaluate(
        self,
        candidate: Optional[Candidate],
        aggregates: WindowAggregates,
        settings: EngineSettings,
    ) -> List[Violation]:
        """
        Evaluate every rule.

        Args:
            candidate: Proposed action, or None for context-only rules
            aggregates: Windowed history
            settings: Engine configuration

        Returns:
            Violations in catalog order
        """
        violations: List[Violation] = []

        for rule in self._rules:
            try:
                result = rule.evaluate(candidate, aggregates, settings)
            except Exception as e:
                logger.warning(
                    f"Rule {rule.rule_id.value} could not be evaluated: {e}",
                    exc_info=True,
                )
                continue

            if result is not None:
                violations.append(result)

        logger.debug(
            f"Evaluated {len(self._rules)} rules: "
            f"{len(violations)} violations "
            f"({len(errors_of(violations))} blocking)"
        )

        return violations

    def get_rule_info(self) -> List[dict]:
        """
        Get information about registered rules.

        Useful for settings screens and diagnostics.
        """
        return [
            {
                "rule_id": rule.rule_id.value,
                "category": rule.category.value,
                "description": rule.description,
                "needs_candidate": rule.needs_candidate,
            }
            for rule in self._rules
        ]
