"""
Trade Rule Engine - Rule Catalog Base.

============================================================
PURPOSE
============================================================
Every rule is a tagged variant: an identifier plus a pure
check function collected in an ordered catalog.

Rules are:
- Pure (no side effects, no hidden state)
- Independent (evaluation order never changes the result set)
- Tolerant (unset config = inactive, malformed candidate
  numbers = not evaluable, never a trigger)

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..aggregator import WindowAggregates
from ..config import EngineSettings
from ..types import Candidate, RuleId, Severity, Violation


RuleCheck = Callable[
    [Optional[Candidate], WindowAggregates, EngineSettings],
    Optional[Violation],
]


class RuleCategory(str, Enum):
    """Settings group a rule belongs to."""

    TRADING_RULES = "TRADING_RULES"
    SESSIONS = "SESSIONS"
    RISK = "RISK"
    DISCIPLINE = "DISCIPLINE"
    GOALS = "GOALS"


@dataclass(frozen=True)
class TradingRule:
    """
    One entry of the rule catalog.
    """

    rule_id: RuleId
    """Tag of the variant."""

    category: RuleCategory
    """Settings group."""

    description: str
    """What this rule checks."""

    check: RuleCheck
    """Pure evaluation function."""

    needs_candidate: bool = False
    """
    Whether the rule only makes sense for a concrete candidate.
    Such rules are skipped by the candidate-free global status.
    """

    def evaluate(
        self,
        candidate: Optional[Candidate],
        aggregates: WindowAggregates,
        settings: EngineSettings,
    ) -> Optional[Violation]:
        if self.needs_candidate and candidate is None:
            return None
        return self.check(candidate, aggregates, settings)


def violation(
    rule_id: RuleId,
    message: str,
    severity: Severity = Severity.ERROR,
) -> Violation:
    """
    Create a violation.

    Args:
        rule_id: Rule that fired
        message: Human-readable message
        severity: Defaults to ERROR (blocking)
    """
    return Violation(rule_id=rule_id, message=message, severity=severity)
