"""
Trade Rule Engine - Discipline Rules.

CHECKS:
- cooldown-after-loss: time since the last losing close < cooldown
- consecutive-losses: losing streak >= configured maximum
- psychological-reminder: configured reminders, always info
"""

from datetime import timedelta
from typing import Optional

from ..aggregator import WindowAggregates
from ..config import EngineSettings, effective_limit
from ..types import Candidate, RuleId, Severity, Violation
from .base import RuleCategory, TradingRule, violation


def check_cooldown_after_loss(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    minutes = effective_limit(settings.discipline.cooldown_after_loss_minutes)
    if not minutes or aggregates.last_loss_time is None:
        return None

    cooldown_end = aggregates.last_loss_time + timedelta(minutes=minutes)
    if aggregates.now < cooldown_end:
        remaining = (cooldown_end - aggregates.now).total_seconds() / 60
        return violation(
            RuleId.COOLDOWN_AFTER_LOSS,
            f"Cooldown after loss active: {remaining:.0f} of {minutes:g} minutes remaining",
        )
    return None


def check_consecutive_losses(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    max_losses = effective_limit(settings.discipline.max_consecutive_losses)
    if not max_losses:
        return None

    if aggregates.consecutive_losses >= max_losses:
        return violation(
            RuleId.CONSECUTIVE_LOSSES,
            f"{aggregates.consecutive_losses} consecutive losing trades "
            f"(maximum {int(max_losses)}), pause required",
        )
    return None


def check_psychological_reminders(
    candidate: Optional[Candidate],
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> Optional[Violation]:
    reminders = [
        reminder.strip()
        for reminder in settings.rules.psychological_reminders
        if reminder and reminder.strip()
    ]
    if not reminders:
        return None

    return violation(
        RuleId.PSYCHOLOGICAL_REMINDER,
        "Reminders: " + "; ".join(reminders),
        Severity.INFO,
    )


DISCIPLINE_RULES = (
    TradingRule(
        rule_id=RuleId.COOLDOWN_AFTER_LOSS,
        category=RuleCategory.DISCIPLINE,
        description="Waiting period after a losing close",
        check=check_cooldown_after_loss,
    ),
    TradingRule(
        rule_id=RuleId.CONSECUTIVE_LOSSES,
        category=RuleCategory.DISCIPLINE,
        description="Maximum losing streak before a forced pause",
        check=check_consecutive_losses,
    ),
    TradingRule(
        rule_id=RuleId.PSYCHOLOGICAL_REMINDER,
        category=RuleCategory.DISCIPLINE,
        description="Free-text reminders, informational only",
        check=check_psychological_reminders,
    ),
)
