"""
Trade Rule Engine - Goal Constraint Evaluator.

============================================================
PURPOSE
============================================================
Turns the trader's binding goals into extra rules and applies
one-time consequences when a binding goal fails.

============================================================
CONSTRAINTS (active binding goals, now in [start, end))
============================================================
- session: local hour must lie in the session band
- hours: local hour must lie in [start_hour, end_hour)
- max-trades: trades entered in the period + 1 > max
- max-loss: realised PnL of the period <= -|max|

Violating a binding constraint is always an ERROR.

============================================================
FAILURE AND CONSEQUENCES
============================================================
A binding goal FAILS when its period has ended, it is not
completed and its target was not reached (trade-count goals
are ceilings).

Consequences are applied EXACTLY ONCE per dedup key
(goal_id, failure date):
- cooldown: lockout for N hours
- reduce risk: max_risk_per_trade x (1 - pct/100), floor 0.1%
- partial block: new trade creation disabled
- full block: overall status forced to blocked

============================================================
"""

from dataclasses import replace
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Iterable, List, Optional, Tuple
import logging

from .clock import ensure_utc
from .config import (
    MIN_RISK_PER_TRADE_PCT,
    EngineSettings,
    effective_limit,
)
from .aggregator import finite_or_none
from .lockout import LockoutStateMachine
from .rules.base import violation
from .sessions import (
    hour_in_window,
    local_date,
    period_window,
    session_hours,
    to_local,
    valid_hour_window,
)
from .types import (
    ConfigurationPatch,
    GoalConstraintKind,
    RuleId,
    TradeRecord,
    TradingGoal,
    Violation,
)


logger = logging.getLogger(__name__)


def dedup_key(goal_id: str, failure_date: date) -> str:
    """Key under which a goal failure is recorded."""
    return f"{goal_id}:{failure_date.isoformat()}"


def apply_patch(settings: EngineSettings, patch: ConfigurationPatch) -> EngineSettings:
    """
    Apply a configuration patch.

    Returns:
        New settings; the input is not modified
    """
    updated = settings.copy()
    if patch.is_empty():
        return updated

    if patch.blocked_until is not None:
        updated.lockout = replace(updated.lockout, blocked_until=patch.blocked_until)

    if patch.max_risk_per_trade is not None:
        updated.risk.max_risk_per_trade = patch.max_risk_per_trade

    if patch.partial_block or patch.full_block:
        blocks = updated.goal_blocks
        blocks.partial_block = blocks.partial_block or patch.partial_block
        blocks.full_block = blocks.full_block or patch.full_block
        if patch.goal_id not in blocks.goal_ids:
            blocks.goal_ids.append(patch.goal_id)

    return updated


class GoalConstraintEvaluator:
    """
    Evaluates binding goals.

    Usage:
        goals = GoalConstraintEvaluator(tz)
        violations = goals.evaluate(active_goals, trades, now)

        for goal in goals.failed_goals(all_goals, now):
            patch = goals.apply_consequences(goal, settings, now, log)
    """

    def __init__(
        self,
        tz: tzinfo,
        lockout: Optional[LockoutStateMachine] = None,
    ):
        """
        Initialize evaluator.

        Args:
            tz: Trader time zone
            lockout: State machine used for cooldown consequences
        """
        self._tz = tz
        self._lockout = lockout or LockoutStateMachine(tz)

    # =========================================================
    # PERIOD WINDOW
    # =========================================================

    def window(self, goal: TradingGoal, now: datetime) -> Tuple[datetime, datetime]:
        """
        Period window of a goal.

        Explicit start/end win; missing bounds are derived from
        the period around start (or now).
        """
        anchor = goal.start or now
        start, end = period_window(goal.period, anchor, self._tz)
        if goal.start is not None:
            start = goal.start
        if goal.end is not None:
            end = goal.end
        return ensure_utc(start), ensure_utc(end)

    def is_active(self, goal: TradingGoal, now: datetime) -> bool:
        if not goal.is_binding:
            return False
        start, end = self.window(goal, now)
        return start <= ensure_utc(now) < end

    # =========================================================
    # CONSTRAINTS
    # =========================================================

    def evaluate(
        self,
        goals: Iterable[TradingGoal],
        trades: List[TradeRecord],
        now: datetime,
    ) -> List[Violation]:
        """
        Evaluate constraints of active binding goals.

        A goal that cannot be evaluated is logged and skipped.
        """
        now = ensure_utc(now)
        violations: List[Violation] = []

        for goal in goals:
            if goal.constraint is None or not self.is_active(goal, now):
                continue
            try:
                result = self._check(goal, trades, now)
            except Exception as e:
                logger.warning(
                    f"Goal {goal.goal_id} constraint could not be evaluated: {e}",
                    exc_info=True,
                )
                continue
            if result is not None:
                violations.append(result)

        return violations

    def _check(
        self,
        goal: TradingGoal,
        trades: List[TradeRecord],
        now: datetime,
    ) -> Optional[Violation]:
        constraint = goal.constraint
        hour = to_local(now, self._tz).hour

        if constraint.kind == GoalConstraintKind.SESSION:
            if constraint.session is None:
                return None
            start_hour, end_hour = session_hours(constraint.session)
            if not hour_in_window(hour, start_hour, end_hour):
                return violation(
                    RuleId.GOAL_SESSION,
                    f"Goal {goal.goal_id} only allows trading during the "
                    f"{constraint.session.value} session "
                    f"({start_hour:02d}:00 - {end_hour:02d}:00)",
                )
            return None

        if constraint.kind == GoalConstraintKind.HOURS:
            start_hour = constraint.start_hour if constraint.start_hour is not None else 0
            end_hour = constraint.end_hour if constraint.end_hour is not None else 23
            if not valid_hour_window(start_hour, end_hour):
                return None
            if not hour_in_window(hour, start_hour, end_hour):
                return violation(
                    RuleId.GOAL_HOURS,
                    f"Goal {goal.goal_id} only allows trading between "
                    f"{start_hour:02d}:00 and {end_hour:02d}:00",
                )
            return None

        raw_limit = constraint.max_value if constraint.max_value is not None else goal.target
        limit = effective_limit(
            abs(raw_limit)
            if isinstance(raw_limit, (int, float)) and not isinstance(raw_limit, bool)
            else raw_limit
        )
        if limit is None:
            return None

        start, _ = self.window(goal, now)
        period_trades = [
            trade for trade in trades
            if start <= ensure_utc(trade.entry_time) <= now
        ]

        if constraint.kind == GoalConstraintKind.MAX_TRADES:
            if len(period_trades) + 1 > limit:
                return violation(
                    RuleId.GOAL_MAX_TRADES,
                    f"Goal {goal.goal_id} limit of {int(limit)} trades for this "
                    f"{goal.period.value} period reached",
                )
            return None

        if constraint.kind == GoalConstraintKind.MAX_LOSS:
            pnl = sum(
                finite_or_none(trade.pnl) or 0.0
                for trade in period_trades
                if trade.is_closed
            )
            if limit > 0 and pnl <= -limit:
                return violation(
                    RuleId.GOAL_MAX_LOSS,
                    f"Goal {goal.goal_id} loss limit of {limit:.2f} for this "
                    f"{goal.period.value} period reached ({pnl:.2f})",
                )
            return None

        return None

    @staticmethod
    def block_violations(settings: EngineSettings) -> List[Violation]:
        """Violations for blocks set by earlier goal failures."""
        blocks = settings.goal_blocks
        goal_ids = ", ".join(blocks.goal_ids) or "unknown goal"
        violations = []

        if blocks.full_block:
            violations.append(violation(
                RuleId.GOAL_FULL_BLOCK,
                f"Trading fully blocked by failed binding goal ({goal_ids})",
            ))
        if blocks.partial_block:
            violations.append(violation(
                RuleId.GOAL_PARTIAL_BLOCK,
                f"New trades disabled by failed binding goal ({goal_ids})",
            ))

        return violations

    # =========================================================
    # FAILURE
    # =========================================================

    def is_failed(self, goal: TradingGoal, now: datetime) -> bool:
        if not goal.is_binding or goal.completed:
            return False
        _, end = self.window(goal, now)
        if ensure_utc(now) < end:
            return False
        return not goal.target_reached()

    def failure_date(self, goal: TradingGoal, now: datetime) -> date:
        """Last local day of the failed period."""
        _, end = self.window(goal, now)
        return local_date(end - timedelta(microseconds=1), self._tz)

    def failed_goals(self, goals: Iterable[TradingGoal], now: datetime) -> List[TradingGoal]:
        return [goal for goal in goals if self.is_failed(goal, now)]

    # =========================================================
    # CONSEQUENCES
    # =========================================================

    def build_patch(
        self,
        goal: TradingGoal,
        settings: EngineSettings,
        now: datetime,
    ) -> ConfigurationPatch:
        """Compute the consequence patch without recording it."""
        failure_day = self.failure_date(goal, now)
        patch = ConfigurationPatch(
            goal_id=goal.goal_id,
            dedup_key=dedup_key(goal.goal_id, failure_day),
            failure_date=failure_day,
        )

        consequences = goal.consequences
        if not goal.is_binding or consequences is None or consequences.is_empty():
            return patch

        cooldown = effective_limit(consequences.cooldown_hours)
        if cooldown:
            state, transition = self._lockout.start_cooldown(
                settings.lockout,
                now,
                cooldown,
                reason=f"goal {goal.goal_id} failed",
            )
            if transition is not None:
                patch.blocked_until = state.blocked_until

        reduce_pct = effective_limit(consequences.reduce_risk_percent)
        current_risk = effective_limit(settings.risk.max_risk_per_trade)
        if reduce_pct and current_risk is not None:
            reduced = current_risk * (1 - min(reduce_pct, 100.0) / 100)
            patch.max_risk_per_trade = max(MIN_RISK_PER_TRADE_PCT, reduced)

        patch.partial_block = consequences.partial_block
        patch.full_block = consequences.full_block

        return patch

    def apply_consequences(
        self,
        goal: TradingGoal,
        settings: EngineSettings,
        now: datetime,
        log,
        persist: Optional[Callable[[ConfigurationPatch], None]] = None,
    ) -> ConfigurationPatch:
        """
        Apply the consequences of a failed goal exactly once.

        Args:
            goal: The failed binding goal
            settings: Current settings snapshot
            now: Evaluation instant
            log: ConsequenceLog used for deduplication
            persist: Writes the patch; called before the log entry
                is recorded so a failed write can be retried

        Returns:
            The patch (applied=True) or an empty patch if this
            failure was already handled
        """
        failure_day = self.failure_date(goal, now)
        key = dedup_key(goal.goal_id, failure_day)

        if log.has(key):
            logger.debug(f"Consequences for {key} already applied")
            return ConfigurationPatch(
                goal_id=goal.goal_id,
                dedup_key=key,
                failure_date=failure_day,
            )

        patch = self.build_patch(goal, settings, now)
        if patch.is_empty():
            if goal.consequences is not None and not goal.consequences.is_empty():
                # e.g. a cooldown inside a longer active lockout; still handled
                log.record(key, patch)
                logger.info(
                    f"Consequences of failed goal {goal.goal_id} ({key}) "
                    f"left the settings unchanged"
                )
            return patch

        patch.applied = True
        if persist is not None:
            persist(patch)
        log.record(key, patch)

        logger.info(
            f"Applied consequences of failed goal {goal.goal_id} ({key}): "
            f"blocked_until={patch.blocked_until}, "
            f"max_risk_per_trade={patch.max_risk_per_trade}, "
            f"partial_block={patch.partial_block}, full_block={patch.full_block}"
        )

        return patch
