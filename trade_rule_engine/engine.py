"""
Trade Rule Engine - Main Engine.

============================================================
PURPOSE
============================================================
The TradeRuleEngine decides, BEFORE a position is recorded,
whether the action is allowed, needs confirmation, or must be
blocked, and keeps the lockout state up to date.

============================================================
CRITICAL BEHAVIOR
============================================================
1. SNAPSHOT IN, DECISION OUT
   - Trades, settings and goals are read from the stores on
     every call
   - "Now" always comes from the injected clock

2. RULE FAILURES NEVER ESCAPE
   - A rule that cannot be evaluated is skipped
   - A status is always returned

3. WRITES ARE IDEMPOTENT
   - Only lockout transitions and goal consequences write
   - Goal consequences are applied once per failure key

4. SEVERITY
   - ERROR blocks the action
   - WARNING requires explicit confirmation
   - INFO is surfaced only

============================================================
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple
import logging
import uuid

from .aggregator import (
    HistoricalAggregator,
    RealTimeRiskMetrics,
    WindowAggregates,
    compute_real_time_metrics,
)
from .clock import Clock, SystemClock
from .config import EngineSettings
from .evaluator import RuleEvaluator, errors_of, sort_violations
from .goals import GoalConstraintEvaluator, apply_patch
from .lockout import LockoutStateMachine
from .simulator import Simulator
from .sizing import PositionSizeSuggester
from .status import RiskStatusAggregator
from .stores import (
    ConsequenceLog,
    GoalStore,
    InMemoryConsequenceLog,
    InMemoryGoalStore,
    InMemorySettingsStore,
    InMemoryTradeStore,
    SettingsStore,
    TradeStore,
)
from .types import (
    ActionDecision,
    Candidate,
    ConfigurationPatch,
    OverallStatus,
    RiskStatus,
    SimulationResult,
    TradeRecord,
    TradingGoal,
    Violation,
)


logger = logging.getLogger(__name__)


class TradeRuleEngine:
    """
    Trading rule and risk enforcement engine.

    Usage:
        engine = TradeRuleEngine(trade_store, settings_store, goal_store)

        violations = engine.evaluate(candidate)
        status = engine.calculate_global_risk_status()

        decision = engine.record_action(candidate)
        if decision.allowed and not decision.requires_confirmation:
            # Hand over to the journal to create the trade
            pass
    """

    def __init__(
        self,
        trade_store: TradeStore,
        settings_store: SettingsStore,
        goal_store: Optional[GoalStore] = None,
        consequence_log: Optional[ConsequenceLog] = None,
        clock: Optional[Clock] = None,
        evaluator: Optional[RuleEvaluator] = None,
        evaluation_log=None,
    ):
        """
        Initialize engine.

        Args:
            trade_store: Trade history source
            settings_store: Settings source and sink
            goal_store: Goals source (no goals if None)
            consequence_log: Goal consequence log (in-memory if None)
            clock: Time source (system clock if None)
            evaluator: Rule evaluator (default catalog if None)
            evaluation_log: Optional EvaluationLogRepository for audit
        """
        self._trades = trade_store
        self._settings = settings_store
        self._goals = goal_store or InMemoryGoalStore()
        self._consequences = consequence_log or InMemoryConsequenceLog()
        self._clock = clock or SystemClock()
        self._evaluator = evaluator or RuleEvaluator()
        self._status = RiskStatusAggregator()
        self._suggester = PositionSizeSuggester()
        self._simulator = Simulator(self._evaluator, self._status)
        self._evaluation_log = evaluation_log

        logger.info(
            f"TradeRuleEngine initialized with {len(self._evaluator.rules)} rules"
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    # =========================================================
    # SNAPSHOT
    # =========================================================

    def _snapshot(self) -> Tuple[EngineSettings, List[TradeRecord], List[TradingGoal], datetime]:
        return (
            self._settings.load(),
            self._trades.list_trades(),
            self._goals.list_goals(),
            self._clock.now(),
        )

    def _violations(
        self,
        candidate: Optional[Candidate],
        aggregates: WindowAggregates,
        settings: EngineSettings,
        trades: List[TradeRecord],
        goals: List[TradingGoal],
        now: datetime,
    ) -> List[Violation]:
        """Rule catalog plus binding goal constraints."""
        violations = self._evaluator.evaluate(candidate, aggregates, settings)

        goal_evaluator = GoalConstraintEvaluator(settings.sessions.tzinfo())
        violations.extend(goal_evaluator.evaluate(goals, trades, now))

        if candidate is not None:
            violations.extend(goal_evaluator.block_violations(settings))

        return violations

    # =========================================================
    # EXPOSED OPERATIONS
    # =========================================================

    def evaluate(self, candidate: Candidate) -> List[Violation]:
        """
        Evaluate a candidate action.

        Time-based rules use the candidate's entry time when it
        has one. Pure: nothing is written.

        Returns:
            Violations, most severe first
        """
        settings, trades, goals, now = self._snapshot()
        at = candidate.evaluated_at(now)
        aggregates = HistoricalAggregator.from_settings(settings).aggregate(trades, at)
        return sort_violations(
            self._violations(candidate, aggregates, settings, trades, goals, at)
        )

    def calculate_global_risk_status(self) -> RiskStatus:
        """
        Overall status independent of any candidate.
        """
        settings, trades, goals, now = self._snapshot()
        aggregates = HistoricalAggregator.from_settings(settings).aggregate(trades, now)
        violations = self._violations(None, aggregates, settings, trades, goals, now)
        return self._status.aggregate(violations, aggregates, settings, now)

    def suggest_safe_position_size(
        self,
        candidate: Candidate,
        violations: Optional[Iterable[Violation]] = None,
    ) -> Optional[float]:
        """
        Largest size satisfying the violated risk caps.

        Args:
            candidate: The candidate
            violations: Its violations (evaluated if None)
        """
        settings, trades, _, now = self._snapshot()
        aggregates = HistoricalAggregator.from_settings(settings).aggregate(
            trades, candidate.evaluated_at(now)
        )
        if violations is None:
            violations = self._evaluator.evaluate(candidate, aggregates, settings)
        return self._suggester.suggest(candidate, violations, settings, aggregates)

    def simulate(self, candidate: Candidate) -> SimulationResult:
        """Preview a candidate without writing anything."""
        settings, trades, goals, now = self._snapshot()
        return self._simulator.simulate(candidate, trades, settings, now, goals)

    def apply_goal_consequences(self, failed_goal: TradingGoal) -> ConfigurationPatch:
        """
        Apply the consequences of a failed binding goal.

        Idempotent per (goal_id, failure date): a repeated call
        returns an unapplied patch and changes nothing.
        """
        settings = self._settings.load()
        now = self._clock.now()
        goal_evaluator = GoalConstraintEvaluator(
            settings.sessions.tzinfo(),
            LockoutStateMachine(settings.sessions.tzinfo()),
        )

        def persist(patch: ConfigurationPatch) -> None:
            self._settings.save(apply_patch(settings, patch))

        return goal_evaluator.apply_consequences(
            failed_goal,
            settings,
            now,
            self._consequences,
            persist=persist,
        )

    # =========================================================
    # ACTIONS
    # =========================================================

    def record_action(self, candidate: Candidate) -> ActionDecision:
        """
        Evaluate a candidate the trader is submitting.

        Fires the lockout transition on blocking violations and
        persists the new lockout state.

        Returns:
            ActionDecision
        """
        settings, trades, goals, now = self._snapshot()
        tz = settings.sessions.tzinfo()
        machine = LockoutStateMachine(tz)

        expired_state, expired = machine.expire(settings.lockout, now)
        if expired is not None:
            settings.lockout = expired_state
            self._settings.save(settings)

        at = candidate.evaluated_at(now)
        aggregates = HistoricalAggregator.from_settings(settings).aggregate(trades, at)
        violations = sort_violations(
            self._violations(candidate, aggregates, settings, trades, goals, at)
        )

        new_state, transition = machine.trigger(
            settings.lockout,
            now,
            violations,
            force_session_close=settings.discipline.force_session_close_on_critical,
        )
        if transition is not None:
            settings.lockout = new_state
            self._settings.save(settings)

        status = self._status.aggregate(violations, aggregates, settings, now)
        allowed = not status.is_blocked

        decision = ActionDecision(
            allowed=allowed,
            requires_confirmation=status.status == OverallStatus.WARNING,
            violations=violations,
            status=status,
            lockout_triggered=transition is not None,
            suggested_size=self._suggester.suggest(candidate, violations, settings, aggregates),
        )

        if not allowed:
            logger.info(
                f"Action blocked: {len(errors_of(violations))} blocking violations, "
                f"status {status.status.value}"
            )

        if self._evaluation_log is not None:
            self._evaluation_log.log_decision(
                evaluation_id=self._generate_evaluation_id(now),
                decision=decision,
                timestamp=now,
                asset=candidate.asset,
            )

        return decision

    def unblock(self, clear_goal_blocks: bool = False) -> bool:
        """
        Manual unblock.

        Args:
            clear_goal_blocks: Also clear blocks set by failed goals

        Returns:
            True if anything changed
        """
        settings = self._settings.load()
        now = self._clock.now()

        new_state, transition = LockoutStateMachine().clear(settings.lockout, now)
        changed = transition is not None
        settings.lockout = new_state

        blocks = settings.goal_blocks
        if clear_goal_blocks and (blocks.partial_block or blocks.full_block):
            logger.info(f"Goal blocks cleared ({', '.join(blocks.goal_ids)})")
            blocks.partial_block = False
            blocks.full_block = False
            blocks.goal_ids = []
            changed = True

        if changed:
            self._settings.save(settings)
        return changed

    def process_goal_failures(self) -> List[ConfigurationPatch]:
        """
        Apply consequences of every failed binding goal.

        Returns:
            Patches applied by this call
        """
        settings, _, goals, now = self._snapshot()
        goal_evaluator = GoalConstraintEvaluator(settings.sessions.tzinfo())

        applied = []
        for goal in goal_evaluator.failed_goals(goals, now):
            patch = self.apply_goal_consequences(goal)
            if patch.applied:
                applied.append(patch)
        return applied

    def real_time_metrics(self) -> RealTimeRiskMetrics:
        settings, trades, _, now = self._snapshot()
        aggregates = HistoricalAggregator.from_settings(settings).aggregate(trades, now)
        return compute_real_time_metrics(aggregates, settings)

    # =========================================================
    # DIAGNOSTICS
    # =========================================================

    def _generate_evaluation_id(self, now: datetime) -> str:
        """Generate unique evaluation ID."""
        return f"RULE-{now.strftime('%Y%m%d%H%M%S%f')}-{uuid.uuid4().hex[:8]}"

    def get_rule_info(self) -> List[dict]:
        return self._evaluator.get_rule_info()

    def health_check(self) -> dict:
        """Status of the engine components."""
        return {
            "status": "OK",
            "timestamp": self._clock.now().isoformat(),
            "rule_count": len(self._evaluator.rules),
            "rules": [rule.rule_id.value for rule in self._evaluator.rules],
        }


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def create_rule_engine(
    settings: Optional[EngineSettings] = None,
    trades: Optional[Iterable[TradeRecord]] = None,
    goals: Optional[Iterable[TradingGoal]] = None,
    clock: Optional[Clock] = None,
) -> TradeRuleEngine:
    """
    Create an engine over in-memory snapshots.

    Args:
        settings: Configuration (defaults if None)
        trades: Trade history
        goals: Trading goals
        clock: Time source

    Returns:
        Configured TradeRuleEngine instance
    """
    return TradeRuleEngine(
        trade_store=InMemoryTradeStore(trades),
        settings_store=InMemorySettingsStore(settings),
        goal_store=InMemoryGoalStore(goals),
        clock=clock,
    )


def is_action_allowed(engine: TradeRuleEngine, candidate: Candidate) -> bool:
    """
    Quick check without side effects.

    Returns True when the candidate produces no blocking
    violation and the trader is not locked out.
    """
    if engine.calculate_global_risk_status().blocked_until is not None:
        return False
    return not errors_of(engine.evaluate(candidate))
