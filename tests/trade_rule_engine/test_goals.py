"""
Tests for the Goal Constraint Evaluator.

============================================================
TEST SCENARIOS
============================================================
1. Binding constraints: session, hours, max trades, max loss
2. Non-binding and inactive goals are ignored
3. Failure detection after the period ends
4. Consequences applied exactly once per failure
5. Risk reduction floor of 0.1%

============================================================
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from trade_rule_engine import (
    GoalConsequences,
    GoalConstraint,
    GoalConstraintEvaluator,
    GoalConstraintKind,
    GoalMetric,
    GoalPeriod,
    InMemoryConsequenceLog,
    RuleId,
    Severity,
    TradingGoal,
    TradingSession,
    apply_patch,
)
from trade_rule_engine.goals import dedup_key


UTC = ZoneInfo("UTC")


@pytest.fixture
def goals():
    return GoalConstraintEvaluator(UTC)


def binding_goal(constraint=None, consequences=None, **kwargs):
    values = dict(
        goal_id="G1",
        period=GoalPeriod.DAILY,
        metric=GoalMetric.PNL,
        target=100.0,
        is_binding=True,
        constraint=constraint,
        consequences=consequences,
    )
    values.update(kwargs)
    return TradingGoal(**values)


def yesterday_goal(**kwargs):
    """Daily goal whose period ended at midnight before NOW."""
    return binding_goal(
        start=datetime(2024, 1, 9, tzinfo=timezone.utc),
        end=datetime(2024, 1, 10, tzinfo=timezone.utc),
        **kwargs,
    )


class TestConstraints:

    def test_session_outside_band(self, goals, now):
        goal = binding_goal(GoalConstraint(GoalConstraintKind.SESSION, session=TradingSession.ASIAN))
        violations = goals.evaluate([goal], [], now)

        assert [v.rule_id for v in violations] == [RuleId.GOAL_SESSION]
        assert violations[0].severity == Severity.ERROR

    def test_session_inside_band(self, goals, now):
        goal = binding_goal(GoalConstraint(GoalConstraintKind.SESSION, session=TradingSession.LONDON))
        assert goals.evaluate([goal], [], now) == []

    def test_hours(self, goals, now):
        outside = binding_goal(GoalConstraint(GoalConstraintKind.HOURS, start_hour=14, end_hour=18))
        inside = binding_goal(GoalConstraint(GoalConstraintKind.HOURS, start_hour=9, end_hour=17))

        assert [v.rule_id for v in goals.evaluate([outside], [], now)] == [RuleId.GOAL_HOURS]
        assert goals.evaluate([inside], [], now) == []

    def test_hours_end_defaults_to_23(self, goals, now):
        goal = binding_goal(GoalConstraint(GoalConstraintKind.HOURS, start_hour=0))
        late = now.replace(hour=23)

        assert goals.evaluate([goal], [], now) == []
        assert [v.rule_id for v in goals.evaluate([goal], [], late)] == [RuleId.GOAL_HOURS]

    def test_max_trades(self, goals, make_trade, now):
        goal = binding_goal(GoalConstraint(GoalConstraintKind.MAX_TRADES, max_value=2))
        one = [make_trade(entry_time=now - timedelta(hours=2))]
        two = one + [make_trade(entry_time=now - timedelta(hours=1))]

        assert goals.evaluate([goal], one, now) == []
        assert [v.rule_id for v in goals.evaluate([goal], two, now)] == [RuleId.GOAL_MAX_TRADES]

    def test_negative_limit_uses_magnitude(self, goals, make_trade, now):
        goal = binding_goal(GoalConstraint(GoalConstraintKind.MAX_TRADES, max_value=-2))
        one = [make_trade(entry_time=now - timedelta(hours=2))]
        two = one + [make_trade(entry_time=now - timedelta(hours=1))]

        assert goals.evaluate([goal], one, now) == []
        assert [v.rule_id for v in goals.evaluate([goal], two, now)] == [RuleId.GOAL_MAX_TRADES]

    def test_max_trades_ignores_previous_period(self, goals, make_trade, now):
        goal = binding_goal(GoalConstraint(GoalConstraintKind.MAX_TRADES, max_value=1))
        trades = [make_trade(entry_time=now - timedelta(days=1))]
        assert goals.evaluate([goal], trades, now) == []

    def test_max_loss(self, goals, make_trade, now):
        goal = binding_goal(GoalConstraint(GoalConstraintKind.MAX_LOSS, max_value=100))
        trades = [
            make_trade(entry_time=now - timedelta(hours=4), pnl=-80),
            make_trade(entry_time=now - timedelta(hours=3), pnl=-70),
        ]
        violations = goals.evaluate([goal], trades, now)
        assert [v.rule_id for v in violations] == [RuleId.GOAL_MAX_LOSS]

    def test_max_loss_not_reached(self, goals, make_trade, now):
        goal = binding_goal(GoalConstraint(GoalConstraintKind.MAX_LOSS, max_value=100))
        trades = [make_trade(entry_time=now - timedelta(hours=4), pnl=-50)]
        assert goals.evaluate([goal], trades, now) == []

    def test_non_binding_goal_ignored(self, goals, now):
        goal = binding_goal(
            GoalConstraint(GoalConstraintKind.SESSION, session=TradingSession.ASIAN),
            is_binding=False,
        )
        assert goals.evaluate([goal], [], now) == []

    def test_inactive_period_ignored(self, goals, now):
        goal = yesterday_goal(
            constraint=GoalConstraint(GoalConstraintKind.SESSION, session=TradingSession.ASIAN),
        )
        assert not goals.is_active(goal, now)
        assert goals.evaluate([goal], [], now) == []

    def test_block_violations(self, goals, settings):
        settings.goal_blocks.partial_block = True
        settings.goal_blocks.full_block = True
        settings.goal_blocks.goal_ids = ["G1"]

        rule_ids = [v.rule_id for v in goals.block_violations(settings)]

        assert rule_ids == [RuleId.GOAL_FULL_BLOCK, RuleId.GOAL_PARTIAL_BLOCK]


class TestFailure:

    def test_failed_after_period(self, goals, now):
        goal = yesterday_goal(current=50.0)
        assert goals.is_failed(goal, now)
        assert goals.failure_date(goal, now) == date(2024, 1, 9)

    def test_not_failed_while_period_running(self, goals, now):
        assert not goals.is_failed(binding_goal(current=0.0), now)

    def test_target_reached_not_failed(self, goals, now):
        assert not goals.is_failed(yesterday_goal(current=150.0), now)

    def test_completed_not_failed(self, goals, now):
        assert not goals.is_failed(yesterday_goal(current=0.0, completed=True), now)

    def test_trade_count_is_a_ceiling(self, goals, now):
        over = yesterday_goal(metric=GoalMetric.TRADE_COUNT, target=3, current=5)
        under = yesterday_goal(metric=GoalMetric.TRADE_COUNT, target=3, current=2)
        assert goals.failed_goals([over, under], now) == [over]


class TestConsequences:

    def test_applied_exactly_once(self, goals, settings, now):
        settings.risk.max_risk_per_trade = 2.0
        goal = yesterday_goal(consequences=GoalConsequences(reduce_risk_percent=50))
        log = InMemoryConsequenceLog()

        first = goals.apply_consequences(goal, settings, now, log)
        assert first.applied
        assert first.max_risk_per_trade == pytest.approx(1.0)
        assert first.dedup_key == dedup_key("G1", date(2024, 1, 9))

        settings = apply_patch(settings, first)
        second = goals.apply_consequences(goal, settings, now + timedelta(hours=1), log)

        assert not second.applied
        assert second.is_empty()
        assert settings.risk.max_risk_per_trade == pytest.approx(1.0)
        assert len(log.entries()) == 1

    def test_risk_floor(self, goals, settings, now):
        settings.risk.max_risk_per_trade = 0.15
        goal = yesterday_goal(consequences=GoalConsequences(reduce_risk_percent=90))

        patch = goals.build_patch(goal, settings, now)

        assert patch.max_risk_per_trade == pytest.approx(0.1)

    def test_unlimited_risk_not_reduced(self, goals, settings, now):
        goal = yesterday_goal(consequences=GoalConsequences(reduce_risk_percent=50))
        assert goals.build_patch(goal, settings, now).max_risk_per_trade is None

    def test_cooldown(self, goals, settings, now):
        goal = yesterday_goal(consequences=GoalConsequences(cooldown_hours=6))
        patch = goals.build_patch(goal, settings, now)
        assert patch.blocked_until == now + timedelta(hours=6)

    def test_blocks(self, goals, settings, now):
        goal = yesterday_goal(consequences=GoalConsequences(partial_block=True, full_block=True))
        updated = apply_patch(settings, goals.build_patch(goal, settings, now))

        assert updated.goal_blocks.partial_block
        assert updated.goal_blocks.full_block
        assert updated.goal_blocks.goal_ids == ["G1"]
        # Input untouched
        assert not settings.goal_blocks.full_block

    def test_failed_persist_is_retried(self, goals, settings, now):
        goal = yesterday_goal(consequences=GoalConsequences(cooldown_hours=6))
        log = InMemoryConsequenceLog()

        def failing_persist(patch):
            raise RuntimeError("store offline")

        with pytest.raises(RuntimeError):
            goals.apply_consequences(goal, settings, now, log, persist=failing_persist)
        assert not log.has(dedup_key("G1", date(2024, 1, 9)))

        persisted = []
        patch = goals.apply_consequences(goal, settings, now, log, persist=persisted.append)
        assert patch.applied
        assert persisted == [patch]

    def test_no_consequences(self, goals, settings, now):
        log = InMemoryConsequenceLog()
        patch = goals.apply_consequences(yesterday_goal(), settings, now, log)
        assert not patch.applied
        assert log.entries() == []

    def test_cooldown_absorbed_by_longer_lockout(self, goals, settings, now):
        settings.lockout.blocked_until = now + timedelta(hours=10)
        goal = yesterday_goal(consequences=GoalConsequences(cooldown_hours=2))
        log = InMemoryConsequenceLog()

        first = goals.apply_consequences(goal, settings, now, log)

        assert not first.applied
        assert first.is_empty()
        assert log.has(dedup_key("G1", date(2024, 1, 9)))

        settings.lockout.blocked_until = None
        later = goals.apply_consequences(goal, settings, now + timedelta(hours=11), log)

        assert not later.applied
        assert later.blocked_until is None
