"""
Tests for the Position Size Suggester.

============================================================
TEST SCENARIOS
============================================================
1. entry=100, stop=95, size=50, cap 2% of 10,000 → 40
2. Suggested size always satisfies the violated cap
3. Minimum across violated caps, clamped to max size
4. None when nothing size-relevant or entry == stop

============================================================
"""

from datetime import timedelta

import pytest

from trade_rule_engine import (
    Candidate,
    PositionSizeSuggester,
    RuleEvaluator,
    RuleId,
    Violation,
    Severity,
)
from trade_rule_engine.rules import candidate_risk_pct


@pytest.fixture
def suggester():
    return PositionSizeSuggester()


def evaluate(candidate, trades, settings, aggregate):
    aggregates = aggregate(trades, settings)
    return RuleEvaluator().evaluate(candidate, aggregates, settings), aggregates


class TestSuggestion:

    def test_reference_scenario(self, suggester, settings, aggregate, candidate):
        settings.risk.max_risk_per_trade = 2.0
        violations, aggregates = evaluate(candidate, [], settings, aggregate)

        assert RuleId.RISK_PER_TRADE in {v.rule_id for v in violations}
        size = suggester.suggest(candidate, violations, settings, aggregates)

        assert size == pytest.approx(40.0)

    @pytest.mark.parametrize("entry,stop,size,leverage,cap", [
        (100, 95, 50, None, 2.0),
        (1.1050, 1.1000, 100000, None, 1.0),
        (25000, 24000, 3, 5, 0.5),
        (50, 60, 80, None, 1.5),
        (0.3333, 0.3111, 12345, 3, 0.25),
    ])
    def test_suggested_size_satisfies_cap(
        self, suggester, settings, aggregate, entry, stop, size, leverage, cap
    ):
        settings.risk.max_risk_per_trade = cap
        candidate = Candidate(entry_price=entry, stop_loss=stop, position_size=size, leverage=leverage)
        violations, aggregates = evaluate(candidate, [], settings, aggregate)
        assert RuleId.RISK_PER_TRADE in {v.rule_id for v in violations}

        suggested = suggester.suggest(candidate, violations, settings, aggregates)
        resized = Candidate(entry_price=entry, stop_loss=stop, position_size=suggested, leverage=leverage)

        assert candidate_risk_pct(resized, settings.base_capital()) <= cap + 1e-9
        # And the resized candidate passes the rule
        recheck, _ = evaluate(resized, [], settings, aggregate)
        assert RuleId.RISK_PER_TRADE not in {v.rule_id for v in recheck}

    def test_daily_cap_uses_headroom(self, suggester, settings, aggregate, make_trade, candidate):
        settings.risk.max_risk_daily = 3.0
        trades = [make_trade(stop_loss=90, position_size=10)]  # 1% used
        violations, aggregates = evaluate(candidate, trades, settings, aggregate)

        size = suggester.suggest(candidate, violations, settings, aggregates)

        # 2% headroom = 200 / 5
        assert size == pytest.approx(40.0)

    def test_minimum_of_violated_caps(self, suggester, settings, aggregate, make_trade, now, candidate):
        settings.risk.max_risk_per_trade = 2.0
        settings.risk.max_risk_weekly = 3.0
        trades = [make_trade(entry_time=now - timedelta(days=1), stop_loss=80, position_size=10)]  # 2%
        violations, aggregates = evaluate(candidate, trades, settings, aggregate)

        size = suggester.suggest(candidate, violations, settings, aggregates)

        # per-trade → 40, weekly headroom 1% → 20
        assert size == pytest.approx(20.0)

    def test_clamped_to_max_position_size(self, suggester, settings, aggregate, candidate):
        settings.risk.max_risk_per_trade = 2.0
        settings.rules.max_position_size = 25
        violations, aggregates = evaluate(candidate, [], settings, aggregate)
        assert suggester.suggest(candidate, violations, settings, aggregates) == pytest.approx(25.0)

    def test_max_position_size_alone(self, suggester, settings, aggregate, candidate):
        settings.rules.max_position_size = 30
        violations, aggregates = evaluate(candidate, [], settings, aggregate)
        assert suggester.suggest(candidate, violations, settings, aggregates) == pytest.approx(30.0)

    def test_exhausted_headroom_is_zero(self, suggester, settings, aggregate, make_trade, candidate):
        settings.risk.max_risk_daily = 1.0
        trades = [make_trade(stop_loss=80, position_size=10)]  # 2% used
        violations, aggregates = evaluate(candidate, trades, settings, aggregate)
        assert suggester.suggest(candidate, violations, settings, aggregates) == 0.0


class TestNotApplicable:

    def test_no_size_relevant_violation(self, suggester, settings, candidate):
        violations = [Violation(RuleId.MAX_TRADES_PER_DAY, "limit", Severity.ERROR)]
        assert suggester.suggest(candidate, violations, settings) is None

    def test_no_violations(self, suggester, settings, candidate):
        assert suggester.suggest(candidate, [], settings) is None

    def test_entry_equals_stop(self, suggester, settings):
        settings.risk.max_risk_per_trade = 1.0
        candidate = Candidate(entry_price=100, stop_loss=100, position_size=10)
        violations = [Violation(RuleId.RISK_PER_TRADE, "too risky", Severity.ERROR)]
        assert suggester.suggest(candidate, violations, settings) is None

    def test_non_finite_numbers(self, suggester, settings):
        settings.risk.max_risk_per_trade = 1.0
        candidate = Candidate(entry_price=float("nan"), stop_loss=95, position_size=10)
        violations = [Violation(RuleId.RISK_PER_TRADE, "too risky", Severity.ERROR)]
        assert suggester.suggest(candidate, violations, settings) is None
