"""
Tests for the Lockout State Machine.

============================================================
TEST SCENARIOS
============================================================
1. Trigger only on ERROR with enabled + block_on_rule_break
2. Re-trigger OVERWRITES until (no stacking)
3. Automatic expiry and manual clear
4. Force session close extends to the end of the local day
5. Goal cooldown never shortens an active lockout

============================================================
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from trade_rule_engine import (
    LockoutState,
    LockoutStateMachine,
    RuleId,
    Severity,
    Violation,
    is_blocked,
)
from trade_rule_engine.lockout import LockoutPhase, remaining


ERROR = Violation(RuleId.MAX_TRADES_PER_DAY, "limit reached", Severity.ERROR)
WARNING = Violation(RuleId.MAX_DRAWDOWN, "drawdown", Severity.WARNING)


@pytest.fixture
def machine():
    return LockoutStateMachine(ZoneInfo("UTC"))


@pytest.fixture
def armed():
    return LockoutState(enabled=True, block_on_rule_break=True, lockout_hours=24)


class TestTrigger:

    def test_error_triggers_lockout(self, machine, armed, now):
        state, transition = machine.trigger(armed, now, [ERROR])

        assert state.blocked_until == now + timedelta(hours=24)
        assert transition.from_phase == LockoutPhase.UNBLOCKED
        assert transition.to_phase == LockoutPhase.BLOCKED
        assert is_blocked(state, now)
        # Input state is untouched
        assert armed.blocked_until is None

    def test_warning_does_not_trigger(self, machine, armed, now):
        state, transition = machine.trigger(armed, now, [WARNING])
        assert transition is None
        assert state.blocked_until is None

    @pytest.mark.parametrize("enabled,block_on_rule_break", [
        (False, True),
        (True, False),
        (False, False),
    ])
    def test_flags_required(self, machine, now, enabled, block_on_rule_break):
        state = LockoutState(enabled=enabled, block_on_rule_break=block_on_rule_break)
        new_state, transition = machine.trigger(state, now, [ERROR])
        assert transition is None
        assert new_state.blocked_until is None

    def test_retrigger_overwrites(self, machine, armed, now):
        first, _ = machine.trigger(armed, now, [ERROR])
        later = now + timedelta(hours=2)
        second, transition = machine.trigger(first, later, [ERROR])

        assert second.blocked_until == later + timedelta(hours=24)
        assert transition.from_phase == LockoutPhase.BLOCKED

    def test_retrigger_with_shorter_duration_overwrites(self, machine, now):
        state = LockoutState(
            enabled=True,
            block_on_rule_break=True,
            lockout_hours=1,
            blocked_until=now + timedelta(hours=10),
        )
        new_state, _ = machine.trigger(state, now, [ERROR])
        assert new_state.blocked_until == now + timedelta(hours=1)

    def test_force_session_close_extends_to_end_of_day(self, now):
        machine = LockoutStateMachine(ZoneInfo("UTC"))
        state = LockoutState(enabled=True, block_on_rule_break=True, lockout_hours=1)

        new_state, _ = machine.trigger(state, now, [ERROR], force_session_close=True)

        assert new_state.blocked_until == datetime(2024, 1, 11, tzinfo=timezone.utc)


class TestRelease:

    def test_expires_automatically(self, machine, armed, now):
        state, _ = machine.trigger(armed, now, [ERROR])
        after = state.blocked_until

        assert is_blocked(state, after - timedelta(seconds=1))
        assert not is_blocked(state, after)

        expired, transition = machine.expire(state, after)
        assert expired.blocked_until is None
        assert transition.to_phase == LockoutPhase.UNBLOCKED

    def test_expire_keeps_active_lockout(self, machine, armed, now):
        state, _ = machine.trigger(armed, now, [ERROR])
        same, transition = machine.expire(state, now + timedelta(hours=1))
        assert transition is None
        assert same.blocked_until == state.blocked_until

    def test_manual_clear(self, machine, armed, now):
        state, _ = machine.trigger(armed, now, [ERROR])
        cleared, transition = machine.clear(state, now)
        assert cleared.blocked_until is None
        assert transition.reason == "manual unblock"

    def test_clear_when_unblocked_is_noop(self, machine, armed, now):
        state, transition = machine.clear(armed, now)
        assert transition is None
        assert state is armed

    def test_remaining(self, machine, armed, now):
        state, _ = machine.trigger(armed, now, [ERROR])
        assert remaining(state, now + timedelta(hours=20)) == timedelta(hours=4)
        assert remaining(state, now + timedelta(hours=30)) == timedelta(0)


class TestCooldown:

    def test_cooldown_ignores_flags(self, machine, now):
        state, transition = machine.start_cooldown(LockoutState(), now, 6)
        assert state.blocked_until == now + timedelta(hours=6)
        assert transition is not None

    def test_cooldown_keeps_longer_lockout(self, machine, now):
        state = LockoutState(blocked_until=now + timedelta(hours=24))
        new_state, transition = machine.start_cooldown(state, now, 6)
        assert transition is None
        assert new_state.blocked_until == now + timedelta(hours=24)

    def test_zero_cooldown(self, machine, now):
        state, transition = machine.start_cooldown(LockoutState(), now, 0)
        assert transition is None
