"""
Trade Rule Engine - Lockout State Machine.

============================================================
PURPOSE
============================================================
Time-bounded lockout that blocks every trading action.

STATES:
- UNBLOCKED: blocked_until is None or in the past
- BLOCKED(until): blocked_until is in the future

STATE TRANSITION RULES:
- UNBLOCKED → BLOCKED(now + N h): error violation while
  enabled AND block_on_rule_break
- BLOCKED → BLOCKED(now + N h): same trigger, OVERWRITES until
- BLOCKED → UNBLOCKED: automatically once now >= until
- BLOCKED → UNBLOCKED: manual unblock
- ANY → BLOCKED(now + H h): goal failure cooldown

CRITICAL CONSTRAINT:
- Transitions are pure: they return a new LockoutState
- The settings store persists the result, never this module
- "Is blocked" is always derived by comparing now to until

============================================================
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Iterable, Optional, Tuple
import logging

from .clock import ensure_utc
from .config import LockoutState
from .sessions import end_of_local_day
from .types import Severity, Violation


logger = logging.getLogger(__name__)


class LockoutPhase(str, Enum):
    UNBLOCKED = "unblocked"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class LockoutTransition:
    """Record of one lockout transition."""

    from_phase: LockoutPhase
    to_phase: LockoutPhase
    blocked_until: Optional[datetime]
    reason: str
    timestamp: datetime


def is_blocked(state: LockoutState, now: datetime) -> bool:
    if state.blocked_until is None:
        return False
    return ensure_utc(now) < ensure_utc(state.blocked_until)


def phase_of(state: LockoutState, now: datetime) -> LockoutPhase:
    return LockoutPhase.BLOCKED if is_blocked(state, now) else LockoutPhase.UNBLOCKED


def remaining(state: LockoutState, now: datetime) -> timedelta:
    """Time left in the lockout (zero when unblocked)."""
    if not is_blocked(state, now):
        return timedelta(0)
    return ensure_utc(state.blocked_until) - ensure_utc(now)


class LockoutStateMachine:
    """
    Computes lockout transitions.

    Usage:
        machine = LockoutStateMachine()
        new_state, transition = machine.trigger(state, now, violations)
        if transition:
            settings_store.save(...)
    """

    def __init__(self, tz: Optional[tzinfo] = None):
        """
        Initialize state machine.

        Args:
            tz: Trader time zone, used to find the end of the local day
        """
        self._tz = tz

    def trigger(
        self,
        state: LockoutState,
        now: datetime,
        violations: Iterable[Violation],
        force_session_close: bool = False,
    ) -> Tuple[LockoutState, Optional[LockoutTransition]]:
        """
        Start (or restart) a lockout after a rule break.

        Args:
            state: Current lockout state
            now: Time of the triggering action
            violations: Violations produced by the action
            force_session_close: Also lock until the end of the local day

        Returns:
            (new state, transition or None if nothing fired)
        """
        if not (state.enabled and state.block_on_rule_break):
            return state, None

        errors = [v for v in violations if v.severity == Severity.ERROR]
        if not errors:
            return state, None

        now = ensure_utc(now)
        until = now + timedelta(hours=state.lockout_hours)

        if force_session_close and self._tz is not None:
            until = max(until, end_of_local_day(now, self._tz))

        reason = f"rule break: {', '.join(v.rule_id.value for v in errors)}"
        return self._block(state, now, until, reason)

    def start_cooldown(
        self,
        state: LockoutState,
        now: datetime,
        hours: float,
        reason: str = "goal cooldown",
    ) -> Tuple[LockoutState, Optional[LockoutTransition]]:
        """
        Block for ``hours`` regardless of the lockout flags.

        An active lockout that ends later is kept.
        """
        if not hours or hours <= 0:
            return state, None

        now = ensure_utc(now)
        until = now + timedelta(hours=hours)

        if is_blocked(state, now) and ensure_utc(state.blocked_until) >= until:
            return state, None

        return self._block(state, now, until, reason)

    def expire(
        self,
        state: LockoutState,
        now: datetime,
    ) -> Tuple[LockoutState, Optional[LockoutTransition]]:
        """Clear a lockout whose time has passed."""
        if state.blocked_until is None or is_blocked(state, now):
            return state, None
        return self._unblock(state, now, "expired")

    def clear(
        self,
        state: LockoutState,
        now: datetime,
    ) -> Tuple[LockoutState, Optional[LockoutTransition]]:
        """Manual unblock."""
        if state.blocked_until is None:
            return state, None
        return self._unblock(state, now, "manual unblock")

    def _block(
        self,
        state: LockoutState,
        now: datetime,
        until: datetime,
        reason: str,
    ) -> Tuple[LockoutState, LockoutTransition]:
        transition = LockoutTransition(
            from_phase=phase_of(state, now),
            to_phase=LockoutPhase.BLOCKED,
            blocked_until=until,
            reason=reason,
            timestamp=now,
        )
        logger.info(
            f"Lockout {transition.from_phase.value} → blocked until "
            f"{until.isoformat()} ({reason})"
        )
        return replace(state, blocked_until=until), transition

    def _unblock(
        self,
        state: LockoutState,
        now: datetime,
        reason: str,
    ) -> Tuple[LockoutState, LockoutTransition]:
        now = ensure_utc(now)
        transition = LockoutTransition(
            from_phase=phase_of(state, now),
            to_phase=LockoutPhase.UNBLOCKED,
            blocked_until=None,
            reason=reason,
            timestamp=now,
        )
        logger.info(f"Lockout {transition.from_phase.value} → unblocked ({reason})")
        return replace(state, blocked_until=None), transition
