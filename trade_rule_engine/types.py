"""
Trade Rule Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Type definitions shared by every component of the engine.

The engine decides, BEFORE a position is recorded, whether the
action is allowed, should warn the trader, or must be blocked.

============================================================
DESIGN PRINCIPLES
============================================================
1. Violations are data, never exceptions
2. Severity is ordered: INFO < WARNING < ERROR
3. Only ERROR blocks an action
4. Exceptions are reserved for collaborator failures

============================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from .clock import ensure_utc


# ============================================================
# SEVERITY AND STATUS
# ============================================================

class Severity(IntEnum):
    """
    Severity of a rule violation.

    Higher values are more severe.
    """

    INFO = 1
    """Surfaced only."""

    WARNING = 2
    """Surfaced, overridable with explicit confirmation."""

    ERROR = 3
    """Blocks the action."""

    @property
    def label(self) -> str:
        return self.name.lower()


class OverallStatus(str, Enum):
    """Overall trading status."""

    OPERABLE = "operable"
    WARNING = "warning"
    BLOCKED = "blocked"


class TradeRuleStatus(str, Enum):
    """Rule outcome of a single recorded trade."""

    CLEAN = "clean"
    MINOR_VIOLATION = "minor-violation"
    CRITICAL_VIOLATION = "critical-violation"


class DrawdownMode(str, Enum):
    """Configured response to a maximum drawdown breach."""

    WARN_ONLY = "warn-only"
    PARTIAL_BLOCK = "partial-block"
    HARD_STOP = "hard-stop"


# ============================================================
# TRADE ENUMS
# ============================================================

class TradeDirection(str, Enum):
    LONG = "long"
    SHORT = "short"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class TradingSession(str, Enum):
    """Market sessions a trader can be restricted to."""

    ASIAN = "asian"
    LONDON = "london"
    NEW_YORK = "new-york"
    OVERLAP = "overlap"
    OTHER = "other"


# ============================================================
# RULE IDENTIFIERS
# ============================================================

class RuleId(str, Enum):
    """
    Identifier of every rule the engine can report.

    Each identifier maps to exactly one check.
    """

    # Trading rules
    MAX_TRADES_PER_DAY = "max-trades-per-day"
    MAX_TRADES_PER_WEEK = "max-trades-per-week"
    MAX_POSITION_SIZE = "max-position-size"
    DAILY_LOSS_LIMIT = "daily-loss-limit"
    DAILY_PROFIT_TARGET = "daily-profit-target"
    TRADING_HOURS = "trading-hours"

    # Sessions
    SESSION_NOT_ALLOWED = "session-not-allowed"
    DAY_NOT_ALLOWED = "day-not-allowed"

    # Risk management
    RISK_PER_TRADE = "risk-per-trade"
    DAILY_RISK_CAP = "daily-risk-cap"
    WEEKLY_RISK_CAP = "weekly-risk-cap"
    MAX_DRAWDOWN = "max-drawdown"

    # Discipline
    COOLDOWN_AFTER_LOSS = "cooldown-after-loss"
    CONSECUTIVE_LOSSES = "consecutive-losses"
    PSYCHOLOGICAL_REMINDER = "psychological-reminder"

    # Binding goals
    GOAL_SESSION = "goal-session"
    GOAL_HOURS = "goal-hours"
    GOAL_MAX_TRADES = "goal-max-trades"
    GOAL_MAX_LOSS = "goal-max-loss"
    GOAL_PARTIAL_BLOCK = "goal-partial-block"
    GOAL_FULL_BLOCK = "goal-full-block"

    @property
    def is_size_relevant(self) -> bool:
        """Whether a smaller position size can resolve this violation."""
        return self in SIZE_RELEVANT_RULES


SIZE_RELEVANT_RULES = frozenset({
    RuleId.RISK_PER_TRADE,
    RuleId.DAILY_RISK_CAP,
    RuleId.WEEKLY_RISK_CAP,
    RuleId.MAX_POSITION_SIZE,
})


# ============================================================
# GOAL ENUMS
# ============================================================

class GoalPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class GoalMetric(str, Enum):
    PNL = "pnl"
    WIN_RATE = "win-rate"
    TRADE_COUNT = "trade-count"


class GoalConstraintKind(str, Enum):
    """Kind of extra constraint a binding goal imposes."""

    SESSION = "session"
    HOURS = "hours"
    MAX_TRADES = "max-trades"
    MAX_LOSS = "max-loss"


# ============================================================
# TRADE RECORDS
# ============================================================

@dataclass(frozen=True)
class Violation:
    """A single rule violation."""

    rule_id: RuleId
    message: str
    severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id.value,
            "message": self.message,
            "severity": self.severity.label,
        }


@dataclass
class TradeRecord:
    """
    A recorded position from the trade journal.

    Created by the surrounding form layer once the engine
    approves it. Immutable once closed.
    """

    trade_id: str
    asset: str
    direction: TradeDirection
    entry_price: float
    position_size: float
    entry_time: datetime
    stop_loss: Optional[float] = None
    leverage: Optional[float] = None
    exit_time: Optional[datetime] = None
    pnl: Optional[float] = None
    status: TradeStatus = TradeStatus.OPEN
    session: Optional[TradingSession] = None
    violations: List[Violation] = field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        return self.status == TradeStatus.CLOSED

    @property
    def is_loss(self) -> bool:
        return self.is_closed and self.pnl is not None and self.pnl < 0


@dataclass
class Candidate:
    """
    A proposed trading action not yet committed to history.

    Every numeric field is optional: the candidate may come from
    a form that is still being filled in.
    """

    asset: Optional[str] = None
    direction: Optional[TradeDirection] = None
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    position_size: Optional[float] = None
    leverage: Optional[float] = None
    entry_time: Optional[datetime] = None
    session: Optional[TradingSession] = None

    def evaluated_at(self, now: datetime) -> datetime:
        """Instant the candidate is judged at: its own entry time, else now."""
        return ensure_utc(self.entry_time if self.entry_time is not None else now)

    def to_trade_record(self, now: datetime, trade_id: str = "candidate") -> TradeRecord:
        """Materialise the candidate as an open trade (for simulation)."""
        return TradeRecord(
            trade_id=trade_id,
            asset=self.asset or "",
            direction=self.direction or TradeDirection.LONG,
            entry_price=self.entry_price if self.entry_price is not None else 0.0,
            position_size=self.position_size if self.position_size is not None else 0.0,
            entry_time=self.evaluated_at(now),
            stop_loss=self.stop_loss if self.entry_price is not None else None,
            leverage=self.leverage,
            status=TradeStatus.OPEN,
            session=self.session,
        )


# ============================================================
# GOALS
# ============================================================

@dataclass
class GoalConstraint:
    """
    Extra constraint derived from a binding goal.

    Only the fields relevant to ``kind`` are read.
    """

    kind: GoalConstraintKind
    session: Optional[TradingSession] = None
    start_hour: Optional[int] = None
    end_hour: Optional[int] = None
    max_value: Optional[float] = None


@dataclass
class GoalConsequences:
    """Consequences applied once when a binding goal fails."""

    cooldown_hours: Optional[float] = None
    reduce_risk_percent: Optional[float] = None
    partial_block: bool = False
    full_block: bool = False

    def is_empty(self) -> bool:
        return not (
            self.cooldown_hours
            or self.reduce_risk_percent
            or self.partial_block
            or self.full_block
        )


@dataclass
class TradingGoal:
    """
    A trader's goal for one period.

    ``current`` and ``completed`` are maintained by the goal
    tracking layer, never by the engine.
    """

    goal_id: str
    period: GoalPeriod
    metric: GoalMetric
    target: float
    current: float = 0.0
    is_primary: bool = False
    is_binding: bool = False
    completed: bool = False
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    constraint: Optional[GoalConstraint] = None
    consequences: Optional[GoalConsequences] = None

    @property
    def is_ceiling(self) -> bool:
        """Trade-count goals are ceilings: exceeding the target fails them."""
        return self.metric == GoalMetric.TRADE_COUNT

    def target_reached(self) -> bool:
        if self.is_ceiling:
            return self.current <= self.target
        return self.current >= self.target


@dataclass
class ConfigurationPatch:
    """
    Settings changes produced by a failed binding goal.

    An empty patch (``applied`` False) is returned when the
    consequences were already applied for the same failure.
    """

    goal_id: str
    dedup_key: str
    failure_date: Optional[date] = None
    blocked_until: Optional[datetime] = None
    max_risk_per_trade: Optional[float] = None
    partial_block: bool = False
    full_block: bool = False
    applied: bool = False

    def is_empty(self) -> bool:
        return (
            self.blocked_until is None
            and self.max_risk_per_trade is None
            and not self.partial_block
            and not self.full_block
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goal_id": self.goal_id,
            "dedup_key": self.dedup_key,
            "failure_date": self.failure_date.isoformat() if self.failure_date else None,
            "blocked_until": self.blocked_until.isoformat() if self.blocked_until else None,
            "max_risk_per_trade": self.max_risk_per_trade,
            "partial_block": self.partial_block,
            "full_block": self.full_block,
            "applied": self.applied,
        }


# ============================================================
# OUTPUT TYPES
# ============================================================

@dataclass
class RiskStatus:
    """
    Overall risk status of the trader.

    Reasons are ordered most severe first.
    """

    status: OverallStatus
    risk_per_trade_allowed: Optional[float] = None
    risk_daily_allowed: Optional[float] = None
    drawdown_max_allowed: Optional[float] = None
    reasons: List[str] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)
    blocked_until: Optional[datetime] = None
    partial_block: bool = False
    current_drawdown_pct: float = 0.0
    persistent_warnings: bool = False

    @property
    def is_blocked(self) -> bool:
        return self.status == OverallStatus.BLOCKED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "risk_per_trade_allowed": self.risk_per_trade_allowed,
            "risk_daily_allowed": self.risk_daily_allowed,
            "drawdown_max_allowed": self.drawdown_max_allowed,
            "reasons": list(self.reasons),
            "violations": [v.to_dict() for v in self.violations],
            "blocked_until": self.blocked_until.isoformat() if self.blocked_until else None,
            "partial_block": self.partial_block,
            "current_drawdown_pct": self.current_drawdown_pct,
            "persistent_warnings": self.persistent_warnings,
        }


@dataclass
class SimulationResult:
    """Preview of a hypothetical candidate. Nothing is persisted."""

    before: float
    """Daily risk % without the candidate."""

    after: float
    """Daily risk % with the candidate included."""

    would_trigger: List[Violation]
    """Violations that only appear because of the candidate."""

    final_status: OverallStatus

    weekly_before: float = 0.0
    weekly_after: float = 0.0
    candidate_risk_pct: Optional[float] = None

    drawdown_before: float = 0.0
    drawdown_after: float = 0.0
    """Drawdown % from the equity peak. An open candidate leaves it unchanged."""

    @property
    def change(self) -> float:
        return self.after - self.before

    @property
    def drawdown_change(self) -> float:
        return self.drawdown_after - self.drawdown_before


@dataclass
class ActionDecision:
    """Outcome of recording an action through the engine."""

    allowed: bool
    requires_confirmation: bool
    violations: List[Violation]
    status: RiskStatus
    lockout_triggered: bool = False
    suggested_size: Optional[float] = None


# ============================================================
# ERROR TYPES
# ============================================================

class RuleEngineError(Exception):
    """Base exception for rule engine errors."""
    pass


class ConfigurationError(RuleEngineError):
    """Raised when configuration data cannot be parsed."""
    pass


class StoreError(RuleEngineError):
    """Raised when a collaborator store fails to read or write."""
    pass
