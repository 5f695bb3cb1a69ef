"""
Trade Rule Engine - Configuration.

============================================================
PURPOSE
============================================================
Every constraint the engine enforces, grouped the way the
trader edits them in settings:

- CapitalConfig: the single base capital
- RiskConfig: % caps and drawdown response
- TradingRulesConfig: counts, hours, size, daily PnL limits
- DisciplineConfig: cooldowns and loss streaks
- SessionsConfig: time zone, sessions and weekdays
- LockoutState: ultra-disciplined lockout (persisted state)
- GoalBlockState: blocks set by failed binding goals

============================================================
CONFIGURATION PHILOSOPHY
============================================================
1. None means "rule inactive" (unlimited)
2. Inconsistent values (negative caps) are clamped to
   "unlimited" instead of failing the evaluation
3. Externally configurable via dictionary or environment

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import copy
import logging
import math
import os

from dotenv import load_dotenv

from .types import (
    ConfigurationError,
    DrawdownMode,
    TradingSession,
)


logger = logging.getLogger(__name__)


WEEKDAYS: List[str] = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]

MIN_RISK_PER_TRADE_PCT = 0.1
"""Floor applied when a goal consequence reduces the per-trade risk."""


def effective_limit(value: Optional[float]) -> Optional[float]:
    """
    Normalise a configured limit.

    Returns None ("unlimited") for unset, non-finite or negative
    values so a broken setting never blocks trading.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


# ============================================================
# CAPITAL
# ============================================================

@dataclass
class CapitalConfig:
    """
    Capital used for every percentage computation.
    """

    account_size: float = 10000.0
    """Configured account size."""

    current_capital: Optional[float] = None
    """Manually set current capital."""

    manual_capital_adjustment: bool = False
    """Use current_capital instead of account_size."""

    def base_capital(self) -> float:
        """The single canonical capital figure."""
        if self.manual_capital_adjustment:
            manual = effective_limit(self.current_capital)
            if manual:
                return manual
        return effective_limit(self.account_size) or 0.0


# ============================================================
# RISK MANAGEMENT
# ============================================================

@dataclass
class RiskConfig:
    """
    Percentage caps of base capital.
    """

    max_risk_per_trade: Optional[float] = 1.0
    """Maximum risk % per trade."""

    max_risk_daily: Optional[float] = None
    """Maximum summed risk % of trades entered today."""

    max_risk_weekly: Optional[float] = None
    """Maximum summed risk % of trades entered this week."""

    max_drawdown: Optional[float] = None
    """Maximum drawdown % from equity peak."""

    drawdown_mode: DrawdownMode = DrawdownMode.WARN_ONLY
    """Response when max_drawdown is crossed."""


# ============================================================
# TRADING RULES
# ============================================================

@dataclass
class AllowedHours:
    """Allowed trading-hours window in the trader's time zone."""

    enabled: bool = False
    start_hour: int = 9
    end_hour: int = 17


@dataclass
class TradingRulesConfig:
    """Count, size and daily PnL rules."""

    max_trades_per_day: Optional[int] = None
    max_trades_per_week: Optional[int] = None
    allowed_hours: AllowedHours = field(default_factory=AllowedHours)
    max_position_size: Optional[float] = None
    daily_profit_target: Optional[float] = None
    daily_loss_limit: Optional[float] = None
    psychological_reminders: List[str] = field(default_factory=list)
    """Informational only. Never blocking."""


# ============================================================
# DISCIPLINE
# ============================================================

@dataclass
class DisciplineConfig:
    """Behavioural constraints."""

    cooldown_after_loss_minutes: Optional[float] = None
    """Minutes to wait after a losing close."""

    max_consecutive_losses: Optional[int] = None
    """Losing streak that forces a pause."""

    force_session_close_on_critical: bool = False
    """A critical violation locks trading until the end of the local day."""

    persistent_warnings: bool = True
    """Warnings stay visible until resolved."""


# ============================================================
# SESSIONS
# ============================================================

def _all_sessions_allowed() -> Dict[TradingSession, bool]:
    return {session: True for session in TradingSession}


def _all_days_allowed() -> Dict[str, bool]:
    return {day: True for day in WEEKDAYS}


@dataclass
class SessionsConfig:
    """Trader time zone and session/day allow-lists."""

    timezone: str = "UTC"
    allowed_sessions: Dict[TradingSession, bool] = field(default_factory=_all_sessions_allowed)
    allowed_days: Dict[str, bool] = field(default_factory=_all_days_allowed)
    block_outside_session: bool = False

    def tzinfo(self) -> ZoneInfo:
        """
        Resolve the configured zone.

        Unknown zones fall back to UTC.
        """
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {self.timezone!r}, using UTC")
            return ZoneInfo("UTC")


# ============================================================
# LOCKOUT
# ============================================================

@dataclass
class LockoutState:
    """
    Ultra-disciplined lockout.

    ``blocked_until`` is the persisted state; the flags decide
    whether a critical violation starts a lockout.
    """

    enabled: bool = False
    block_on_rule_break: bool = False
    lockout_hours: float = 24.0
    blocked_until: Optional[datetime] = None


@dataclass
class GoalBlockState:
    """Blocks set by failed binding goals."""

    partial_block: bool = False
    """New trade creation disabled."""

    full_block: bool = False
    """Overall status forced to blocked."""

    goal_ids: List[str] = field(default_factory=list)


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class EngineSettings:
    """
    Complete engine configuration.

    Snapshot supplied by the settings store.
    """

    capital: CapitalConfig = field(default_factory=CapitalConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    rules: TradingRulesConfig = field(default_factory=TradingRulesConfig)
    discipline: DisciplineConfig = field(default_factory=DisciplineConfig)
    sessions: SessionsConfig = field(default_factory=SessionsConfig)
    lockout: LockoutState = field(default_factory=LockoutState)
    goal_blocks: GoalBlockState = field(default_factory=GoalBlockState)

    def base_capital(self) -> float:
        return self.capital.base_capital()

    def copy(self) -> "EngineSettings":
        return copy.deepcopy(self)

    def validate(self) -> List[str]:
        """
        Report inconsistent values.

        Nothing is rejected: the rules treat these as unlimited.
        """
        issues = []

        caps = {
            "risk.max_risk_per_trade": self.risk.max_risk_per_trade,
            "risk.max_risk_daily": self.risk.max_risk_daily,
            "risk.max_risk_weekly": self.risk.max_risk_weekly,
            "risk.max_drawdown": self.risk.max_drawdown,
            "rules.max_trades_per_day": self.rules.max_trades_per_day,
            "rules.max_trades_per_week": self.rules.max_trades_per_week,
            "rules.max_position_size": self.rules.max_position_size,
            "rules.daily_profit_target": self.rules.daily_profit_target,
            "rules.daily_loss_limit": self.rules.daily_loss_limit,
            "discipline.cooldown_after_loss_minutes": self.discipline.cooldown_after_loss_minutes,
            "discipline.max_consecutive_losses": self.discipline.max_consecutive_losses,
        }
        for name, value in caps.items():
            if value is not None and effective_limit(value) is None:
                issues.append(f"{name}={value!r} is invalid, treated as unlimited")

        hours = self.rules.allowed_hours
        if hours.enabled and not (0 <= hours.start_hour <= 24 and 0 <= hours.end_hour <= 24):
            issues.append(
                f"allowed_hours {hours.start_hour}-{hours.end_hour} out of range, ignored"
            )

        if self.base_capital() <= 0:
            issues.append("base capital is not positive, percentage rules disabled")

        for issue in issues:
            logger.warning(f"Configuration issue: {issue}")

        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return {
            "capital": {
                "account_size": self.capital.account_size,
                "current_capital": self.capital.current_capital,
                "manual_capital_adjustment": self.capital.manual_capital_adjustment,
            },
            "risk": {
                "max_risk_per_trade": self.risk.max_risk_per_trade,
                "max_risk_daily": self.risk.max_risk_daily,
                "max_risk_weekly": self.risk.max_risk_weekly,
                "max_drawdown": self.risk.max_drawdown,
                "drawdown_mode": self.risk.drawdown_mode.value,
            },
            "rules": {
                "max_trades_per_day": self.rules.max_trades_per_day,
                "max_trades_per_week": self.rules.max_trades_per_week,
                "allowed_hours": {
                    "enabled": self.rules.allowed_hours.enabled,
                    "start_hour": self.rules.allowed_hours.start_hour,
                    "end_hour": self.rules.allowed_hours.end_hour,
                },
                "max_position_size": self.rules.max_position_size,
                "daily_profit_target": self.rules.daily_profit_target,
                "daily_loss_limit": self.rules.daily_loss_limit,
                "psychological_reminders": list(self.rules.psychological_reminders),
            },
            "discipline": {
                "cooldown_after_loss_minutes": self.discipline.cooldown_after_loss_minutes,
                "max_consecutive_losses": self.discipline.max_consecutive_losses,
                "force_session_close_on_critical": self.discipline.force_session_close_on_critical,
                "persistent_warnings": self.discipline.persistent_warnings,
            },
            "sessions": {
                "timezone": self.sessions.timezone,
                "allowed_sessions": {
                    session.value: allowed
                    for session, allowed in self.sessions.allowed_sessions.items()
                },
                "allowed_days": dict(self.sessions.allowed_days),
                "block_outside_session": self.sessions.block_outside_session,
            },
            "lockout": {
                "enabled": self.lockout.enabled,
                "block_on_rule_break": self.lockout.block_on_rule_break,
                "lockout_hours": self.lockout.lockout_hours,
                "blocked_until": (
                    self.lockout.blocked_until.isoformat()
                    if self.lockout.blocked_until else None
                ),
            },
            "goal_blocks": {
                "partial_block": self.goal_blocks.partial_block,
                "full_block": self.goal_blocks.full_block,
                "goal_ids": list(self.goal_blocks.goal_ids),
            },
        }


# ============================================================
# PRESET FACTORIES
# ============================================================

def get_default_config() -> EngineSettings:
    """
    Get default configuration.

    Only the per-trade risk cap is active.
    """
    return EngineSettings()


def get_strict_config() -> EngineSettings:
    """
    Get strict configuration.

    Every cap active, lockout on rule break.
    """
    config = EngineSettings()

    config.risk.max_risk_per_trade = 1.0
    config.risk.max_risk_daily = 3.0
    config.risk.max_risk_weekly = 6.0
    config.risk.max_drawdown = 10.0
    config.risk.drawdown_mode = DrawdownMode.HARD_STOP

    config.rules.max_trades_per_day = 3
    config.rules.max_trades_per_week = 10

    config.discipline.cooldown_after_loss_minutes = 30
    config.discipline.max_consecutive_losses = 3

    config.lockout.enabled = True
    config.lockout.block_on_rule_break = True

    return config


def get_testing_config() -> EngineSettings:
    """
    Get testing configuration.

    Every cap unlimited. NOT FOR PRODUCTION.
    """
    config = EngineSettings()
    config.risk.max_risk_per_trade = None
    return config


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ConfigurationError(f"Invalid datetime {value!r}: {e}") from e


def load_config_from_dict(data: Dict[str, Any]) -> EngineSettings:
    """
    Load configuration from dictionary.

    Missing keys keep their defaults.

    Args:
        data: Configuration dictionary (as produced by to_dict)

    Returns:
        EngineSettings instance

    Raises:
        ConfigurationError: If an enum or datetime value is invalid
    """
    config = get_default_config()

    try:
        if "capital" in data:
            cap = data["capital"]
            config.capital.account_size = cap.get("account_size", config.capital.account_size)
            config.capital.current_capital = cap.get(
                "current_capital",
                config.capital.current_capital,
            )
            config.capital.manual_capital_adjustment = cap.get(
                "manual_capital_adjustment",
                config.capital.manual_capital_adjustment,
            )

        if "risk" in data:
            risk = data["risk"]
            config.risk.max_risk_per_trade = risk.get(
                "max_risk_per_trade",
                config.risk.max_risk_per_trade,
            )
            config.risk.max_risk_daily = risk.get("max_risk_daily", config.risk.max_risk_daily)
            config.risk.max_risk_weekly = risk.get("max_risk_weekly", config.risk.max_risk_weekly)
            config.risk.max_drawdown = risk.get("max_drawdown", config.risk.max_drawdown)
            if "drawdown_mode" in risk:
                config.risk.drawdown_mode = DrawdownMode(risk["drawdown_mode"])

        if "rules" in data:
            rules = data["rules"]
            config.rules.max_trades_per_day = rules.get(
                "max_trades_per_day",
                config.rules.max_trades_per_day,
            )
            config.rules.max_trades_per_week = rules.get(
                "max_trades_per_week",
                config.rules.max_trades_per_week,
            )
            if "allowed_hours" in rules:
                hours = rules["allowed_hours"]
                config.rules.allowed_hours = AllowedHours(
                    enabled=hours.get("enabled", False),
                    start_hour=int(hours.get("start_hour", 9)),
                    end_hour=int(hours.get("end_hour", 17)),
                )
            config.rules.max_position_size = rules.get(
                "max_position_size",
                config.rules.max_position_size,
            )
            config.rules.daily_profit_target = rules.get(
                "daily_profit_target",
                config.rules.daily_profit_target,
            )
            config.rules.daily_loss_limit = rules.get(
                "daily_loss_limit",
                config.rules.daily_loss_limit,
            )
            config.rules.psychological_reminders = list(
                rules.get("psychological_reminders", [])
            )

        if "discipline" in data:
            disc = data["discipline"]
            config.discipline.cooldown_after_loss_minutes = disc.get(
                "cooldown_after_loss_minutes",
                config.discipline.cooldown_after_loss_minutes,
            )
            config.discipline.max_consecutive_losses = disc.get(
                "max_consecutive_losses",
                config.discipline.max_consecutive_losses,
            )
            config.discipline.force_session_close_on_critical = disc.get(
                "force_session_close_on_critical",
                config.discipline.force_session_close_on_critical,
            )
            config.discipline.persistent_warnings = disc.get(
                "persistent_warnings",
                config.discipline.persistent_warnings,
            )

        if "sessions" in data:
            sess = data["sessions"]
            config.sessions.timezone = sess.get("timezone", config.sessions.timezone)
            for name, allowed in sess.get("allowed_sessions", {}).items():
                config.sessions.allowed_sessions[TradingSession(name)] = bool(allowed)
            for day, allowed in sess.get("allowed_days", {}).items():
                if day not in WEEKDAYS:
                    raise ConfigurationError(f"Unknown weekday {day!r}")
                config.sessions.allowed_days[day] = bool(allowed)
            config.sessions.block_outside_session = sess.get(
                "block_outside_session",
                config.sessions.block_outside_session,
            )

        if "lockout" in data:
            lock = data["lockout"]
            config.lockout.enabled = lock.get("enabled", config.lockout.enabled)
            config.lockout.block_on_rule_break = lock.get(
                "block_on_rule_break",
                config.lockout.block_on_rule_break,
            )
            config.lockout.lockout_hours = lock.get("lockout_hours", config.lockout.lockout_hours)
            config.lockout.blocked_until = _parse_datetime(lock.get("blocked_until"))

        if "goal_blocks" in data:
            blocks = data["goal_blocks"]
            config.goal_blocks.partial_block = blocks.get("partial_block", False)
            config.goal_blocks.full_block = blocks.get("full_block", False)
            config.goal_blocks.goal_ids = list(blocks.get("goal_ids", []))

    except (ValueError, TypeError, AttributeError) as e:
        raise ConfigurationError(f"Invalid engine configuration: {e}") from e

    config.validate()
    return config


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def load_config_from_env() -> EngineSettings:
    """
    Build configuration from environment variables.

    A .env file in the working directory is loaded first.

    Variables:
        RULE_ENGINE_TIMEZONE
        RULE_ENGINE_ACCOUNT_SIZE
        RULE_ENGINE_MAX_RISK_PER_TRADE
        RULE_ENGINE_MAX_RISK_DAILY
        RULE_ENGINE_MAX_RISK_WEEKLY
        RULE_ENGINE_MAX_DRAWDOWN
        RULE_ENGINE_DRAWDOWN_MODE
        RULE_ENGINE_LOCKOUT_HOURS
    """
    load_dotenv()

    config = get_default_config()
    config.sessions.timezone = os.getenv("RULE_ENGINE_TIMEZONE", config.sessions.timezone)
    config.capital.account_size = _env_float(
        "RULE_ENGINE_ACCOUNT_SIZE",
        config.capital.account_size,
    )
    config.risk.max_risk_per_trade = _env_float(
        "RULE_ENGINE_MAX_RISK_PER_TRADE",
        config.risk.max_risk_per_trade,
    )
    config.risk.max_risk_daily = _env_float("RULE_ENGINE_MAX_RISK_DAILY", None)
    config.risk.max_risk_weekly = _env_float("RULE_ENGINE_MAX_RISK_WEEKLY", None)
    config.risk.max_drawdown = _env_float("RULE_ENGINE_MAX_DRAWDOWN", None)
    config.lockout.lockout_hours = _env_float(
        "RULE_ENGINE_LOCKOUT_HOURS",
        config.lockout.lockout_hours,
    )

    mode = os.getenv("RULE_ENGINE_DRAWDOWN_MODE")
    if mode:
        try:
            config.risk.drawdown_mode = DrawdownMode(mode)
        except ValueError as e:
            raise ConfigurationError(f"Invalid RULE_ENGINE_DRAWDOWN_MODE: {mode!r}") from e

    config.validate()
    return config
