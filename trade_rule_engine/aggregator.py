"""
Trade Rule Engine - Historical Aggregator.

============================================================
PURPOSE
============================================================
Turns the flat trade history into windowed aggregates:

- Today (local calendar day)
- This week (local calendar week, Monday start)
- Current session (local hour against session bands)

Plus the loss streak, last loss time and current drawdown.

============================================================
CRITICAL INVARIANTS
============================================================
1. Windows are computed in the trader's time zone
2. Trade counts and risk are bucketed by ENTRY time
3. Realised PnL is bucketed by EXIT time
4. Risk of one trade = |entry - stop| x size x leverage
   (leverage defaults to 1, no stop contributes zero)
5. Every percentage uses the single base capital

============================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Iterable, List, Optional
import logging
import math

from .clock import ensure_utc
from .config import EngineSettings, effective_limit
from .sessions import (
    current_session,
    local_date,
    same_week,
    sessions_at,
    to_local,
    weekday_name,
)
from .types import Candidate, TradeRecord, TradingSession


logger = logging.getLogger(__name__)


# ============================================================
# NUMERIC HELPERS
# ============================================================

def finite_or_none(value) -> Optional[float]:
    """Return ``value`` as float, or None if missing or non-finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def trade_risk(trade: TradeRecord) -> float:
    """Risk amount of a recorded trade. Malformed numbers count as zero."""
    entry = finite_or_none(trade.entry_price)
    stop = finite_or_none(trade.stop_loss)
    size = finite_or_none(trade.position_size)
    if entry is None or stop is None or size is None:
        return 0.0
    leverage = finite_or_none(trade.leverage) or 1.0
    return abs(entry - stop) * abs(size) * abs(leverage)


def candidate_risk(candidate: Optional[Candidate]) -> Optional[float]:
    """
    Risk amount of a candidate.

    None when the candidate is not evaluable (missing or
    non-finite entry, stop or size).
    """
    if candidate is None:
        return None
    entry = finite_or_none(candidate.entry_price)
    stop = finite_or_none(candidate.stop_loss)
    size = finite_or_none(candidate.position_size)
    if entry is None or stop is None or size is None:
        return None
    leverage = finite_or_none(candidate.leverage)
    if leverage is None or leverage == 0:
        leverage = 1.0
    return abs(entry - stop) * abs(size) * abs(leverage)


def to_percent(amount: float, base_capital: float) -> Optional[float]:
    """Amount as % of base capital; None if the base is not positive."""
    if base_capital <= 0:
        return None
    return amount / base_capital * 100


def _close_time(trade: TradeRecord) -> datetime:
    return ensure_utc(trade.exit_time or trade.entry_time)


# ============================================================
# AGGREGATES
# ============================================================

@dataclass
class WindowAggregates:
    """
    Windowed view of the trade history at one instant.
    """

    # Time context
    now: datetime
    local_now: datetime
    local_day: date
    weekday: str
    hour: int
    session: TradingSession
    active_sessions: List[TradingSession] = field(default_factory=list)

    base_capital: float = 0.0

    # Counts (by entry time)
    trades_today: int = 0
    trades_this_week: int = 0
    trades_this_session: int = 0

    # Risk (by entry time)
    risk_today: float = 0.0
    risk_this_week: float = 0.0

    # Realised PnL (by exit time)
    realized_pnl_today: float = 0.0

    # Discipline
    consecutive_losses: int = 0
    last_loss_time: Optional[datetime] = None

    # Equity
    current_equity: float = 0.0
    peak_equity: float = 0.0
    current_drawdown_pct: float = 0.0

    @property
    def loss_today(self) -> float:
        return max(0.0, -self.realized_pnl_today)

    @property
    def profit_today(self) -> float:
        return max(0.0, self.realized_pnl_today)

    @property
    def risk_today_pct(self) -> float:
        return to_percent(self.risk_today, self.base_capital) or 0.0

    @property
    def risk_this_week_pct(self) -> float:
        return to_percent(self.risk_this_week, self.base_capital) or 0.0


class HistoricalAggregator:
    """
    Computes WindowAggregates from a trade list.

    Stateless: every call rescans the supplied history.
    """

    def __init__(self, tz: tzinfo, base_capital: float):
        """
        Initialize aggregator.

        Args:
            tz: Trader time zone
            base_capital: Capital for percentage figures and equity curve
        """
        self._tz = tz
        self._base_capital = base_capital

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "HistoricalAggregator":
        return cls(settings.sessions.tzinfo(), settings.base_capital())

    def aggregate(
        self,
        trades: Iterable[TradeRecord],
        now: datetime,
    ) -> WindowAggregates:
        """
        Aggregate the history around ``now``.

        Args:
            trades: Full trade history
            now: Evaluation instant

        Returns:
            WindowAggregates
        """
        now = ensure_utc(now)
        local_now = to_local(now, self._tz)
        today = local_now.date()
        session = current_session(now, self._tz)

        aggregates = WindowAggregates(
            now=now,
            local_now=local_now,
            local_day=today,
            weekday=weekday_name(now, self._tz),
            hour=local_now.hour,
            session=session,
            active_sessions=sessions_at(local_now.hour),
            base_capital=self._base_capital,
        )

        closed: List[TradeRecord] = []

        for trade in trades:
            entry_day = local_date(trade.entry_time, self._tz)
            risk = trade_risk(trade)

            if entry_day == today:
                aggregates.trades_today += 1
                aggregates.risk_today += risk
                if current_session(trade.entry_time, self._tz) == session:
                    aggregates.trades_this_session += 1

            if same_week(entry_day, today) and entry_day <= today:
                aggregates.trades_this_week += 1
                aggregates.risk_this_week += risk

            if trade.is_closed:
                closed.append(trade)
                pnl = finite_or_none(trade.pnl)
                if pnl is not None and local_date(_close_time(trade), self._tz) == today:
                    aggregates.realized_pnl_today += pnl

        closed.sort(key=_close_time)
        self._apply_streak(aggregates, closed)
        self._apply_equity_curve(aggregates, closed)

        logger.debug(
            f"Aggregated {aggregates.trades_today} trades today, "
            f"{aggregates.trades_this_week} this week, "
            f"risk today {aggregates.risk_today:.2f}"
        )

        return aggregates

    def _apply_streak(
        self,
        aggregates: WindowAggregates,
        closed: List[TradeRecord],
    ) -> None:
        """Consecutive losing closes ending at the most recent close."""
        streak = 0
        for trade in reversed(closed):
            pnl = finite_or_none(trade.pnl)
            if pnl is None or pnl >= 0:
                break
            streak += 1
        aggregates.consecutive_losses = streak

        for trade in reversed(closed):
            if trade.is_loss:
                aggregates.last_loss_time = _close_time(trade)
                break

    def _apply_equity_curve(
        self,
        aggregates: WindowAggregates,
        closed: List[TradeRecord],
    ) -> None:
        """Drawdown of current equity from its running peak."""
        equity = self._base_capital
        peak = equity

        for trade in closed:
            pnl = finite_or_none(trade.pnl)
            if pnl is None:
                continue
            equity += pnl
            peak = max(peak, equity)

        aggregates.current_equity = equity
        aggregates.peak_equity = peak
        if peak > 0:
            aggregates.current_drawdown_pct = max(0.0, (peak - equity) / peak * 100)


# ============================================================
# REAL-TIME METRICS
# ============================================================

@dataclass
class RealTimeRiskMetrics:
    """Risk budget usage for the current local day."""

    risk_used_today_pct: float
    risk_used_today_amount: float
    risk_remaining_pct: Optional[float]
    """None when no daily cap is configured."""

    risk_remaining_amount: Optional[float]
    trades_remaining_today: Optional[int]
    """None when no daily trade cap is configured."""


def compute_real_time_metrics(
    aggregates: WindowAggregates,
    settings: EngineSettings,
) -> RealTimeRiskMetrics:
    """Remaining daily risk and trade budget."""
    daily_cap = effective_limit(settings.risk.max_risk_daily)
    max_trades = effective_limit(settings.rules.max_trades_per_day)

    remaining_pct = None
    remaining_amount = None
    if daily_cap is not None:
        remaining_pct = max(0.0, daily_cap - aggregates.risk_today_pct)
        remaining_amount = remaining_pct / 100 * aggregates.base_capital

    trades_remaining = None
    if max_trades is not None:
        trades_remaining = max(0, int(max_trades) - aggregates.trades_today)

    return RealTimeRiskMetrics(
        risk_used_today_pct=aggregates.risk_today_pct,
        risk_used_today_amount=aggregates.risk_today,
        risk_remaining_pct=remaining_pct,
        risk_remaining_amount=remaining_amount,
        trades_remaining_today=trades_remaining,
    )
