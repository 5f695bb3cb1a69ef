"""
Trade Rule Engine - Collaborator Interfaces.

============================================================
PURPOSE
============================================================
The engine never owns data. Every input comes from a store:

- TradeStore: ordered trade history (read)
- SettingsStore: configuration + lockout state (read/write)
- GoalStore: trading goals (read)
- ConsequenceLog: append-only record of applied goal
  consequences (read/append)

In-memory implementations are provided for tests and for
callers that keep their own snapshots. SQLAlchemy-backed
settings and consequence stores live in repository.py.

============================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .config import EngineSettings, get_default_config
from .types import ConfigurationPatch, TradeRecord, TradingGoal


# ============================================================
# INTERFACES
# ============================================================

class TradeStore(ABC):
    """Source of the trade history."""

    @abstractmethod
    def list_trades(self) -> List[TradeRecord]:
        """Get all trades, oldest first."""
        pass


class SettingsStore(ABC):
    """Source and sink of the engine settings."""

    @abstractmethod
    def load(self) -> EngineSettings:
        pass

    @abstractmethod
    def save(self, settings: EngineSettings) -> None:
        pass


class GoalStore(ABC):
    """Source of the trader's goals."""

    @abstractmethod
    def list_goals(self) -> List[TradingGoal]:
        pass


@dataclass(frozen=True)
class ConsequenceEntry:
    """One applied goal consequence."""

    dedup_key: str
    goal_id: str
    patch: ConfigurationPatch
    recorded_at: datetime


class ConsequenceLog(ABC):
    """Append-only log keyed by (goal_id, failure date)."""

    @abstractmethod
    def has(self, dedup_key: str) -> bool:
        pass

    @abstractmethod
    def record(self, dedup_key: str, patch: ConfigurationPatch) -> None:
        """Append an entry. Recording an existing key is a no-op."""
        pass


# ============================================================
# IN-MEMORY IMPLEMENTATIONS
# ============================================================

class InMemoryTradeStore(TradeStore):

    def __init__(self, trades: Optional[Iterable[TradeRecord]] = None):
        self._trades: List[TradeRecord] = list(trades or [])

    def add(self, trade: TradeRecord) -> None:
        self._trades.append(trade)

    def list_trades(self) -> List[TradeRecord]:
        return list(self._trades)


class InMemorySettingsStore(SettingsStore):
    """Keeps a private copy so callers cannot mutate stored state."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self._settings = (settings or get_default_config()).copy()
        self.save_count = 0

    def load(self) -> EngineSettings:
        return self._settings.copy()

    def save(self, settings: EngineSettings) -> None:
        self._settings = settings.copy()
        self.save_count += 1


class InMemoryGoalStore(GoalStore):

    def __init__(self, goals: Optional[Iterable[TradingGoal]] = None):
        self._goals: List[TradingGoal] = list(goals or [])

    def add(self, goal: TradingGoal) -> None:
        self._goals.append(goal)

    def list_goals(self) -> List[TradingGoal]:
        return list(self._goals)


class InMemoryConsequenceLog(ConsequenceLog):

    def __init__(self):
        self._entries: Dict[str, ConsequenceEntry] = {}

    def has(self, dedup_key: str) -> bool:
        return dedup_key in self._entries

    def record(self, dedup_key: str, patch: ConfigurationPatch) -> None:
        if dedup_key in self._entries:
            return
        self._entries[dedup_key] = ConsequenceEntry(
            dedup_key=dedup_key,
            goal_id=patch.goal_id,
            patch=patch,
            recorded_at=datetime.now(timezone.utc),
        )

    def entries(self) -> List[ConsequenceEntry]:
        return list(self._entries.values())
