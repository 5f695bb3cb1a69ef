"""
Trade Rule Engine - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy models backing the persistent collaborators:

- EngineSettingsRecord: settings snapshot per profile,
  including the lockout state
- GoalConsequenceRecord: append-only consequence log,
  one row per (goal_id, failure date)
- RuleEvaluationLog: audit trail of recorded actions

============================================================
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# BASE CLASS
# ============================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ============================================================
# SETTINGS
# ============================================================

class EngineSettingsRecord(Base):
    """
    Settings snapshot.

    The payload is EngineSettings.to_dict(); the lockout
    timestamp is also kept in its own column for queries.
    """

    __tablename__ = "rule_engine_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    profile: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    """Settings profile (one per trader)"""

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    """Full settings as JSON"""

    blocked_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    """Persisted lockout state"""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<EngineSettingsRecord("
            f"profile={self.profile!r}, "
            f"blocked_until={self.blocked_until!r}"
            f")>"
        )


# ============================================================
# GOAL CONSEQUENCES
# ============================================================

class GoalConsequenceRecord(Base):
    """
    Applied goal consequence.

    Rows are never updated; the unique dedup key guarantees a
    failure is applied at most once.
    """

    __tablename__ = "rule_engine_goal_consequence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    dedup_key: Mapped[str] = mapped_column(
        String(160),
        unique=True,
        nullable=False,
        index=True,
    )
    """goal_id:failure_date"""

    goal_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    failure_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    patch: Mapped[dict] = mapped_column(JSON, nullable=False)
    """ConfigurationPatch.to_dict()"""

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<GoalConsequenceRecord(dedup_key={self.dedup_key!r})>"


# ============================================================
# EVALUATION AUDIT
# ============================================================

class RuleEvaluationLog(Base):
    """
    Record of an action evaluated through the engine.
    """

    __tablename__ = "rule_engine_evaluation_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    evaluation_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )

    asset: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    """operable / warning / blocked"""

    allowed: Mapped[bool] = mapped_column(Boolean, nullable=False)

    blocking_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    lockout_triggered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    violations: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    reasons: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_rule_evaluation_status_timestamp", "status", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<RuleEvaluationLog("
            f"evaluation_id={self.evaluation_id!r}, "
            f"status={self.status!r}"
            f")>"
        )
