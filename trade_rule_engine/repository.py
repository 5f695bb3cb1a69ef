"""
Trade Rule Engine - Repository.

============================================================
PURPOSE
============================================================
SQLAlchemy-backed collaborators.

Provides:
- SettingsRepository: SettingsStore over rule_engine_settings
- ConsequenceRepository: ConsequenceLog over
  rule_engine_goal_consequence
- EvaluationLogRepository: audit trail of recorded actions

Every write commits; on failure the session is rolled back,
the error logged, and a StoreError raised.

============================================================
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging

from sqlalchemy import desc, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .clock import ensure_utc
from .config import EngineSettings, get_default_config, load_config_from_dict
from .models import EngineSettingsRecord, GoalConsequenceRecord, RuleEvaluationLog
from .stores import ConsequenceLog, SettingsStore
from .types import ActionDecision, ConfigurationPatch, Severity, StoreError


logger = logging.getLogger(__name__)


class SettingsRepository(SettingsStore):
    """
    Settings persistence.

    One row per profile; a missing row loads the defaults.
    """

    def __init__(self, session: Session, profile: str = "default"):
        """
        Initialize repository.

        Args:
            session: SQLAlchemy database session
            profile: Settings profile key
        """
        self._session = session
        self._profile = profile

    def _get_record(self) -> Optional[EngineSettingsRecord]:
        stmt = select(EngineSettingsRecord).where(
            EngineSettingsRecord.profile == self._profile
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def load(self) -> EngineSettings:
        try:
            record = self._get_record()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load settings for profile {self._profile!r}: {e}")
            raise StoreError(f"Cannot load settings: {e}") from e

        if record is None:
            logger.debug(f"No settings stored for profile {self._profile!r}, using defaults")
            return get_default_config()

        return load_config_from_dict(record.payload)

    def save(self, settings: EngineSettings) -> None:
        try:
            record = self._get_record()
            if record is None:
                record = EngineSettingsRecord(profile=self._profile, payload={})
                self._session.add(record)

            record.payload = settings.to_dict()
            record.blocked_until = settings.lockout.blocked_until
            self._session.commit()

            logger.debug(f"Saved settings for profile {self._profile!r}")

        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error(f"Failed to save settings for profile {self._profile!r}: {e}")
            raise StoreError(f"Cannot save settings: {e}") from e


class ConsequenceRepository(ConsequenceLog):
    """
    Append-only goal consequence log.
    """

    def __init__(self, session: Session):
        self._session = session

    def has(self, dedup_key: str) -> bool:
        try:
            stmt = select(func.count(GoalConsequenceRecord.id)).where(
                GoalConsequenceRecord.dedup_key == dedup_key
            )
            return (self._session.execute(stmt).scalar() or 0) > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to query consequence log for {dedup_key}: {e}")
            raise StoreError(f"Cannot read consequence log: {e}") from e

    def record(self, dedup_key: str, patch: ConfigurationPatch) -> None:
        if self.has(dedup_key):
            return

        try:
            self._session.add(GoalConsequenceRecord(
                dedup_key=dedup_key,
                goal_id=patch.goal_id,
                failure_date=patch.failure_date,
                patch=patch.to_dict(),
            ))
            self._session.commit()
            logger.debug(f"Recorded goal consequence {dedup_key}")

        except IntegrityError:
            # Recorded concurrently under the same key
            self._session.rollback()
            logger.debug(f"Goal consequence {dedup_key} already recorded")

        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error(f"Failed to record goal consequence {dedup_key}: {e}")
            raise StoreError(f"Cannot record consequence: {e}") from e

    def get_by_goal(self, goal_id: str) -> List[GoalConsequenceRecord]:
        stmt = (
            select(GoalConsequenceRecord)
            .where(GoalConsequenceRecord.goal_id == goal_id)
            .order_by(GoalConsequenceRecord.failure_date)
        )
        return list(self._session.execute(stmt).scalars().all())


class EvaluationLogRepository:
    """
    Audit trail of actions recorded through the engine.
    """

    def __init__(self, session: Session):
        self._session = session

    def log_decision(
        self,
        evaluation_id: str,
        decision: ActionDecision,
        timestamp: datetime,
        asset: Optional[str] = None,
    ) -> RuleEvaluationLog:
        """
        Log an action decision.

        Args:
            evaluation_id: Unique evaluation identifier
            decision: The decision to log
            timestamp: When the action was evaluated
            asset: Asset of the candidate

        Returns:
            Created RuleEvaluationLog record
        """
        try:
            record = RuleEvaluationLog(
                evaluation_id=evaluation_id,
                asset=asset,
                status=decision.status.status.value,
                allowed=decision.allowed,
                blocking_count=sum(1 for v in decision.violations if v.severity == Severity.ERROR),
                lockout_triggered=decision.lockout_triggered,
                violations=[v.to_dict() for v in decision.violations],
                reasons="\n".join(decision.status.reasons) or None,
                timestamp=ensure_utc(timestamp),
            )

            self._session.add(record)
            self._session.commit()

            logger.debug(f"Logged rule evaluation: {evaluation_id}")

            return record

        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error(f"Failed to log rule evaluation {evaluation_id}: {e}")
            raise StoreError(f"Cannot log evaluation: {e}") from e

    def get_recent_blocks(self, hours: int = 24, limit: int = 100) -> List[RuleEvaluationLog]:
        """Recent evaluations that were not allowed."""
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        stmt = (
            select(RuleEvaluationLog)
            .where(
                RuleEvaluationLog.allowed.is_(False),
                RuleEvaluationLog.timestamp >= since,
            )
            .order_by(desc(RuleEvaluationLog.timestamp))
            .limit(limit)
        )
        return list(self._session.execute(stmt).scalars().all())
