"""
Tests for the SQLAlchemy-backed collaborators.

Uses an in-memory SQLite database.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from trade_rule_engine import (
    ActionDecision,
    ConfigurationPatch,
    InMemoryTradeStore,
    OverallStatus,
    RiskStatus,
    StoreError,
    TradeRuleEngine,
    get_strict_config,
)
from trade_rule_engine.database import (
    create_database_engine,
    get_db_session,
    get_session_factory,
    init_db,
)
from trade_rule_engine.models import RuleEvaluationLog
from trade_rule_engine.repository import (
    ConsequenceRepository,
    EvaluationLogRepository,
    SettingsRepository,
)


@pytest.fixture
def db_engine():
    engine = create_database_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(db_engine):
    session = get_session_factory(db_engine)()
    yield session
    session.close()


class TestSettingsRepository:

    def test_missing_profile_loads_defaults(self, session):
        settings = SettingsRepository(session).load()
        assert settings.risk.max_risk_per_trade == 1.0

    def test_save_and_load(self, session, now):
        settings = get_strict_config()
        settings.lockout.blocked_until = now + timedelta(hours=24)
        repo = SettingsRepository(session)

        repo.save(settings)
        loaded = repo.load()

        assert loaded.to_dict() == settings.to_dict()
        assert loaded.lockout.blocked_until == now + timedelta(hours=24)

    def test_save_overwrites_same_profile(self, session):
        repo = SettingsRepository(session)
        settings = get_strict_config()
        repo.save(settings)

        settings.rules.max_trades_per_day = 7
        repo.save(settings)

        assert repo.load().rules.max_trades_per_day == 7

    def test_profiles_are_separate(self, session):
        strict = get_strict_config()
        SettingsRepository(session, profile="strict").save(strict)

        assert SettingsRepository(session, profile="strict").load().lockout.enabled
        assert not SettingsRepository(session).load().lockout.enabled

    def test_missing_table_raises_store_error(self):
        engine = create_database_engine("sqlite://")
        session = get_session_factory(engine)()
        repo = SettingsRepository(session)

        with pytest.raises(StoreError):
            repo.save(get_strict_config())
        with pytest.raises(StoreError):
            repo.load()

        session.close()
        engine.dispose()


class TestConsequenceRepository:

    def test_record_once(self, session):
        log = ConsequenceRepository(session)
        patch = ConfigurationPatch(
            goal_id="G1",
            dedup_key="G1:2024-01-09",
            failure_date=date(2024, 1, 9),
            max_risk_per_trade=1.0,
            applied=True,
        )

        assert not log.has("G1:2024-01-09")
        log.record("G1:2024-01-09", patch)
        log.record("G1:2024-01-09", patch)

        assert log.has("G1:2024-01-09")
        records = log.get_by_goal("G1")
        assert len(records) == 1
        assert records[0].patch["max_risk_per_trade"] == 1.0


class TestEvaluationLogRepository:

    def test_engine_logs_decisions(self, session, clock, candidate):
        settings = get_strict_config()
        SettingsRepository(session).save(settings)

        engine = TradeRuleEngine(
            trade_store=InMemoryTradeStore(),
            settings_store=SettingsRepository(session),
            consequence_log=ConsequenceRepository(session),
            clock=clock,
            evaluation_log=EvaluationLogRepository(session),
        )

        decision = engine.record_action(candidate)

        assert not decision.allowed
        record = session.execute(select(RuleEvaluationLog)).scalar_one()
        assert record.evaluation_id.startswith("RULE-")
        assert record.asset == "EURUSD"
        assert record.status == "blocked"
        assert record.lockout_triggered
        assert record.blocking_count == 1
        # Lockout persisted through the repository
        assert SettingsRepository(session).load().lockout.blocked_until is not None

    def test_recent_blocks(self, session):
        repo = EvaluationLogRepository(session)
        now = datetime.now(timezone.utc)
        blocked = ActionDecision(
            allowed=False,
            requires_confirmation=False,
            violations=[],
            status=RiskStatus(status=OverallStatus.BLOCKED, reasons=["Temporary lockout"]),
        )
        allowed = ActionDecision(
            allowed=True,
            requires_confirmation=False,
            violations=[],
            status=RiskStatus(status=OverallStatus.OPERABLE),
        )

        repo.log_decision("RULE-1", blocked, now, asset="EURUSD")
        repo.log_decision("RULE-2", allowed, now, asset="EURUSD")

        recent = repo.get_recent_blocks(hours=1)
        assert [record.evaluation_id for record in recent] == ["RULE-1"]


def test_get_db_session(db_engine):
    with get_db_session(db_engine) as session:
        SettingsRepository(session).save(get_strict_config())

    with get_db_session(db_engine) as session:
        assert SettingsRepository(session).load().lockout.enabled


def test_sqlite_foreign_keys_enforced(db_engine):
    with db_engine.connect() as connection:
        assert connection.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
