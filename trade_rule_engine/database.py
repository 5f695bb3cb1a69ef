"""
Trade Rule Engine - Database.

============================================================
PURPOSE
============================================================
Engine and session factory for the persistent collaborators.

The URL is read from RULE_ENGINE_DATABASE_URL (a .env file is
loaded first). Without it a local SQLite file is used.

============================================================
"""

from contextlib import contextmanager
from typing import Generator, Optional
import logging
import os

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .models import Base
from .types import StoreError


load_dotenv()

logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "sqlite:///trade_rule_engine.db"

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("RULE_ENGINE_DATABASE_URL")
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"RULE_ENGINE_DATABASE_URL not set, using default: {url}")
    return url


def create_database_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine.

    Args:
        url: Database URL (defaults to get_database_url())
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    database_url = url or get_database_url()
    logger.info(f"Creating database engine for: {database_url.split('@')[-1]}")

    engine = create_engine(database_url, echo=echo, future=True)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            # SQLite leaves foreign key enforcement off per connection
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            logger.debug("SQLite connection established with foreign keys enabled")

    return engine


def get_engine() -> Engine:
    """Get the shared engine, creating it if necessary."""
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """
    Get a session factory.

    Passing an engine returns a dedicated factory (tests);
    otherwise the shared factory is created once.
    """
    global _SessionFactory

    if engine is not None:
        return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionFactory


@contextmanager
def get_db_session(engine: Optional[Engine] = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            settings = SettingsRepository(session).load()

    On exception the session is rolled back and the error
    re-raised.
    """
    session = get_session_factory(engine)()
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error(f"Database error, rolling back: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> Engine:
    """
    Create all rule engine tables.

    Raises:
        StoreError: If table creation fails
    """
    engine = engine or get_engine()
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create rule engine tables: {e}")
        raise StoreError(f"Cannot initialise database: {e}") from e

    logger.info("Rule engine tables ready")
    return engine
