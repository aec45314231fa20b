"""Metadata store configuration and session management.

The metadata store holds backup records and the settings row. It is reached
through `DATABASE_URL` and defaults to a SQLite file inside `BACKUP_DIR`, so it
never lives in the collection database that a restore drops and recreates.
"""

from typing import Generator
import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from collector_backup.core import config


logger = logging.getLogger(__name__)


def _resolve_sql_echo() -> bool | str:
    """Resolve SQL echo flag from environment.

    Supports the following values for `LOG_SQL_ECHO`:
    - "" (unset or empty): returns False (no SQL echo)
    - truthy ("1", "true", "yes", "on"): returns True (INFO-level statements)
    - "debug": returns "debug" (DEBUG-level with parameter values)
    Any other value defaults to False.
    """
    raw = os.getenv("LOG_SQL_ECHO", "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("debug", "2", "verbose"):
        return "debug"
    return False


_engine: Engine | None = None
SessionLocal: sessionmaker | None = None

# Create base class for models
Base = declarative_base()


def get_engine() -> Engine:
    """Create the SQLAlchemy engine lazily."""
    global _engine, SessionLocal
    if _engine is not None:
        return _engine

    url = config.get_metadata_db_url()
    connect_args: dict = {}
    if url.startswith("sqlite"):
        # Backup directory doubles as the SQLite location
        config.get_backup_dir().mkdir(parents=True, exist_ok=True)
        connect_args["check_same_thread"] = False
    logger.info("Metadata store URL: %s", url.split("@")[-1])

    _engine = create_engine(url, connect_args=connect_args, echo=_resolve_sql_echo())

    # Bind a session factory
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """Get database session."""
    # Ensure engine and session factory are initialized
    if SessionLocal is None:
        get_engine()
        assert SessionLocal is not None
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def new_session() -> Session:
    """Open a standalone session for background work (caller closes it)."""
    if SessionLocal is None:
        get_engine()
        assert SessionLocal is not None
    return SessionLocal()


def init_db() -> None:
    """Initialize database tables.

    Safety principle: NEVER drop tables automatically in application code.
    This function only attempts to create missing tables.
    """
    from collector_backup.models import Backup, Settings  # noqa: F401

    logger.info("init_db: creating tables if missing")
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("init_db: ensured tables exist")
