"""
SQLAlchemy engine factory and session management for TradeLedger.

Provides a module-level engine and a get_session() context manager that
commits on success and rolls back on exception.  Supports both SQLite and
PostgreSQL; the dialect is selected at init time based on the URL prefix.
"""

import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tradeledger.config import get_database_url

logger = logging.getLogger(__name__)

# Module-level state
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def init_engine(db_url: str = None) -> Engine:
    """Create (or replace) the module-level SQLAlchemy engine.

    Args:
        db_url: Full SQLAlchemy database URL. If None, reads DATABASE_URL
                from the environment (see tradeledger.config).

    Call once at startup, typically inside DatabaseManager.initialize_database().
    """
    global _engine, _SessionFactory

    if db_url is None:
        db_url = get_database_url()

    if _engine is not None:
        _engine.dispose()

    dialect = "postgresql" if db_url.startswith("postgresql") else "sqlite"

    if dialect == "sqlite":
        _engine = create_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False},  # required for FastAPI
        )

        # Enable foreign keys for every connection (SQLite-specific)
        @event.listens_for(_engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    else:
        _engine = create_engine(
            db_url,
            echo=False,
            pool_size=5,
            max_overflow=10,
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info("SQLAlchemy engine initialized (%s): %s", dialect, db_url.split("@")[-1] if "@" in db_url else db_url)
    return _engine


def get_engine() -> Engine:
    """Return the current engine (raises if init_engine hasn't been called)."""
    if _engine is None:
        raise RuntimeError("SQLAlchemy engine not initialized; call init_engine() first")
    return _engine


@contextmanager
def get_session():
    """Context manager yielding a SQLAlchemy Session.

    Commits on clean exit, rolls back on exception.
    """
    if _SessionFactory is None:
        raise RuntimeError("SQLAlchemy engine not initialized; call init_engine() first")

    session: Session = _SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
