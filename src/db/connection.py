"""Database connection management for TrackPool.

Provides synchronous database access using SQLAlchemy. Supports SQLite
for single-host deployments with a PostgreSQL path for production, where
the pool claim takes row locks.

Usage:
    # FastAPI Depends
    from src.db.connection import get_db, init_db

    init_db()  # Create tables
    db = next(get_db())
    # ... use db session

    # Scripts and the CLI
    from src.db.connection import get_db_context

    with get_db_context() as db:
        ...
"""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base

logger = logging.getLogger(__name__)


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. TRACKPOOL_DB_PATH (converted to sqlite URL)
    3. sqlite:///<data dir>/trackpool.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("TRACKPOOL_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from src.utils.paths import get_default_db_path
    return f"sqlite:///{get_default_db_path()}"


# Engine creation
DATABASE_URL = get_database_url()

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30}
    if DATABASE_URL.startswith("sqlite")
    else {},
    echo=os.environ.get("SQL_ECHO", "").lower() == "true",
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers alongside the single writer that
      holds the claim or ingestion transaction.
    - synchronous=NORMAL: Commits are durable after WAL fsync.
    """
    if DATABASE_URL.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.close()


# Session factories
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


# Dependency functions for FastAPI


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for request-scoped work.

    Intended for use with FastAPI's Depends().

    Usage:
        @app.get("/trackings/summary")
        def summary(db: Session = Depends(get_db)):
            return TrackingPoolStore(db).pool_summary()

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Context managers for manual session management


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            entry = db.query(EGTrackingEntry).first()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Initialization functions


def _ensure_pool_indexes(conn: Any) -> None:
    """Create pool indexes missing from databases created by older releases.

    Idempotent; safe to call on every startup.

    Args:
        conn: SQLAlchemy Connection.
    """
    from sqlalchemy.exc import OperationalError

    for idx_stmt in [
        "CREATE INDEX IF NOT EXISTS idx_eg_tracking_available "
        "ON eg_india_post_tracking (is_accessable, order_id)",
        "CREATE INDEX IF NOT EXISTS idx_cg_tracking_available "
        "ON cg_india_post_tracking (is_accessable, order_id)",
    ]:
        try:
            conn.execute(text(idx_stmt))
        except OperationalError as e:
            logger.warning("Pool index creation failed: %s", e)


def init_db() -> None:
    """Create all database tables.

    Uses the Base.metadata from models.py to create all defined tables.
    Safe to call multiple times - will not recreate existing tables.

    Usage:
        from src.db.connection import init_db
        init_db()
    """
    Base.metadata.create_all(bind=engine)
    with engine.begin() as conn:
        _ensure_pool_indexes(conn)


# Cleanup functions


def close_db() -> None:
    """Close the engine and dispose of connection pool."""
    engine.dispose()
