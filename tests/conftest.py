"""Root-level pytest fixtures for all tests.

Provides shared fixtures including:
- Database fixtures (in-memory and file-based SQLite)
- Service fixtures wired to a temporary log directory
"""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Register custom markers and isolate the default database and data dir.

    src.db.connection builds its module-level engine at import time, so
    DATABASE_URL must point at a scratch file before any test imports it.
    """
    config.addinivalue_line(
        "markers", "slow: marks tests that take a long time to run"
    )

    scratch = Path(tempfile.mkdtemp(prefix="trackpool-tests-"))
    os.environ["TRACKPOOL_DATA_DIR"] = str(scratch / "data")
    os.environ["DATABASE_URL"] = f"sqlite:///{scratch / 'trackpool-test.db'}"
    os.environ.pop("TRACKPOOL_API_KEY", None)
    os.environ.pop("TRACKPOOL_CONFIG_PATH", None)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """In-memory SQLite session with all tables created."""
    from src.db.models import Base

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def file_based_db(tmp_path: Path) -> str:
    """URL of a file-based SQLite database with all tables created.

    Unlike in-memory databases, this is shared across connections and
    threads, so it can exercise concurrent claims.
    """
    from src.db.models import Base

    url = f"sqlite:///{tmp_path / 'pool.db'}"
    engine = create_engine(url)
    Base.metadata.create_all(engine)
    engine.dispose()
    return url


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    """Directory for upload and event logs."""
    path = tmp_path / "logs"
    path.mkdir()
    return path
