"""Pytest fixtures for API tests.

Provides test client, database session, and settings fixtures for
testing FastAPI endpoints.
"""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.api.dependencies import get_settings
from src.api.main import app
from src.cli.config import StorageConfig, TrackPoolConfig
from src.db.connection import get_db
from src.db.models import Base


@pytest.fixture
def test_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing.

    Creates all tables, yields a session, and cleans up after test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings(tmp_path: Path) -> TrackPoolConfig:
    """Defaults, with logs and reports under the test's tmp_path."""
    return TrackPoolConfig(
        storage=StorageConfig(
            log_dir=str(tmp_path / "logs"),
            report_dir=str(tmp_path / "reports"),
            max_upload_bytes=4096,
        )
    )


@pytest.fixture
def client(test_db: Session, settings: TrackPoolConfig) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden database and settings dependencies.

    Args:
        test_db: Test database session fixture.
        settings: Test configuration fixture.

    Yields:
        TestClient configured for testing.
    """

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
