"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory SQLite sessions
- A throwaway credential encryption key
- Fake catalogs and platform connections
"""

import base64
import os
from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.db.models import Base


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external services"
    )


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """In-memory SQLite session with all tables created."""
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
        engine.dispose()


@pytest.fixture
def credential_key(monkeypatch) -> bytes:
    """Pin the credential key via env so no key file is written."""
    key = os.urandom(32)
    monkeypatch.setenv("STORECOMMAND_CREDENTIAL_KEY", base64.b64encode(key).decode())
    return key


@pytest.fixture(autouse=True)
def _no_anthropic_key(monkeypatch):
    """Keep tests off the real Anthropic API."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
