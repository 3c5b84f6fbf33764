"""Pytest fixtures for API tests.

The app runs against the shared in-memory database, a scripted LLM
client and a FakeCatalog behind one connected Shopify platform.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from src.api.dependencies import (
    get_execution_engine,
    get_llm_client,
    get_undo_service,
)
from src.api.main import app
from src.config import ExecutionSettings
from src.db.connection import get_db
from src.orchestrator.execution.engine import ExecutionEngine
from src.services.undo_service import UndoService
from tests.helpers import FakeCatalog, FakeDirectory, FakeLLMClient, make_connection, make_product


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def llm() -> FakeLLMClient:
    """Scripted model; tests queue replies on ``llm.replies``."""
    return FakeLLMClient()


@pytest.fixture
def catalog(monkeypatch) -> FakeCatalog:
    fake = FakeCatalog([
        make_product("1", "Blue Mug", price=10.0, quantity=5),
        make_product("2", "Red Hat", price=20.0, quantity=8),
    ])

    def get_catalog(connection, adapter):
        return fake

    monkeypatch.setattr("src.orchestrator.execution.engine.get_catalog", get_catalog)
    monkeypatch.setattr("src.services.undo_service.get_catalog", get_catalog)
    return fake


@pytest.fixture
def client(
    db_session: Session, llm: FakeLLMClient, catalog: FakeCatalog
) -> Generator[TestClient, None, None]:
    """TestClient with database, model and platform dependencies overridden."""
    directory = FakeDirectory(make_connection())
    settings = ExecutionSettings(batch_delay_seconds=0)

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_execution_engine] = lambda: ExecutionEngine(
        None, directory, settings, sleep=_no_sleep
    )
    app.dependency_overrides[get_undo_service] = lambda: UndoService(
        db_session, None, directory, settings
    )
    yield TestClient(app)
    app.dependency_overrides.clear()
