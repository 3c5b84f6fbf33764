"""Database connection management for StoreCommand.

Provides synchronous SQLAlchemy sessions for FastAPI dependencies and
background scheduler runs. SQLite by default, any SQLAlchemy URL via
DATABASE_URL.

Usage:
    from src.db.connection import get_db_context, init_db

    init_db()
    with get_db_context() as db:
        ...
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base
from src.utils.paths import get_default_db_path

_SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
)


def get_database_url() -> str:
    """Return DATABASE_URL, or a SQLite file in the data directory."""
    configured = os.environ.get("DATABASE_URL", "").strip()
    return configured or f"sqlite:///{get_default_db_path()}"


def _apply_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for pragma in _SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


def create_db_engine(url: str) -> Engine:
    """Build an engine; SQLite engines get cross-thread access and pragmas."""
    is_sqlite = url.startswith("sqlite")
    db_engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
    )
    if is_sqlite:
        event.listen(db_engine, "connect", _apply_sqlite_pragmas)
    return db_engine


DATABASE_URL = get_database_url()
engine = create_db_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped session for FastAPI's Depends()."""
    with SessionLocal() as db:
        yield db


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Session for work outside a request; commits on success, rolls back on error."""
    with SessionLocal() as db:
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise


def init_db() -> None:
    """Create all database tables. Safe to call multiple times."""
    Base.metadata.create_all(bind=engine)


def close_db() -> None:
    """Dispose of the engine connection pool."""
    engine.dispose()
