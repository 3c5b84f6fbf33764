"""Database module for StoreCommand state management and persistence."""

from src.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from src.db.models import (
    Automation,
    AutomationRun,
    AutomationRunStatus,
    Command,
    CommandHistory,
    CommandStatus,
    Platform,
    PlatformStatus,
    PlatformType,
    RiskLevel,
)

__all__ = [
    # Models
    "Platform",
    "Command",
    "CommandHistory",
    "Automation",
    "AutomationRun",
    # Enums
    "PlatformType",
    "PlatformStatus",
    "CommandStatus",
    "RiskLevel",
    "AutomationRunStatus",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
