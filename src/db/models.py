"""SQLAlchemy ORM models for the StoreCommand state database.

This module defines connected commerce platforms, interpreted commands,
their change history for undo, and scheduled automations with their
run history. Uses SQLAlchemy 2.0 style with Mapped and mapped_column.

Structured payloads (interpretations, execution results, schedules) are
stored as JSON text columns; typed views live in src.orchestrator.models.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


def load_json(raw: str | None, default: Any = None) -> Any:
    """Decode a JSON text column, returning default for NULL."""
    if raw is None:
        return default
    return json.loads(raw)


def dump_json(value: Any) -> str | None:
    """Encode a value for a JSON text column; None stays NULL."""
    if value is None:
        return None
    return json.dumps(value, default=str)


# Enums matching the database schema constraints


class PlatformType(str, Enum):
    """Supported commerce platform types."""

    shopify = "shopify"
    woocommerce = "woocommerce"
    etsy = "etsy"
    faire = "faire"


class PlatformStatus(str, Enum):
    """Connection status of a platform record."""

    connected = "connected"
    disconnected = "disconnected"
    error = "error"


class CommandStatus(str, Enum):
    """Lifecycle of a command.

    Lifecycle: pending -> interpreted -> (awaiting_clarification ->
    interpreted)* -> confirmed -> executing -> completed | failed |
    partially_completed
    """

    pending = "pending"
    interpreted = "interpreted"
    awaiting_clarification = "awaiting_clarification"
    confirmed = "confirmed"
    executing = "executing"
    completed = "completed"
    failed = "failed"
    partially_completed = "partially_completed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            CommandStatus.completed,
            CommandStatus.failed,
            CommandStatus.partially_completed,
        )


class RiskLevel(str, Enum):
    """Risk classification of an interpreted plan."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AutomationRunStatus(str, Enum):
    """Outcome of one scheduled automation run."""

    completed = "completed"
    failed = "failed"
    partially_completed = "partially_completed"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class Platform(Base):
    """A user's connected commerce platform.

    The execution engine treats these rows as read-only. Credentials are
    written by the connection flow, which is outside this service.

    Attributes:
        id: UUID primary key
        user_id: Owning user
        platform_type: shopify, woocommerce, etsy, faire
        shop_name: Display name of the store
        shop_domain: Shopify domain (e.g. acme.myshopify.com)
        store_url: Base URL for WooCommerce stores
        encrypted_credentials: AES-GCM envelope holding tokens/keys
        status: Connection status
        is_active: Whether the user has the platform enabled
    """

    __tablename__ = "platforms"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    platform_type: Mapped[str] = mapped_column(String(20), nullable=False)
    shop_name: Mapped[str] = mapped_column(String(255), nullable=False)
    shop_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    store_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    encrypted_credentials: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PlatformStatus.connected.value
    )
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    __table_args__ = (Index("idx_platforms_user", "user_id"),)

    def __repr__(self) -> str:
        return (
            f"<Platform(id={self.id!r}, type={self.platform_type!r}, "
            f"shop={self.shop_name!r})>"
        )


class Command(Base):
    """A natural-language command and everything derived from it.

    Attributes:
        id: UUID primary key
        user_id: Owning user
        text: Original command text
        status: CommandStatus value
        platform_targets_json: Requested platform identifiers (JSON list)
        context_json: Interpretation context (JSON object)
        interpretation_json: Normalized Interpretation (JSON object)
        risk_level: LOW, MEDIUM, HIGH once interpreted
        confidence: Interpretation confidence in [0, 1]
        execution_results_json: ExecutionResult list (JSON array)
        preview_mode: Whether the execution was a dry run
        undo_of_command_id: Set on commands created by undo
        error_code: E-XXXX code if the command failed before execution
        error_message: Human-readable failure message
    """

    __tablename__ = "commands"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=CommandStatus.pending.value
    )
    platform_targets_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    context_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    interpretation_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    risk_level: Mapped[str | None] = mapped_column(String(10), nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    execution_results_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    preview_mode: Mapped[bool] = mapped_column(nullable=False, default=False)
    undo_of_command_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("commands.id", ondelete="SET NULL"), nullable=True
    )
    error_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps (ISO8601 strings for SQLite compatibility)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    interpreted_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    executed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    history: Mapped[list["CommandHistory"]] = relationship(
        "CommandHistory",
        back_populates="command",
        cascade="all, delete-orphan",
        foreign_keys="CommandHistory.command_id",
    )

    __table_args__ = (
        Index("idx_commands_user", "user_id"),
        Index("idx_commands_status", "status"),
        Index("idx_commands_created_at", "created_at"),
    )

    @property
    def platform_targets(self) -> list[str]:
        return load_json(self.platform_targets_json, [])

    @property
    def context(self) -> dict:
        return load_json(self.context_json, {})

    @property
    def interpretation(self) -> dict | None:
        return load_json(self.interpretation_json)

    @property
    def execution_results(self) -> list[dict]:
        return load_json(self.execution_results_json, [])

    def __repr__(self) -> str:
        return f"<Command(id={self.id!r}, status={self.status!r})>"


class CommandHistory(Base):
    """Change snapshot recorded for one executed (platform, action) pair.

    Undo replays before_state for every history row of a command.

    Attributes:
        id: UUID primary key
        command_id: Command that produced the change
        user_id: Owning user
        platform_id: Platform the change was applied to
        action_type: Action kind that produced the change
        step_number: Step within the plan
        before_state_json: Resource state before the change
        after_state_json: Resource state after the change
        affected_resources_json: Identifiers touched (products, price rules)
        can_undo: Whether the change can be reverted automatically
        undone_at: Set once reverted
        undo_command_id: Command that performed the revert
    """

    __tablename__ = "command_history"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    command_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("commands.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    platform_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action_type: Mapped[str] = mapped_column(String(40), nullable=False)
    step_number: Mapped[int] = mapped_column(nullable=False, default=1)
    before_state_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    after_state_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    affected_resources_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    can_undo: Mapped[bool] = mapped_column(nullable=False, default=True)
    undone_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    undo_command_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    command: Mapped["Command"] = relationship(
        "Command", back_populates="history", foreign_keys=[command_id]
    )

    __table_args__ = (Index("idx_command_history_command", "command_id"),)

    @property
    def before_state(self) -> Any:
        return load_json(self.before_state_json)

    @property
    def after_state(self) -> Any:
        return load_json(self.after_state_json)

    @property
    def affected_resources(self) -> dict:
        return load_json(self.affected_resources_json, {})


class Automation(Base):
    """A saved action plan that the scheduler runs on a cadence.

    Attributes:
        id: UUID primary key
        user_id: Owning user
        name: Display name
        description: Free text, also fed to the recommender
        enabled: Whether the scheduler considers this automation
        trigger_type: 'schedule' for time-based automations
        actions_json: Action plan (JSON array of Action payloads)
        platform_targets_json: Platforms the plan runs against
        schedule_config_json: User-chosen schedule (ScheduleConfig)
        ai_recommended_schedule_json: Last persisted recommendation
        ai_schedule_confidence: Confidence of that recommendation
        next_ai_scheduled_run: ISO8601 time of next run
        last_executed_at: ISO8601 time of last run
        trigger_count: Number of runs so far
    """

    __tablename__ = "automations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(nullable=False, default=True)
    trigger_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="schedule"
    )
    actions_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    platform_targets_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    schedule_config_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_recommended_schedule_json: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )
    ai_schedule_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    next_ai_scheduled_run: Mapped[str | None] = mapped_column(String(50), nullable=True)
    last_executed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    trigger_count: Mapped[int] = mapped_column(nullable=False, default=0)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    runs: Mapped[list["AutomationRun"]] = relationship(
        "AutomationRun", back_populates="automation", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_automations_user", "user_id"),
        Index("idx_automations_next_run", "next_ai_scheduled_run"),
    )

    @property
    def actions(self) -> list[dict]:
        return load_json(self.actions_json, [])

    @property
    def platform_targets(self) -> list[str]:
        return load_json(self.platform_targets_json, [])

    @property
    def schedule_config(self) -> dict | None:
        return load_json(self.schedule_config_json)

    @property
    def ai_recommended_schedule(self) -> dict | None:
        return load_json(self.ai_recommended_schedule_json)

    def __repr__(self) -> str:
        return f"<Automation(id={self.id!r}, name={self.name!r})>"


class AutomationRun(Base):
    """Performance record of one automation execution.

    Attributes:
        id: UUID primary key
        automation_id: Automation that ran
        user_id: Owning user
        command_id: Command record created for the run
        executed_at: ISO8601 run time
        status: AutomationRunStatus value
        success_rate: Fraction of successful (platform, action) pairs
        execution_time_ms: Wall-clock duration
        items_affected: Count of products/items changed
    """

    __tablename__ = "automation_runs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    automation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("automations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    command_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    executed_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    success_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    execution_time_ms: Mapped[int] = mapped_column(nullable=False, default=0)
    items_affected: Mapped[int] = mapped_column(nullable=False, default=0)

    automation: Mapped[Optional["Automation"]] = relationship(
        "Automation", back_populates="runs"
    )

    __table_args__ = (
        Index("idx_automation_runs_automation", "automation_id"),
        Index("idx_automation_runs_executed_at", "executed_at"),
    )
