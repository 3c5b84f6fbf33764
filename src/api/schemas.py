"""Pydantic schemas for API request/response validation.

Request bodies are validated here; action plans reuse the discriminated
``Action`` union so that route handlers receive typed actions. Every
response is wrapped in ``Envelope`` (``success`` plus ``data`` or the
error fields rendered by the exception handlers).
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.db.models import PlatformType
from src.orchestrator.models.action import Action


class Envelope(BaseModel):
    """Successful response wrapper."""

    success: bool = True
    data: Any = None


# Command schemas


class InterpretRequest(BaseModel):
    """Request schema for interpreting a natural-language command."""

    command_text: str = Field(..., min_length=1, max_length=2000)
    platform_targets: list[str] = Field(default_factory=list)
    context: dict[str, Any] | None = None
    request_preview: bool = False

    @field_validator("command_text")
    @classmethod
    def _strip_command(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("command_text must not be blank")
        return stripped


class ClarifyRequest(BaseModel):
    """Answer to a command's clarification question."""

    answer: str = Field(..., min_length=1, max_length=2000)
    question: str | None = None


class ExecuteRequest(BaseModel):
    """Request schema for executing a stored or supplied plan.

    Either ``command_id`` (run the stored interpretation, optionally with
    edited ``actions``) or a non-empty ``actions`` list is required.
    """

    command_id: str | None = None
    actions: list[Action] = Field(default_factory=list)
    platform_targets: list[str] = Field(default_factory=list)
    confirmed: bool = False
    preview_mode: bool | None = None


class CommandResponse(BaseModel):
    """Response schema for a command row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    text: str
    status: str
    platform_targets: list[str] = Field(default_factory=list)
    risk_level: str | None = None
    confidence: float | None = None
    interpretation: dict | None = None
    execution_results: list[dict] = Field(default_factory=list)
    preview_mode: bool = False
    undo_of_command_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: str
    interpreted_at: str | None = None
    executed_at: str | None = None


class CommandHistoryResponse(BaseModel):
    """Paginated command history."""

    commands: list[CommandResponse]
    count: int
    limit: int
    offset: int


# Platform schemas


class PlatformRegisterRequest(BaseModel):
    """Register a platform connection with manually issued credentials."""

    platform_type: PlatformType
    shop_name: str = Field(..., min_length=1, max_length=255)
    shop_domain: str | None = Field(None, max_length=255)
    store_url: str | None = Field(None, max_length=500)
    credentials: dict[str, str] = Field(..., repr=False)


class PlatformResponse(BaseModel):
    """A connected platform, without credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    platform_type: str
    shop_name: str
    shop_domain: str | None = None
    store_url: str | None = None
    status: str
    is_active: bool
    created_at: str


# Scheduler schemas


class SchedulerRequest(BaseModel):
    """Which scheduler pass to run."""

    mode: Literal["analyze", "execute_pending"]
