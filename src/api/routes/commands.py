"""FastAPI routes for command interpretation, execution and undo.

Provides the REST surface of the command pipeline:

- interpret free text into a risk-scored plan (optionally with a dry run)
- answer a clarification question and re-interpret
- execute a stored or supplied plan behind the confirmation gate
- undo an executed command
- read command history

Domain errors propagate to the app-wide exception handlers, which render
the error envelope and pick the status code.
"""

import logging

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_command_service, get_undo_service
from src.api.middleware.auth import get_current_user_id
from src.api.schemas import (
    ClarifyRequest,
    CommandHistoryResponse,
    CommandResponse,
    Envelope,
    ExecuteRequest,
    InterpretRequest,
)
from src.db.models import Command, CommandStatus
from src.services.command_service import CommandService
from src.services.undo_service import UndoService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commands", tags=["commands"])


def _command_response(command: Command) -> CommandResponse:
    return CommandResponse(
        id=command.id,
        text=command.text,
        status=command.status,
        platform_targets=command.platform_targets,
        risk_level=command.risk_level,
        confidence=command.confidence,
        interpretation=command.interpretation,
        execution_results=command.execution_results,
        preview_mode=command.preview_mode,
        undo_of_command_id=command.undo_of_command_id,
        error_code=command.error_code,
        error_message=command.error_message,
        created_at=command.created_at,
        interpreted_at=command.interpreted_at,
        executed_at=command.executed_at,
    )


@router.post("/interpret", response_model=Envelope)
async def interpret_command(
    payload: InterpretRequest,
    user_id: str = Depends(get_current_user_id),
    service: CommandService = Depends(get_command_service),
) -> Envelope:
    """Interpret a natural-language command.

    The response carries the command id, the plan (or the clarification
    request), its risk assessment, and a dry-run report when
    ``request_preview`` was set.
    """
    command, interpretation, preview = await service.interpret(
        user_id,
        payload.command_text,
        payload.platform_targets,
        payload.context,
        request_preview=payload.request_preview,
    )
    return Envelope(data={
        "command_id": command.id,
        "status": command.status,
        "interpretation": interpretation.to_payload(),
        "preview": preview.to_dict() if preview else None,
    })


@router.post("/execute", response_model=Envelope)
async def execute_command(
    payload: ExecuteRequest,
    user_id: str = Depends(get_current_user_id),
    service: CommandService = Depends(get_command_service),
) -> Envelope:
    """Execute, or preview, a command's plan.

    MEDIUM and HIGH risk plans fail with E-2002 unless ``confirmed`` is
    set. Per-item platform failures do not fail the request; they show
    up in ``results`` and in the folded ``status``.
    """
    command, report = await service.execute(
        user_id,
        actions=payload.actions or None,
        platform_targets=payload.platform_targets or None,
        command_id=payload.command_id,
        confirmed=payload.confirmed,
        preview_mode=payload.preview_mode,
    )
    return Envelope(data={"command_id": command.id, **report.to_dict()})


@router.get("/history", response_model=Envelope)
def get_command_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    status: CommandStatus | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: CommandService = Depends(get_command_service),
) -> Envelope:
    """The user's commands, newest first."""
    commands = service.list_history(user_id, limit=limit, offset=offset, status=status)
    history = CommandHistoryResponse(
        commands=[_command_response(c) for c in commands],
        count=len(commands),
        limit=limit,
        offset=offset,
    )
    return Envelope(data=history.model_dump())


@router.get("/{command_id}", response_model=Envelope)
def get_command(
    command_id: str,
    user_id: str = Depends(get_current_user_id),
    service: CommandService = Depends(get_command_service),
) -> Envelope:
    command = service.get_command(user_id, command_id)
    return Envelope(data=_command_response(command).model_dump())


@router.post("/{command_id}/clarify", response_model=Envelope)
async def clarify_command(
    command_id: str,
    payload: ClarifyRequest,
    user_id: str = Depends(get_current_user_id),
    service: CommandService = Depends(get_command_service),
) -> Envelope:
    """Answer the pending clarification question and re-interpret."""
    command, interpretation = await service.clarify(
        user_id, command_id, payload.answer, payload.question
    )
    return Envelope(data={
        "command_id": command.id,
        "status": command.status,
        "interpretation": interpretation.to_payload(),
    })


@router.post("/{command_id}/undo", response_model=Envelope)
async def undo_command(
    command_id: str,
    user_id: str = Depends(get_current_user_id),
    service: UndoService = Depends(get_undo_service),
) -> Envelope:
    """Revert an executed command; the undo runs as a new command."""
    undo_command, report = await service.undo(user_id, command_id)
    logger.info("Command %s undone by %s", command_id, undo_command.id)
    return Envelope(data={
        "command_id": undo_command.id,
        "undo_of_command_id": command_id,
        **report.to_dict(),
    })
