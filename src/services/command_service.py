"""Command service: lifecycle of a natural-language command.

Owns the Command state machine and the gates between interpretation
and execution:

- a command awaiting clarification cannot be executed;
- MEDIUM and HIGH risk plans need explicit confirmation;
- plans marked irreversible run as a dry run unless preview is declined;
- terminal commands (completed, failed, partially_completed) are immutable.

Every executed (platform, action) pair that produced a change snapshot
is recorded as a CommandHistory row for undo.
"""

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.models import (
    Command,
    CommandHistory,
    CommandStatus,
    dump_json,
    utc_now_iso,
)
from src.errors import (
    ClarificationPendingError,
    CommandStateError,
    ConfirmationRequiredError,
    DomainError,
    NotFoundError,
    StoreCommandError,
    ValidationError,
)
from src.orchestrator.execution.engine import ExecutionEngine, ExecutionReport
from src.orchestrator.models.action import Action
from src.orchestrator.models.interpretation import Interpretation
from src.orchestrator.nl_engine.interpreter import CommandInterpreter
from src.orchestrator.nl_engine.risk import (
    apply_risk,
    default_preview,
    requires_confirmation,
)
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)


# Valid state transitions for the command lifecycle
VALID_TRANSITIONS: dict[CommandStatus, list[CommandStatus]] = {
    CommandStatus.pending: [
        CommandStatus.interpreted,
        CommandStatus.awaiting_clarification,
        CommandStatus.failed,
    ],
    CommandStatus.interpreted: [
        CommandStatus.confirmed,
        CommandStatus.executing,
        CommandStatus.failed,
    ],
    CommandStatus.awaiting_clarification: [
        CommandStatus.interpreted,
        CommandStatus.awaiting_clarification,
        CommandStatus.failed,
    ],
    CommandStatus.confirmed: [CommandStatus.executing, CommandStatus.failed],
    CommandStatus.executing: [
        CommandStatus.completed,
        CommandStatus.failed,
        CommandStatus.partially_completed,
    ],
    CommandStatus.completed: [],  # terminal
    CommandStatus.failed: [],  # terminal
    CommandStatus.partially_completed: [],  # terminal
}

DIRECT_PLAN_CONFIDENCE = 1.0


class CommandService:
    """Command persistence, interpretation and execution gating.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(
        self,
        db: Session,
        interpreter: CommandInterpreter,
        engine: ExecutionEngine,
    ) -> None:
        self.db = db
        self._interpreter = interpreter
        self._engine = engine

    # =========================================================================
    # Persistence
    # =========================================================================

    def create_command(
        self,
        user_id: str,
        text: str,
        platform_targets: list[str] | None = None,
        context: dict[str, Any] | None = None,
        undo_of_command_id: str | None = None,
    ) -> Command:
        command = Command(
            user_id=user_id,
            text=text,
            status=CommandStatus.pending.value,
            platform_targets_json=dump_json(platform_targets or []),
            context_json=dump_json(context or {}),
            undo_of_command_id=undo_of_command_id,
        )
        self.db.add(command)
        self.db.commit()
        self.db.refresh(command)
        return command

    def get_command(self, user_id: str, command_id: str) -> Command:
        """Fetch a command owned by the user.

        Raises:
            NotFoundError: If the command does not exist or belongs to another user.
        """
        command = self.db.scalar(
            select(Command).where(Command.id == command_id, Command.user_id == user_id)
        )
        if command is None:
            raise NotFoundError("Command", command_id)
        return command

    def list_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        status: CommandStatus | None = None,
    ) -> list[Command]:
        """A user's commands, newest first."""
        stmt = select(Command).where(Command.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Command.status == status.value)
        stmt = stmt.order_by(Command.created_at.desc()).offset(offset).limit(limit)
        return list(self.db.scalars(stmt))

    def transition(self, command: Command, new_status: CommandStatus) -> None:
        """Move a command to a new status, enforcing the state machine.

        Raises:
            CommandStateError: On terminal or otherwise invalid transitions.
        """
        current = CommandStatus(command.status)
        if new_status not in VALID_TRANSITIONS[current]:
            if current.is_terminal:
                raise CommandStateError(
                    f"Command {command.id} is {current.value} and can no longer change"
                )
            raise CommandStateError(
                f"Command {command.id} cannot move from {current.value} to {new_status.value}"
            )
        command.status = new_status.value

    def _fail(self, command: Command, error: Exception) -> None:
        if CommandStatus(command.status).is_terminal:
            return
        structured = StoreCommandError.from_exception(error)
        self.transition(command, CommandStatus.failed)
        command.error_code = structured.code
        command.error_message = sanitize_error_message(structured.message)
        self.db.commit()

    def _store_interpretation(self, command: Command, interpretation: Interpretation) -> None:
        command.interpretation_json = dump_json(interpretation.to_payload())
        command.risk_level = interpretation.risk_level
        command.confidence = interpretation.confidence_score
        command.interpreted_at = utc_now_iso()
        next_status = (
            CommandStatus.awaiting_clarification
            if interpretation.needs_clarification
            else CommandStatus.interpreted
        )
        self.transition(command, next_status)
        self.db.commit()

    def load_interpretation(self, command: Command) -> Interpretation | None:
        payload = command.interpretation
        if payload is None:
            return None
        return Interpretation.model_validate(payload)

    # =========================================================================
    # Interpretation
    # =========================================================================

    async def interpret(
        self,
        user_id: str,
        command_text: str,
        platform_targets: list[str] | None = None,
        context: dict[str, Any] | None = None,
        request_preview: bool = False,
    ) -> tuple[Command, Interpretation, ExecutionReport | None]:
        """Create and interpret a command.

        When ``request_preview`` is set and the plan needs no clarification,
        a dry run is executed so the caller can show what would change.

        Raises:
            InterpretationError: Nothing could be interpreted; the command is
                persisted as failed first.
            ConfigurationError: LLM unconfigured and no fallback match.
        """
        command = self.create_command(user_id, command_text, platform_targets, context)
        try:
            interpretation = await self._interpreter.interpret(
                command_text, platform_targets, context
            )
        except DomainError as e:
            self._fail(command, e)
            raise

        self._store_interpretation(command, interpretation)
        logger.info(
            "Command %s interpreted: status=%s risk=%s",
            command.id, command.status, interpretation.risk_level,
        )

        preview = None
        if request_preview and not interpretation.needs_clarification:
            preview = await self._preview(command, interpretation, platform_targets)
        return command, interpretation, preview

    async def clarify(
        self,
        user_id: str,
        command_id: str,
        answer: str,
        question: str | None = None,
    ) -> tuple[Command, Interpretation]:
        """Re-interpret a command with the user's answer to its clarification.

        Raises:
            CommandStateError: If the command is not awaiting clarification.
            ValidationError: If the answer is empty.
        """
        command = self.get_command(user_id, command_id)
        if command.status != CommandStatus.awaiting_clarification.value:
            raise CommandStateError(
                f"Command {command_id} is {command.status}, not awaiting clarification"
            )
        if not answer or not answer.strip():
            raise ValidationError("A clarification answer is required")

        previous = self.load_interpretation(command)
        if question is None and previous is not None and previous.clarification_needed:
            question = previous.clarification_needed.first_question

        context = dict(command.context)
        history = list(context.get("clarification_history", []))
        history.append({"question": question, "answer": answer})
        context.update(
            {
                "previous_question": question,
                "user_answer": answer,
                "clarification_history": history,
            }
        )
        command.context_json = dump_json(context)
        self.db.commit()

        try:
            interpretation = await self._interpreter.interpret(
                command.text, command.platform_targets, context
            )
        except DomainError as e:
            self._fail(command, e)
            raise

        self._store_interpretation(command, interpretation)
        return command, interpretation

    # =========================================================================
    # Execution
    # =========================================================================

    def _direct_plan(self, actions: list[Action] | None) -> Interpretation:
        if not actions:
            raise ValidationError("Provide a command_id or a non-empty action list")
        return _build_plan(actions, DIRECT_PLAN_CONFIDENCE)

    def _record_direct_plan(
        self,
        user_id: str,
        interpretation: Interpretation,
        platform_targets: list[str],
        text: str | None,
    ) -> Command:
        descriptions = "; ".join(
            a.description or a.type for a in interpretation.ordered_actions()
        )
        command = self.create_command(
            user_id, text or f"Direct plan: {descriptions}", platform_targets
        )
        self._store_interpretation(command, interpretation)
        return command

    def _stored_plan(
        self,
        user_id: str,
        command_id: str,
        actions: list[Action] | None,
        platform_targets: list[str] | None,
    ) -> tuple[Command, Interpretation, list[str]]:
        command = self.get_command(user_id, command_id)
        status = CommandStatus(command.status)
        if status.is_terminal:
            raise CommandStateError(
                f"Command {command_id} is {status.value} and can no longer change"
            )
        if status == CommandStatus.awaiting_clarification:
            raise ClarificationPendingError(command_id)
        stored = self.load_interpretation(command)
        if stored is None:
            raise CommandStateError(f"Command {command_id} has not been interpreted")

        if actions:
            interpretation = _build_plan(actions, stored.confidence_score, stored)
            self._store_plan(command, interpretation)
        else:
            interpretation = stored
        targets = platform_targets or command.platform_targets
        return command, interpretation, targets

    def _store_plan(self, command: Command, interpretation: Interpretation) -> None:
        command.interpretation_json = dump_json(interpretation.to_payload())
        command.risk_level = interpretation.risk_level
        self.db.commit()

    async def _preview(
        self,
        command: Command,
        interpretation: Interpretation,
        platform_targets: list[str] | None,
    ) -> ExecutionReport:
        report = await self._engine.execute(
            command.user_id,
            interpretation.ordered_actions(),
            platform_targets,
            preview_mode=True,
        )
        command.execution_results_json = dump_json([r.to_dict() for r in report.results])
        command.preview_mode = True
        self.db.commit()
        return report

    async def execute(
        self,
        user_id: str,
        actions: list[Action] | None = None,
        platform_targets: list[str] | None = None,
        command_id: str | None = None,
        confirmed: bool = False,
        preview_mode: bool | None = None,
        text: str | None = None,
    ) -> tuple[Command, ExecutionReport]:
        """Execute (or preview) a command's plan.

        Args:
            user_id: Requesting user; every lookup is scoped to it.
            actions: Plan to run. Defaults to the stored interpretation.
            platform_targets: Target platforms. Defaults to the command's.
            command_id: Existing command; when None an ad-hoc command is created.
            confirmed: Explicit user confirmation for MEDIUM/HIGH plans.
            preview_mode: Force dry run on or off; None applies the default
                (dry run for irreversible plans).
            text: Command text recorded for ad-hoc plans.

        Raises:
            ClarificationPendingError: The command is awaiting clarification.
            ConfirmationRequiredError: MEDIUM/HIGH plan without confirmation.
            CommandStateError: The command is terminal.
            NoConnectedPlatformError: No target resolved; the command fails.
        """
        if command_id is None:
            command = None
            interpretation = self._direct_plan(actions)
            targets = platform_targets or []
        else:
            command, interpretation, targets = self._stored_plan(
                user_id, command_id, actions, platform_targets
            )

        preview = default_preview(interpretation) if preview_mode is None else preview_mode
        if not preview and requires_confirmation(interpretation) and not confirmed:
            raise ConfirmationRequiredError(
                interpretation.risk_level, interpretation.risk_warning
            )
        if command is None:
            command = self._record_direct_plan(user_id, interpretation, targets, text)

        if preview:
            logger.info("Previewing command %s", command.id)
            return command, await self._preview(command, interpretation, targets)

        if CommandStatus(command.status) == CommandStatus.interpreted:
            self.transition(command, CommandStatus.confirmed)
        self.transition(command, CommandStatus.executing)
        command.preview_mode = False
        self.db.commit()

        try:
            report = await self._engine.execute(
                user_id, interpretation.ordered_actions(), targets, preview_mode=False
            )
        except DomainError as e:
            logger.warning("Command %s failed before execution: %s", command.id, e.message)
            self._fail(command, e)
            raise
        except Exception as e:
            logger.exception("Unexpected error executing command %s", command.id)
            self._fail(command, e)
            raise

        self._record_execution(command, report)
        return command, report

    def _record_execution(self, command: Command, report: ExecutionReport) -> None:
        command.execution_results_json = dump_json([r.to_dict() for r in report.results])
        command.executed_at = utc_now_iso()
        for result in report.results:
            if result.snapshot is None or not result.snapshot.before_state:
                continue
            snapshot = result.snapshot
            self.db.add(
                CommandHistory(
                    command_id=command.id,
                    user_id=command.user_id,
                    platform_id=result.platform_id,
                    action_type=result.action_type,
                    step_number=result.step_number,
                    before_state_json=dump_json(snapshot.before_state),
                    after_state_json=dump_json(snapshot.after_state),
                    affected_resources_json=dump_json(snapshot.affected_resources),
                    can_undo=snapshot.can_undo,
                )
            )
        self.transition(command, report.status)
        self.db.commit()
        logger.info(
            "Command %s finished %s (%s)", command.id, report.status.value, report.summary
        )


def _build_plan(
    actions: list[Action],
    confidence: float,
    base: Interpretation | None = None,
) -> Interpretation:
    """Risk-scored interpretation for a caller-supplied action list.

    Raises:
        ValidationError: If the actions do not form a valid plan.
    """
    try:
        interpretation = Interpretation(
            actions=actions,
            confidence_score=confidence,
            estimated_impact=base.estimated_impact if base else None,
            source=base.source if base else "llm",
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid action plan: {e}") from e
    return apply_risk(interpretation)
