"""Undo of executed commands from their recorded change snapshots.

An undo runs as a new Command (``undo_of_command_id`` points at the
original) that replays each CommandHistory row's before_state through
the platform's CatalogClient. The original command row is left as it
was; only its history rows are stamped with ``undone_at`` once reverted.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.config import ExecutionSettings
from src.db.models import Command, CommandHistory, CommandStatus, dump_json, utc_now_iso
from src.errors import (
    ConfigurationError,
    DomainError,
    NotFoundError,
    UndoNotAvailableError,
    ValidationError,
)
from src.orchestrator.execution.engine import ExecutionReport, PlatformDirectory
from src.orchestrator.execution.models import ExecutionResult, fold_status
from src.orchestrator.execution.rate_limit import RateLimitedBatcher
from src.services.catalog import get_catalog
from src.services.catalog.base import CatalogClient
from src.services.platform_adapter import PlatformAdapter
from src.services.platform_service import PlatformConnection

logger = logging.getLogger(__name__)

_UNDOABLE_STATUSES = {
    CommandStatus.completed.value,
    CommandStatus.partially_completed.value,
}


async def revert_entry(catalog: CatalogClient, entry: dict[str, Any]) -> None:
    """Restore one snapshot entry to its recorded before state.

    Raises:
        ValidationError: For entries of an unknown kind.
        PlatformAPIError: If the platform rejects the revert.
    """
    kind = entry.get("kind")
    product_id = str(entry.get("product_id", ""))
    if kind == "price":
        await catalog.update_variant_price(product_id, entry["variant_id"], entry["price"])
    elif kind == "inventory":
        variant = {
            "id": entry["variant_id"],
            "inventory_item_id": entry.get("inventory_item_id"),
        }
        await catalog.set_inventory(
            product_id, variant, entry.get("location_id"), entry["available"]
        )
    elif kind == "fields":
        await catalog.update_product(product_id, entry["fields"])
    elif kind == "seo":
        seo = entry.get("seo") or {}
        await catalog.set_seo(product_id, seo.get("title"), seo.get("description"))
    elif kind == "discount":
        await catalog.delete_discount(str(entry["discount_id"]))
    else:
        raise ValidationError(f"Cannot revert change of kind {kind!r}")


class UndoService:
    """Reverts executed commands.

    Args:
        db: SQLAlchemy session.
        adapter: Platform HTTP access.
        platform_directory: User-scoped platform resolution.
        settings: Batch size and delay for revert writes.
    """

    def __init__(
        self,
        db: Session,
        adapter: PlatformAdapter,
        platform_directory: PlatformDirectory,
        settings: ExecutionSettings | None = None,
    ) -> None:
        self.db = db
        self._adapter = adapter
        self._directory = platform_directory
        self._settings = settings or ExecutionSettings()

    def undoable_history(self, command: Command) -> list[CommandHistory]:
        stmt = (
            select(CommandHistory)
            .where(
                CommandHistory.command_id == command.id,
                CommandHistory.can_undo.is_(True),
                CommandHistory.undone_at.is_(None),
            )
            .order_by(CommandHistory.step_number.desc())
        )
        return list(self.db.scalars(stmt))

    async def undo(self, user_id: str, command_id: str) -> tuple[Command, ExecutionReport]:
        """Revert every undoable change of a command.

        Steps are reverted in reverse order.

        Returns:
            The new undo command and its execution report.

        Raises:
            NotFoundError: Unknown command for this user.
            UndoNotAvailableError: The command has nothing left to revert.
        """
        original = self.db.scalar(
            select(Command).where(Command.id == command_id, Command.user_id == user_id)
        )
        if original is None:
            raise NotFoundError("Command", command_id)
        if original.status not in _UNDOABLE_STATUSES or original.preview_mode:
            raise UndoNotAvailableError(
                f"Command {command_id} is {original.status} and has no executed changes"
            )
        rows = self.undoable_history(original)
        if not rows:
            raise UndoNotAvailableError(f"Command {command_id} has nothing left to undo")

        undo_command = Command(
            user_id=user_id,
            text=f"Undo: {original.text}",
            status=CommandStatus.executing.value,
            platform_targets_json=original.platform_targets_json,
            context_json=dump_json({}),
            undo_of_command_id=original.id,
            risk_level="LOW",
            confidence=1.0,
        )
        self.db.add(undo_command)
        self.db.commit()

        resolved = self._directory.resolve_connections(
            user_id, sorted({row.platform_id for row in rows})
        )
        connections = {c.id: c for c in resolved.connections}
        unusable = {p.id: p.error for p in resolved.unusable}
        batcher = RateLimitedBatcher(
            self._settings.batch_size, self._settings.batch_delay_seconds
        )

        results = []
        for row in rows:
            results.append(
                await self._revert_row(
                    row,
                    connections.get(row.platform_id),
                    batcher,
                    undo_command,
                    unusable.get(row.platform_id),
                )
            )

        status = fold_status(results)
        undo_command.status = status.value
        undo_command.executed_at = utc_now_iso()
        undo_command.execution_results_json = dump_json([r.to_dict() for r in results])
        self.db.commit()
        logger.info("Undo of command %s finished %s", command_id, status.value)
        return undo_command, ExecutionReport(results=results, status=status)

    async def _revert_row(
        self,
        row: CommandHistory,
        connection: PlatformConnection | None,
        batcher: RateLimitedBatcher,
        undo_command: Command,
        connection_error: ConfigurationError | None = None,
    ) -> ExecutionResult:
        result = ExecutionResult(
            platform_id=row.platform_id,
            platform=connection.display_name if connection else row.platform_id,
            platform_type=connection.platform_type if connection else "",
            action_type=row.action_type,
            step_number=row.step_number,
            success=False,
        )
        if connection_error is not None:
            result.error = connection_error.message
            result.error_code = connection_error.error_code
            return result
        if connection is None:
            result.error = "Platform is no longer connected"
            result.error_code = "E-5001"
            return result

        try:
            catalog = get_catalog(connection, self._adapter)
        except DomainError as e:
            result.error = e.message
            result.error_code = e.error_code
            return result

        entries = row.before_state or []

        async def revert(entry: dict[str, Any]) -> None:
            await revert_entry(catalog, entry)

        outcomes = await batcher.run(entries, revert)
        failures = [(entry, error) for entry, _, error in outcomes if error is not None]
        result.result = {"reverted": len(entries) - len(failures), "failed": len(failures)}
        if failures:
            result.error = "; ".join(str(error) for _, error in failures[:5])
            result.error_code = getattr(failures[0][1], "error_code", None) or "E-4002"
            return result

        result.success = True
        row.undone_at = utc_now_iso()
        row.undo_command_id = undo_command.id
        return result
