"""Tests for UndoService reverting recorded change snapshots."""

import pytest
from sqlalchemy import select

from src.config import ExecutionSettings
from src.db.models import CommandHistory, CommandStatus
from src.errors import NotFoundError, PlatformAPIError, UndoNotAvailableError, ValidationError
from src.orchestrator.execution.engine import ExecutionEngine
from src.orchestrator.models.action import parse_actions
from src.orchestrator.nl_engine.interpreter import CommandInterpreter
from src.services.command_service import CommandService
from src.services.undo_service import UndoService, revert_entry
from tests.helpers import (
    FakeCatalog,
    FakeDirectory,
    FakeLLMClient,
    make_connection,
    make_product,
    make_unusable,
)

PLAN = [
    {
        "type": "update_price",
        "parameters": {"product_ids": ["1", "2"], "direction": "increase", "value": 10},
    },
    {
        "type": "update_inventory",
        "step_number": 2,
        "parameters": {"product_ids": ["1"], "mode": "set", "available": 40},
    },
]


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def catalog(monkeypatch) -> FakeCatalog:
    fake = FakeCatalog([
        make_product("1", "Mug", price=10.0, quantity=5),
        make_product("2", "Hat", price=20.0, quantity=8),
    ])

    def get_catalog(connection, adapter):
        return fake

    monkeypatch.setattr("src.orchestrator.execution.engine.get_catalog", get_catalog)
    monkeypatch.setattr("src.services.undo_service.get_catalog", get_catalog)
    return fake


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory(make_connection())


async def _executed_command(db, directory, preview_mode=False):
    engine = ExecutionEngine(
        None, directory, ExecutionSettings(batch_delay_seconds=0), sleep=_no_sleep
    )
    service = CommandService(db, CommandInterpreter(FakeLLMClient()), engine)
    command, _ = await service.execute(
        "user-1", actions=parse_actions(PLAN), confirmed=True, preview_mode=preview_mode
    )
    return command


def _undo_service(db, directory) -> UndoService:
    return UndoService(db, None, directory, ExecutionSettings(batch_delay_seconds=0))


class TestUndo:
    """Tests for UndoService.undo()."""

    @pytest.mark.asyncio
    async def test_restores_before_state(self, db_session, catalog, directory):
        original = await _executed_command(db_session, directory)
        assert catalog.products["1"]["variants"][0]["price"] == 11.0

        undo_command, report = await _undo_service(db_session, directory).undo(
            "user-1", original.id
        )

        assert report.status == CommandStatus.completed
        assert undo_command.undo_of_command_id == original.id
        assert undo_command.text.startswith("Undo: ")
        assert catalog.products["1"]["variants"][0]["price"] == 10.0
        assert catalog.products["2"]["variants"][0]["price"] == 20.0
        assert catalog.products["1"]["variants"][0]["inventory_quantity"] == 5
        # Later steps are reverted first
        assert [r.step_number for r in report.results] == [2, 1]
        rows = db_session.scalars(select(CommandHistory)).all()
        assert all(row.undone_at and row.undo_command_id == undo_command.id for row in rows)
        db_session.refresh(original)
        assert original.status == CommandStatus.completed.value

    @pytest.mark.asyncio
    async def test_second_undo_has_nothing_left(self, db_session, catalog, directory):
        original = await _executed_command(db_session, directory)
        service = _undo_service(db_session, directory)
        await service.undo("user-1", original.id)

        with pytest.raises(UndoNotAvailableError, match="nothing left"):
            await service.undo("user-1", original.id)

    @pytest.mark.asyncio
    async def test_preview_commands_cannot_be_undone(self, db_session, catalog, directory):
        original = await _executed_command(db_session, directory, preview_mode=True)
        with pytest.raises(UndoNotAvailableError) as exc_info:
            await _undo_service(db_session, directory).undo("user-1", original.id)
        assert exc_info.value.error_code == "E-2006"

    @pytest.mark.asyncio
    async def test_other_users_command(self, db_session, catalog, directory):
        original = await _executed_command(db_session, directory)
        with pytest.raises(NotFoundError):
            await _undo_service(db_session, directory).undo("user-2", original.id)

    @pytest.mark.asyncio
    async def test_failed_revert_stays_undoable(self, db_session, catalog, directory):
        original = await _executed_command(db_session, directory)
        catalog.fail_products = {"2": PlatformAPIError("Shopify", 500, "boom")}

        _, report = await _undo_service(db_session, directory).undo("user-1", original.id)

        assert report.status == CommandStatus.partially_completed
        price_result = next(r for r in report.results if r.action_type == "update_price")
        assert price_result.result == {"reverted": 1, "failed": 1}
        assert remaining_rows(db_session) == ["update_price"]

    @pytest.mark.asyncio
    async def test_disconnected_platform(self, db_session, catalog, directory):
        original = await _executed_command(db_session, directory)

        _, report = await _undo_service(db_session, FakeDirectory()).undo("user-1", original.id)

        assert report.status == CommandStatus.failed
        assert all(r.error_code == "E-5001" for r in report.results)

    @pytest.mark.asyncio
    async def test_undecryptable_platform_fails_and_stays_undoable(
        self, db_session, catalog, directory
    ):
        original = await _executed_command(db_session, directory)
        locked = FakeDirectory(unusable=(make_unusable("p1"),))

        undo_command, report = await _undo_service(db_session, locked).undo(
            "user-1", original.id
        )

        assert report.status == CommandStatus.failed
        assert undo_command.status == CommandStatus.failed.value
        assert all(r.error_code == "E-4001" for r in report.results)
        assert sorted(remaining_rows(db_session)) == ["update_inventory", "update_price"]


def remaining_rows(db) -> list[str]:
    rows = db.scalars(select(CommandHistory).where(CommandHistory.undone_at.is_(None)))
    return [row.action_type for row in rows]


class TestRevertEntry:
    """Tests for revert_entry() dispatch."""

    @pytest.mark.asyncio
    async def test_discount_is_deleted(self):
        catalog = FakeCatalog([])
        catalog.discounts["d1"] = {"title": "Spring", "product_ids": []}
        await revert_entry(catalog, {"kind": "discount", "discount_id": "d1"})
        assert catalog.discounts == {}

    @pytest.mark.asyncio
    async def test_seo_is_restored(self):
        catalog = FakeCatalog([make_product("1", "Mug")])
        await revert_entry(catalog, {
            "kind": "seo", "product_id": "1", "seo": {"title": "Old", "description": None},
        })
        assert catalog.seo["1"]["title"] == "Old"

    @pytest.mark.asyncio
    async def test_unknown_kind(self):
        with pytest.raises(ValidationError, match="Cannot revert"):
            await revert_entry(FakeCatalog([]), {"kind": "teleport"})
