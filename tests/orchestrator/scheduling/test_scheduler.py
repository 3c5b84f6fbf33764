"""Tests for IntelligentScheduler analyze and execute_pending modes."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from src.config import SchedulerSettings
from src.db.models import Automation, AutomationRun, CommandStatus, dump_json
from src.errors import NoConnectedPlatformError
from src.orchestrator.execution.engine import ExecutionReport
from src.orchestrator.execution.models import ExecutionResult
from src.orchestrator.scheduling.recommender import ScheduleRecommender
from src.orchestrator.scheduling.scheduler import IntelligentScheduler
from src.orchestrator.scheduling.schedule_math import parse_iso
from tests.helpers import FakeLLMClient

NOW = datetime(2026, 3, 10, 9, 2, tzinfo=UTC)

PLAN = [{
    "type": "update_inventory",
    "parameters": {"available": 25, "mode": "set", "product_title": "Mug"},
}]


def _add_automation(db, name="Restock", user_id="user-1", enabled=True, **fields) -> Automation:
    automation = Automation(
        user_id=user_id,
        name=name,
        enabled=enabled,
        actions_json=dump_json(PLAN),
        platform_targets_json=dump_json(["shopify"]),
        schedule_config_json=dump_json({"frequency": "daily", "time_of_day": "09:00"}),
        **fields,
    )
    db.add(automation)
    db.commit()
    return automation


def _report(*successes: bool) -> ExecutionReport:
    results = [
        ExecutionResult(
            platform_id=f"p{i}", platform=f"Shop {i}", platform_type="shopify",
            action_type="update_inventory", step_number=1, success=ok,
            result={"items_succeeded": 3 if ok else 0, "items_failed": 0 if ok else 1},
            error=None if ok else "1 of 1 items failed",
        )
        for i, ok in enumerate(successes)
    ]
    if all(successes):
        status = CommandStatus.completed
    elif any(successes):
        status = CommandStatus.partially_completed
    else:
        status = CommandStatus.failed
    return ExecutionReport(results=results, status=status)


def _command_service(report: ExecutionReport | None = None, error: Exception | None = None):
    service = MagicMock()
    if error is not None:
        service.execute = AsyncMock(side_effect=error)
    else:
        service.execute = AsyncMock(return_value=(MagicMock(id="cmd-1"), report))
    return service


def _scheduler(db, command_service=None, recommender=None) -> IntelligentScheduler:
    return IntelligentScheduler(
        db,
        recommender or ScheduleRecommender(),
        command_service or _command_service(_report(True)),
        SchedulerSettings(),
    )


class TestAnalyze:
    """Tests for analyze mode."""

    @pytest.mark.asyncio
    async def test_high_confidence_recommendation_is_applied(self, db_session):
        automation = _add_automation(db_session)
        llm = FakeLLMClient({
            "recommended_schedule": {"frequency": "daily", "time_of_day": "14:00"},
            "reasoning": "Afternoon runs succeed more often",
            "confidence": 0.9,
            "estimated_improvement": 15,
        })
        scheduler = _scheduler(db_session, recommender=ScheduleRecommender(llm))

        result = await scheduler.analyze("user-1", now=NOW)

        entry = result["schedule"][0]
        assert entry["applied"] is True
        assert entry["current_schedule"] == {"frequency": "daily", "time_of_day": "09:00"}
        assert result["summary"] == {
            "total_automations": 1,
            "applied_recommendations": 1,
            "high_confidence_recommendations": 1,
            "potential_improvements": 1,
        }
        db_session.refresh(automation)
        assert automation.ai_recommended_schedule["time_of_day"] == "14:00"
        assert automation.ai_schedule_confidence == 0.9
        assert parse_iso(automation.next_ai_scheduled_run) == datetime(2026, 3, 10, 14, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_low_confidence_recommendation_is_only_shown(self, db_session):
        automation = _add_automation(db_session)

        result = await _scheduler(db_session).analyze("user-1", now=NOW)

        entry = result["schedule"][0]
        assert entry["applied"] is False
        assert entry["source"] == "default"
        db_session.refresh(automation)
        assert automation.ai_recommended_schedule_json is None
        # The user's own schedule still gets a next run
        assert parse_iso(automation.next_ai_scheduled_run) == datetime(2026, 3, 11, 9, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_only_enabled_automations_of_the_user(self, db_session):
        _add_automation(db_session, name="Mine")
        _add_automation(db_session, name="Paused", enabled=False)
        _add_automation(db_session, name="Theirs", user_id="user-2")

        result = await _scheduler(db_session).analyze("user-1", now=NOW)

        assert [s["automation_name"] for s in result["schedule"]] == ["Mine"]
        assert result["generated_at"] == NOW.isoformat()


class TestExecutePending:
    """Tests for execute_pending mode."""

    @pytest.mark.asyncio
    async def test_nothing_due(self, db_session):
        _add_automation(db_session, next_ai_scheduled_run=(NOW + timedelta(minutes=10)).isoformat())

        result = await _scheduler(db_session).execute_pending("user-1", now=NOW)

        assert result == {
            "executed": 0, "failed": 0, "results": [],
            "message": "No automations scheduled for this time",
        }

    @pytest.mark.asyncio
    async def test_due_automation_runs_and_is_rescheduled(self, db_session):
        scheduled = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
        automation = _add_automation(db_session, next_ai_scheduled_run=scheduled.isoformat())
        service = _command_service(_report(True, True))

        result = await _scheduler(db_session, command_service=service).execute_pending(
            "user-1", now=NOW
        )

        assert result["executed"] == 1
        entry = result["results"][0]
        assert entry["success"] is True
        assert entry["command_id"] == "cmd-1"
        assert entry["next_run_at"] == datetime(2026, 3, 11, 9, 0, tzinfo=UTC).isoformat()

        kwargs = service.execute.await_args.kwargs
        assert kwargs["confirmed"] is True
        assert kwargs["preview_mode"] is False
        assert kwargs["text"] == "Automation: Restock"
        assert kwargs["platform_targets"] == ["shopify"]
        assert kwargs["actions"][0].type == "update_inventory"

        run = db_session.scalars(select(AutomationRun)).one()
        assert run.status == "completed"
        assert run.success_rate == 1.0
        assert run.items_affected == 6
        assert run.command_id == "cmd-1"

        db_session.refresh(automation)
        assert automation.trigger_count == 1
        assert automation.last_executed_at == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_partial_run_is_recorded_as_partial(self, db_session):
        _add_automation(db_session, next_ai_scheduled_run=NOW.isoformat())
        service = _command_service(_report(True, False))

        result = await _scheduler(db_session, command_service=service).execute_pending(
            "user-1", now=NOW
        )

        assert result["failed"] == 1
        assert result["results"][0]["error"] == "E-4002: 1 of 1 items failed"
        run = db_session.scalars(select(AutomationRun)).one()
        assert run.status == "partially_completed"
        assert run.success_rate == 0.5

    @pytest.mark.asyncio
    async def test_failed_run_still_reschedules(self, db_session):
        automation = _add_automation(db_session, next_ai_scheduled_run=NOW.isoformat())
        service = _command_service(error=NoConnectedPlatformError(["shopify"]))

        result = await _scheduler(db_session, command_service=service).execute_pending(
            "user-1", now=NOW
        )

        entry = result["results"][0]
        assert entry["success"] is False
        assert "No connected platform" in entry["error"]
        run = db_session.scalars(select(AutomationRun)).one()
        assert run.status == "failed"
        assert run.success_rate == 0.0
        db_session.refresh(automation)
        assert parse_iso(automation.next_ai_scheduled_run) > NOW

    @pytest.mark.asyncio
    async def test_unexpected_error_still_records_and_reschedules(self, db_session):
        automation = _add_automation(db_session, next_ai_scheduled_run=NOW.isoformat())
        service = _command_service(error=RuntimeError("database is locked"))

        result = await _scheduler(db_session, command_service=service).execute_pending(
            "user-1", now=NOW
        )

        assert result["failed"] == 1
        assert "database is locked" in result["results"][0]["error"]
        run = db_session.scalars(select(AutomationRun)).one()
        assert run.status == "failed"
        db_session.refresh(automation)
        assert parse_iso(automation.next_ai_scheduled_run) > NOW
        assert automation.trigger_count == 1

    @pytest.mark.asyncio
    async def test_invalid_stored_plan_fails_the_run(self, db_session):
        automation = _add_automation(db_session, next_ai_scheduled_run=NOW.isoformat())
        automation.actions_json = dump_json([{"type": "teleport_products"}])
        db_session.commit()
        service = _command_service(_report(True))

        result = await _scheduler(db_session, command_service=service).execute_pending(
            "user-1", now=NOW
        )

        assert result["results"][0]["error"].startswith("Invalid automation plan")
        service.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_second_poll_in_same_window_does_not_rerun(self, db_session):
        _add_automation(db_session, next_ai_scheduled_run=NOW.isoformat())
        service = _command_service(_report(True))
        scheduler = _scheduler(db_session, command_service=service)

        await scheduler.execute_pending("user-1", now=NOW)
        second = await scheduler.execute_pending("user-1", now=NOW + timedelta(minutes=3))

        assert second["executed"] == 0
        assert service.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_recommended_schedule_wins_when_rescheduling(self, db_session):
        automation = _add_automation(
            db_session,
            next_ai_scheduled_run=NOW.isoformat(),
            ai_recommended_schedule_json=dump_json({"frequency": "hourly", "time_of_day": "00:15"}),
        )

        await _scheduler(db_session).execute_pending("user-1", now=NOW)

        db_session.refresh(automation)
        assert parse_iso(automation.next_ai_scheduled_run) == datetime(2026, 3, 10, 9, 15, tzinfo=UTC)
