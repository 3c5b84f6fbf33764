"""Intelligent scheduler for automations.

Two modes, both scoped to one user:

- ``analyze``: recommend a schedule per enabled automation. Only
  recommendations above the auto-apply confidence are persisted; the
  rest are returned for display.
- ``execute_pending``: run automations whose next run falls inside the
  +/- window around now, record an AutomationRun for each, and always
  move ``next_ai_scheduled_run`` into the future, even after a failure.

The scheduler is meant to be polled (cron or the /scheduler endpoint);
concurrent calls for different users share no state.
"""

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.config import SchedulerSettings
from src.db.models import (
    Automation,
    AutomationRun,
    AutomationRunStatus,
    CommandStatus,
    dump_json,
)
from src.errors import DomainError, StoreCommandError, format_error_summary
from src.orchestrator.models.action import parse_actions
from src.orchestrator.scheduling.recommender import ScheduleRecommender
from src.orchestrator.scheduling.schedule_math import compute_next_run, ensure_utc, parse_iso
from src.services.command_service import CommandService

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.8
MEANINGFUL_IMPROVEMENT = 10


class IntelligentScheduler:
    """Analyzes and runs a user's scheduled automations.

    Args:
        db: SQLAlchemy session.
        recommender: Schedule recommendation source.
        command_service: Runs automation plans as commands.
        settings: Window size, auto-apply confidence, history limit.
    """

    def __init__(
        self,
        db: Session,
        recommender: ScheduleRecommender,
        command_service: CommandService,
        settings: SchedulerSettings | None = None,
    ) -> None:
        self.db = db
        self._recommender = recommender
        self._commands = command_service
        self._settings = settings or SchedulerSettings()

    def _enabled_automations(self, user_id: str) -> list[Automation]:
        stmt = (
            select(Automation)
            .where(Automation.user_id == user_id, Automation.enabled.is_(True))
            .order_by(Automation.created_at)
        )
        return list(self.db.scalars(stmt))

    def _recent_runs(self, user_id: str) -> list[AutomationRun]:
        stmt = (
            select(AutomationRun)
            .where(AutomationRun.user_id == user_id)
            .order_by(AutomationRun.executed_at.desc())
            .limit(self._settings.history_limit)
        )
        return list(self.db.scalars(stmt))

    async def analyze(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Recommend schedules for every enabled automation of a user.

        Returns:
            {"schedule": [...], "summary": {...}, "generated_at": iso}
        """
        now = ensure_utc(now or datetime.now(UTC))
        automations = self._enabled_automations(user_id)
        runs = self._recent_runs(user_id)

        schedule = []
        for automation in automations:
            history = [r for r in runs if r.automation_id == automation.id]
            recommendation = await self._recommender.recommend(automation, history, now)
            applied = recommendation.confidence > self._settings.auto_apply_confidence
            next_run_at = recommendation.next_run_at

            if applied:
                automation.ai_recommended_schedule_json = dump_json(
                    recommendation.recommended_schedule.model_dump(mode="json")
                )
                automation.ai_schedule_confidence = recommendation.confidence
                automation.next_ai_scheduled_run = next_run_at.isoformat() if next_run_at else None
            elif automation.schedule_config and not automation.next_ai_scheduled_run:
                automation.next_ai_scheduled_run = compute_next_run(
                    automation.schedule_config, now
                ).isoformat()

            schedule.append({
                "automation_id": automation.id,
                "automation_name": automation.name,
                "current_schedule": automation.schedule_config,
                "recommended_schedule": recommendation.recommended_schedule.model_dump(mode="json"),
                "reasoning": recommendation.reasoning,
                "confidence": recommendation.confidence,
                "estimated_improvement": recommendation.estimated_improvement,
                "patterns_detected": recommendation.patterns_detected,
                "source": recommendation.source,
                "next_run_at": next_run_at.isoformat() if next_run_at else None,
                "applied": applied,
            })
        self.db.commit()

        logger.info("Analyzed %d automations for user %s", len(automations), user_id)
        return {
            "schedule": schedule,
            "summary": {
                "total_automations": len(automations),
                "applied_recommendations": sum(1 for s in schedule if s["applied"]),
                "high_confidence_recommendations": sum(
                    1 for s in schedule if s["confidence"] > HIGH_CONFIDENCE
                ),
                "potential_improvements": sum(
                    1
                    for s in schedule
                    if s["estimated_improvement"]
                    and s["estimated_improvement"] > MEANINGFUL_IMPROVEMENT
                ),
            },
            "generated_at": now.isoformat(),
        }

    def due_automations(self, user_id: str, now: datetime) -> list[tuple[Automation, datetime]]:
        """Enabled automations whose next run is within the window around now."""
        window = timedelta(minutes=self._settings.window_minutes)
        due = []
        for automation in self._enabled_automations(user_id):
            scheduled = parse_iso(automation.next_ai_scheduled_run)
            if scheduled is not None and now - window <= scheduled <= now + window:
                due.append((automation, scheduled))
        return due

    async def execute_pending(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Run every due automation of a user and reschedule it.

        Returns:
            {"executed", "failed", "results": [...]}
        """
        now = ensure_utc(now or datetime.now(UTC))
        due = self.due_automations(user_id, now)
        if not due:
            return {
                "executed": 0,
                "failed": 0,
                "results": [],
                "message": "No automations scheduled for this time",
            }

        results = [
            await self._run_automation(automation, scheduled, now)
            for automation, scheduled in due
        ]
        return {
            "executed": sum(1 for r in results if r["success"]),
            "failed": sum(1 for r in results if not r["success"]),
            "results": results,
        }

    async def _run_automation(
        self, automation: Automation, scheduled: datetime, now: datetime
    ) -> dict[str, Any]:
        logger.info("Executing automation %s (%s)", automation.id, automation.name)
        started = time.perf_counter()
        entry: dict[str, Any] = {
            "automation_id": automation.id,
            "automation_name": automation.name,
            "executed_at": now.isoformat(),
        }
        run = AutomationRun(
            automation_id=automation.id,
            user_id=automation.user_id,
            executed_at=now.isoformat(),
        )

        try:
            actions = parse_actions(automation.actions)
            command, report = await self._commands.execute(
                automation.user_id,
                actions=actions,
                platform_targets=automation.platform_targets,
                confirmed=True,
                preview_mode=False,
                text=f"Automation: {automation.name}",
            )
        except (DomainError, PydanticValidationError) as e:
            message = e.message if isinstance(e, DomainError) else f"Invalid automation plan: {e}"
            logger.warning("Automation %s failed: %s", automation.id, message)
            _mark_failed(run, entry, message)
        except Exception as e:
            logger.exception("Unexpected error running automation %s", automation.id)
            self.db.rollback()
            _mark_failed(run, entry, StoreCommandError.from_exception(e).message)
        else:
            summary = report.summary
            run.command_id = command.id
            run.status = AutomationRunStatus(report.status.value).value
            run.success_rate = summary["succeeded"] / summary["total"] if summary["total"] else 0.0
            run.items_affected = sum(
                r.result.get("items_succeeded", 0) for r in report.results if r.result
            )
            entry.update({
                "success": report.status == CommandStatus.completed,
                "status": report.status.value,
                "command_id": command.id,
                "summary": summary,
            })
            if report.status != CommandStatus.completed:
                entry["error"] = format_error_summary(
                    [
                        StoreCommandError(
                            code=r.error_code or "E-4002",
                            message=r.error or "Skipped",
                            remediation="",
                        )
                        for r in report.results
                        if not r.success
                    ],
                    include_remediation=False,
                )

        run.execution_time_ms = int((time.perf_counter() - started) * 1000)
        self.db.add(run)

        schedule = automation.ai_recommended_schedule or automation.schedule_config
        # Reference past the window so a run cannot be picked up twice
        reference = max(now, scheduled) + timedelta(minutes=self._settings.window_minutes)
        next_run = compute_next_run(schedule, reference)
        automation.next_ai_scheduled_run = next_run.isoformat()
        automation.last_executed_at = now.isoformat()
        automation.trigger_count = (automation.trigger_count or 0) + 1
        self.db.commit()

        entry["next_run_at"] = next_run.isoformat()
        return entry


def _mark_failed(run: AutomationRun, entry: dict[str, Any], message: str) -> None:
    run.status = AutomationRunStatus.failed.value
    run.success_rate = 0.0
    run.items_affected = 0
    entry.update({"success": False, "error": message})
