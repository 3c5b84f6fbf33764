"""Schedule recommendations for automations.

ScheduleRecommender asks the LLM when one is configured, and otherwise
derives a schedule from the automation's run history. Without history it
returns a fixed daily schedule at low confidence, which the scheduler
shows but never applies.
"""

import json
import logging
from collections import defaultdict
from datetime import datetime
from statistics import median
from typing import Any

import anthropic
from pydantic import ValidationError as PydanticValidationError

from src.config import SchedulerSettings
from src.db.models import Automation, AutomationRun
from src.errors import DomainError
from src.orchestrator.nl_engine.llm_client import LLMClient
from src.orchestrator.nl_engine.response_parser import extract_json_object
from src.orchestrator.scheduling.models import ScheduleConfig, ScheduleRecommendation
from src.orchestrator.scheduling.schedule_math import compute_next_run, ensure_utc, parse_iso

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5
MAX_HEURISTIC_CONFIDENCE = 0.85
_WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

SCHEDULE_SYSTEM_PROMPT = """You are a scheduling expert optimizing e-commerce automation timing.

Analyze the automation's performance history and recommend the optimal schedule.

Automation:
- Name: {name}
- Trigger type: {trigger_type}
- Current schedule: {current_schedule}
- Description: {description}

Performance history (last {run_count} runs):
{history}

Respond with JSON only:
{{
  "recommended_schedule": {{
    "frequency": "daily" | "weekly" | "hourly" | "every_X_hours",
    "hours": number (only for every_X_hours),
    "time_of_day": "HH:MM" (24-hour),
    "days_of_week": [0-6] (0=Sunday, optional),
    "timezone": "UTC"
  }},
  "reasoning": "why this schedule is optimal",
  "confidence": 0.0-1.0,
  "estimated_improvement": percentage or null,
  "patterns_detected": ["pattern description"]
}}"""


def _run_summary(run: AutomationRun) -> dict[str, Any]:
    executed = parse_iso(run.executed_at)
    return {
        "executed_at": run.executed_at,
        "status": run.status,
        "success_rate": run.success_rate,
        "execution_time_ms": run.execution_time_ms,
        "items_affected": run.items_affected,
        "day_of_week": _WEEKDAY_NAMES[(executed.weekday() + 1) % 7] if executed else None,
        "hour_of_day": executed.hour if executed else None,
    }


class ScheduleRecommender:
    """Produces ScheduleRecommendation values.

    Args:
        llm_client: Optional completion client; None uses heuristics only.
        settings: Scheduler settings (default time of day).
    """

    def __init__(
        self,
        llm_client: LLMClient | None = None,
        settings: SchedulerSettings | None = None,
    ) -> None:
        self._llm = llm_client
        self._settings = settings or SchedulerSettings()

    def _llm_available(self) -> bool:
        if self._llm is None:
            return False
        return bool(getattr(self._llm, "is_configured", True))

    async def recommend(
        self,
        automation: Automation,
        history: list[AutomationRun],
        now: datetime,
    ) -> ScheduleRecommendation:
        """Recommend a schedule for one automation.

        Args:
            automation: The automation being analyzed.
            history: Its recent runs, newest first.
            now: Reference time for next_run_at.
        """
        now = ensure_utc(now)
        if self._llm_available():
            try:
                return await self._recommend_with_llm(automation, history, now)
            except (
                anthropic.APIError, DomainError, PydanticValidationError, ValueError
            ) as e:
                logger.warning(
                    "LLM schedule recommendation failed for automation %s: %s",
                    automation.id, e,
                )
        if history:
            return self.recommend_from_history(history, now)
        return self.default_recommendation(now)

    async def _recommend_with_llm(
        self,
        automation: Automation,
        history: list[AutomationRun],
        now: datetime,
    ) -> ScheduleRecommendation:
        system = SCHEDULE_SYSTEM_PROMPT.format(
            name=automation.name,
            trigger_type=automation.trigger_type,
            current_schedule=json.dumps(automation.schedule_config or "Not scheduled"),
            description=automation.description or "N/A",
            run_count=len(history),
            history=json.dumps([_run_summary(r) for r in history], indent=2),
        )
        reply = await self._llm.complete(  # type: ignore[union-attr]
            system,
            [{"role": "user", "content": "Analyze this automation and recommend the optimal schedule."}],
        )
        raw = extract_json_object(reply)
        raw.pop("next_run_at", None)
        recommendation = ScheduleRecommendation.model_validate({**raw, "source": "llm"})
        recommendation.next_run_at = compute_next_run(
            recommendation.recommended_schedule, now
        )
        return recommendation

    def recommend_from_history(
        self, history: list[AutomationRun], now: datetime
    ) -> ScheduleRecommendation:
        """Pick the hour with the best average success rate and the observed cadence."""
        times = sorted(t for t in (parse_iso(r.executed_at) for r in history) if t)
        if not times:
            return self.default_recommendation(now)

        by_hour: dict[int, list[float]] = defaultdict(list)
        by_weekday: dict[int, list[float]] = defaultdict(list)
        for run in history:
            executed = parse_iso(run.executed_at)
            if executed is None:
                continue
            rate = run.success_rate if run.success_rate is not None else 0.0
            by_hour[executed.hour].append(rate)
            by_weekday[(executed.weekday() + 1) % 7].append(rate)

        best_hour = max(by_hour, key=lambda h: (sum(by_hour[h]) / len(by_hour[h]), len(by_hour[h])))
        best_rate = sum(by_hour[best_hour]) / len(by_hour[best_hour])
        time_of_day = f"{best_hour:02d}:00"

        intervals = [
            (later - earlier).total_seconds() / 3600
            for earlier, later in zip(times, times[1:])
            if later > earlier
        ]
        typical_hours = median(intervals) if intervals else 24.0

        patterns = [f"Best success rate ({best_rate:.0%}) at {time_of_day} UTC"]
        if typical_hours < 2:
            config = ScheduleConfig(frequency="hourly", time_of_day=time_of_day)
            patterns.append("Runs roughly every hour")
        elif typical_hours < 20:
            hours = max(1, round(typical_hours))
            config = ScheduleConfig(frequency="every_X_hours", hours=hours, time_of_day=time_of_day)
            patterns.append(f"Runs roughly every {hours} hours")
        elif typical_hours < 96:
            config = ScheduleConfig(frequency="daily", time_of_day=time_of_day)
            patterns.append("Runs roughly daily")
        else:
            best_day = max(by_weekday, key=lambda d: sum(by_weekday[d]) / len(by_weekday[d]))
            config = ScheduleConfig(
                frequency="weekly", time_of_day=time_of_day, days_of_week=[best_day]
            )
            patterns.append(f"Runs roughly weekly, best on {_WEEKDAY_NAMES[best_day]}")

        confidence = min(DEFAULT_CONFIDENCE + 0.05 * len(times), MAX_HEURISTIC_CONFIDENCE)
        return ScheduleRecommendation(
            recommended_schedule=config,
            reasoning=(
                f"Based on {len(times)} past runs: highest success rate at "
                f"{time_of_day} UTC, typical interval {typical_hours:.1f}h"
            ),
            confidence=round(confidence, 2),
            next_run_at=compute_next_run(config, now),
            patterns_detected=patterns,
            source="heuristic",
        )

    def default_recommendation(self, now: datetime) -> ScheduleRecommendation:
        """Daily at the configured default time, at low confidence."""
        config = ScheduleConfig(
            frequency="daily", time_of_day=self._settings.default_time_of_day
        )
        return ScheduleRecommendation(
            recommended_schedule=config,
            reasoning=(
                f"Default daily schedule at {config.time_of_day} UTC (business hours)"
            ),
            confidence=DEFAULT_CONFIDENCE,
            next_run_at=compute_next_run(config, now),
            patterns_detected=["No sufficient performance data for pattern detection"],
            source="default",
        )

