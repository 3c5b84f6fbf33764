"""Tests for ScheduleRecommender."""

from datetime import UTC, datetime, timedelta

import pytest

from src.config import SchedulerSettings
from src.db.models import Automation, AutomationRun, dump_json
from src.orchestrator.scheduling.recommender import (
    DEFAULT_CONFIDENCE,
    MAX_HEURISTIC_CONFIDENCE,
    ScheduleRecommender,
)
from tests.helpers import FakeLLMClient

NOW = datetime(2026, 3, 10, 8, 0, tzinfo=UTC)


def _automation() -> Automation:
    return Automation(
        id="auto-1",
        user_id="user-1",
        name="Restock bestsellers",
        trigger_type="schedule",
        schedule_config_json=dump_json({"frequency": "daily", "time_of_day": "06:00"}),
    )


def _runs(start: datetime, step: timedelta, count: int, success_rate: float = 1.0) -> list[AutomationRun]:
    return [
        AutomationRun(
            automation_id="auto-1",
            user_id="user-1",
            executed_at=(start + i * step).isoformat(),
            status="completed",
            success_rate=success_rate,
            execution_time_ms=1200,
            items_affected=4,
        )
        for i in range(count)
    ]


LLM_REPLY = {
    "recommended_schedule": {"frequency": "weekly", "time_of_day": "07:30", "days_of_week": [1]},
    "reasoning": "Monday mornings precede the weekly sales peak",
    "confidence": 0.9,
    "estimated_improvement": 15,
    "patterns_detected": ["Higher success early in the week"],
    "next_run_at": "1999-01-01T00:00:00Z",
}


class TestLLMRecommendations:
    """Tests for the LLM path."""

    @pytest.mark.asyncio
    async def test_llm_recommendation_gets_computed_next_run(self):
        llm = FakeLLMClient(LLM_REPLY)
        recommendation = await ScheduleRecommender(llm).recommend(_automation(), [], NOW)

        assert recommendation.source == "llm"
        assert recommendation.confidence == 0.9
        assert recommendation.recommended_schedule.days_of_week == [1]
        assert recommendation.next_run_at == datetime(2026, 3, 16, 7, 30, tzinfo=UTC)
        system, _ = llm.calls[0]
        assert "Restock bestsellers" in system
        assert '"time_of_day": "06:00"' in system

    @pytest.mark.asyncio
    async def test_bad_reply_falls_back_to_history(self):
        llm = FakeLLMClient("Mondays look good")
        history = _runs(datetime(2026, 3, 1, 14, 0, tzinfo=UTC), timedelta(days=1), 4)
        recommendation = await ScheduleRecommender(llm).recommend(_automation(), history, NOW)
        assert recommendation.source == "heuristic"

    @pytest.mark.asyncio
    async def test_invalid_schedule_in_reply_falls_back(self):
        reply = {**LLM_REPLY, "recommended_schedule": {"frequency": "daily", "time_of_day": "7pm"}}
        recommendation = await ScheduleRecommender(FakeLLMClient(reply)).recommend(
            _automation(), [], NOW
        )
        assert recommendation.source == "default"

    @pytest.mark.asyncio
    async def test_unconfigured_client_is_not_called(self):
        llm = FakeLLMClient(is_configured=False)
        recommendation = await ScheduleRecommender(llm).recommend(_automation(), [], NOW)
        assert llm.calls == []
        assert recommendation.source == "default"


class TestHeuristicRecommendations:
    """Tests for recommend_from_history()."""

    def test_daily_cadence_at_best_hour(self):
        history = _runs(datetime(2026, 3, 1, 14, 0, tzinfo=UTC), timedelta(days=1), 4)
        history += _runs(datetime(2026, 3, 5, 3, 0, tzinfo=UTC), timedelta(days=1), 1, success_rate=0.2)

        recommendation = ScheduleRecommender().recommend_from_history(history, NOW)

        assert recommendation.recommended_schedule.frequency == "daily"
        assert recommendation.recommended_schedule.time_of_day == "14:00"
        assert recommendation.next_run_at == datetime(2026, 3, 10, 14, 0, tzinfo=UTC)
        assert recommendation.confidence == 0.75

    def test_hourly_cadence(self):
        history = _runs(datetime(2026, 3, 9, 10, 0, tzinfo=UTC), timedelta(hours=1), 3)
        recommendation = ScheduleRecommender().recommend_from_history(history, NOW)
        assert recommendation.recommended_schedule.frequency == "hourly"

    def test_every_x_hours_cadence(self):
        history = _runs(datetime(2026, 3, 8, 0, 0, tzinfo=UTC), timedelta(hours=6), 4)
        config = ScheduleRecommender().recommend_from_history(history, NOW).recommended_schedule
        assert config.frequency == "every_X_hours"
        assert config.hours == 6

    def test_weekly_cadence_picks_best_day(self):
        # 2026-02-02 is a Monday
        history = _runs(datetime(2026, 2, 2, 9, 0, tzinfo=UTC), timedelta(days=7), 3)
        config = ScheduleRecommender().recommend_from_history(history, NOW).recommended_schedule
        assert config.frequency == "weekly"
        assert config.days_of_week == [1]

    def test_confidence_is_capped(self):
        history = _runs(datetime(2026, 1, 1, 9, 0, tzinfo=UTC), timedelta(days=1), 30)
        recommendation = ScheduleRecommender().recommend_from_history(history, NOW)
        assert recommendation.confidence == MAX_HEURISTIC_CONFIDENCE


def test_default_recommendation_uses_configured_time():
    recommender = ScheduleRecommender(settings=SchedulerSettings(default_time_of_day="10:15"))
    recommendation = recommender.default_recommendation(NOW)
    assert recommendation.source == "default"
    assert recommendation.confidence == DEFAULT_CONFIDENCE
    assert recommendation.recommended_schedule.time_of_day == "10:15"
    assert recommendation.next_run_at == datetime(2026, 3, 10, 10, 15, tzinfo=UTC)
