"""Automation scheduling: schedule models, next-run math, recommendations."""

from src.orchestrator.scheduling.models import ScheduleConfig, ScheduleRecommendation
from src.orchestrator.scheduling.recommender import ScheduleRecommender
from src.orchestrator.scheduling.schedule_math import compute_next_run

__all__ = [
    "ScheduleConfig",
    "ScheduleRecommendation",
    "ScheduleRecommender",
    "compute_next_run",
]
