"""Schedule models for automations.

``days_of_week`` uses 0=Sunday through 6=Saturday.
"""

import re
from datetime import datetime
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

Frequency = Literal["hourly", "every_X_hours", "daily", "weekly"]


class ScheduleConfig(BaseModel):
    """When an automation runs.

    Attributes:
        frequency: hourly, every_X_hours, daily or weekly
        hours: Interval for every_X_hours
        time_of_day: HH:MM anchor in ``timezone``
        days_of_week: Allowed weekdays, 0=Sunday
        timezone: IANA timezone name
    """

    model_config = ConfigDict(from_attributes=True)

    frequency: Frequency = "daily"
    hours: int | None = Field(default=None, ge=1, le=168)
    time_of_day: str = "09:00"
    days_of_week: list[int] = Field(default_factory=list)
    timezone: str = "UTC"

    @field_validator("frequency", mode="before")
    @classmethod
    def normalize_frequency(cls, v: Any) -> Any:
        if isinstance(v, str) and v.lower() in ("every_x_hours", "every_n_hours"):
            return "every_X_hours"
        return v

    @field_validator("time_of_day")
    @classmethod
    def validate_time_of_day(cls, v: str) -> str:
        if not _TIME_OF_DAY.match(v):
            raise ValueError(f"time_of_day must be HH:MM (24-hour), got {v!r}")
        return v

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("days_of_week entries must be 0 (Sunday) to 6 (Saturday)")
        return sorted(set(v))

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone {v!r}") from e
        return v

    @property
    def hour(self) -> int:
        return int(self.time_of_day.split(":")[0])

    @property
    def minute(self) -> int:
        return int(self.time_of_day.split(":")[1])


class ScheduleRecommendation(BaseModel):
    """A recommended schedule with its justification."""

    model_config = ConfigDict(from_attributes=True)

    recommended_schedule: ScheduleConfig
    reasoning: str = ""
    confidence: float = Field(..., ge=0.0, le=1.0)
    estimated_improvement: float | None = None
    next_run_at: datetime | None = None
    patterns_detected: list[str] = Field(default_factory=list)
    source: Literal["llm", "heuristic", "default"] = "llm"
