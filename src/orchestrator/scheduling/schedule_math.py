"""Next-run computation for automation schedules.

compute_next_run always returns an aware UTC datetime strictly after the
reference time, whatever the schedule looks like. Recurrences are
expanded with dateutil.rrule: interval schedules in absolute UTC hours,
daily and weekly schedules in the schedule timezone's wall-clock time.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from dateutil import rrule
from pydantic import ValidationError as PydanticValidationError

from src.orchestrator.scheduling.models import ScheduleConfig

DEFAULT_INTERVAL = timedelta(days=1)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_iso(value: str | None) -> datetime | None:
    """Parse a stored ISO8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def coerce_schedule(schedule: ScheduleConfig | dict[str, Any] | None) -> ScheduleConfig | None:
    """Validate a stored schedule dict; unusable schedules become None."""
    if schedule is None or isinstance(schedule, ScheduleConfig):
        return schedule
    if not schedule:
        return None
    try:
        return ScheduleConfig.model_validate(schedule)
    except PydanticValidationError:
        return None


def _sunday_based_weekday(moment: datetime) -> int:
    return (moment.weekday() + 1) % 7


def _dateutil_weekday(sunday_based: int) -> int:
    # dateutil counts Monday as 0
    return (sunday_based - 1) % 7


def _next_interval(config: ScheduleConfig, after: datetime, hours: int) -> datetime | None:
    local = after.astimezone(ZoneInfo(config.timezone))
    hour = local.hour if config.frequency == "hourly" else config.hour
    anchor = local.replace(hour=hour, minute=config.minute, second=0, microsecond=0)
    # dtstart lies over a day before the anchor and in phase with it
    lead = timedelta(hours=hours * (24 // hours + 1))
    rule = rrule.rrule(
        rrule.HOURLY, interval=hours, dtstart=anchor.astimezone(UTC) - lead
    )
    return rule.after(after)


def _next_on_days(
    config: ScheduleConfig, after: datetime, days: list[int], frequency: int
) -> datetime | None:
    local_after = after.astimezone(ZoneInfo(config.timezone))
    rule = rrule.rrule(
        frequency,
        dtstart=local_after.replace(hour=0, minute=0, second=0, microsecond=0),
        byweekday=[_dateutil_weekday(d) for d in days] or None,
        byhour=config.hour,
        byminute=config.minute,
        bysecond=0,
    )
    occurrence = rule.after(local_after)
    return None if occurrence is None else occurrence.astimezone(UTC)


def compute_next_run(
    schedule: ScheduleConfig | dict[str, Any] | None, after: datetime
) -> datetime:
    """Next run strictly after ``after``.

    Args:
        schedule: Schedule config or stored dict. None or an invalid dict
            means "same time tomorrow".
        after: Reference time; naive values are taken as UTC.

    Returns:
        Aware UTC datetime > after.
    """
    after = ensure_utc(after)
    config = coerce_schedule(schedule)
    if config is None:
        return after + DEFAULT_INTERVAL

    if config.frequency == "hourly":
        next_run = _next_interval(config, after, 1)
    elif config.frequency == "every_X_hours":
        next_run = _next_interval(config, after, config.hours or 1)
    elif config.frequency == "daily":
        next_run = _next_on_days(config, after, config.days_of_week, rrule.DAILY)
    else:
        # weekly without explicit days recurs on the current weekday
        days = config.days_of_week or [
            _sunday_based_weekday(after.astimezone(ZoneInfo(config.timezone)))
        ]
        next_run = _next_on_days(config, after, days, rrule.WEEKLY)
    return next_run or after + DEFAULT_INTERVAL
