"""Reusable validation helpers for report schedule definitions."""

from __future__ import annotations

import re

from models import ReportSchedule
from scheduler.schedule_service_interface import ScheduleValidationError
from time_utils import DEFAULT_TIMEZONE, is_valid_timezone

SUPPORTED_FREQUENCIES = ("daily", "weekly", "custom")

_TIME_OF_DAY_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")

_WEEKDAYS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}
_WEEKDAY_ALIASES: dict[str, int] = {
    **_WEEKDAYS,
    **{name[:3]: index for name, index in _WEEKDAYS.items()},
}


def _invalid(reason: str, field: str, message: str) -> ScheduleValidationError:
    return ScheduleValidationError(message, {"reason": reason, "field": field})


def _clean(value: str | None) -> str | None:
    """Trim a string value, collapsing blanks to None."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def parse_time_of_day(value: str | None) -> tuple[int, int]:
    """Parse an ``HH:MM`` 24-hour value into hour and minute."""
    if value is None or not value.strip():
        raise _invalid("time_required", "time_of_day", "time of day is required.")
    match = _TIME_OF_DAY_PATTERN.match(value.strip())
    if match is None:
        raise _invalid(
            "invalid_time_of_day",
            "time_of_day",
            f"time of day must be HH:MM, got {value!r}.",
        )
    hour, minute = int(match.group(1)), int(match.group(2))
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise _invalid(
            "invalid_time_of_day",
            "time_of_day",
            f"time of day out of range: {value!r}.",
        )
    return hour, minute


def parse_weekday(value: str | None) -> int:
    """Return the weekday index (Monday is 0) for a full or abbreviated name."""
    if value is None or not value.strip():
        raise _invalid("weekday_required", "weekday", "weekday is required for weekly schedules.")
    index = _WEEKDAY_ALIASES.get(value.strip().lower())
    if index is None:
        raise _invalid("invalid_weekday", "weekday", f"unknown weekday: {value!r}.")
    return index


def validate_schedule(schedule: ReportSchedule, *, strict_timezones: bool = False) -> None:
    """Validate a schedule definition, normalizing its string fields in place.

    Normalization trims strings, lower-cases ``frequency`` and ``weekday`` and
    replaces a blank timezone with UTC. Unresolvable timezones are only
    rejected when ``strict_timezones`` is set.
    """
    if schedule.id is None:
        raise _invalid("missing_schedule_id", "id", "schedule id is required.")
    if schedule.owner_id is None:
        raise _invalid("missing_owner_id", "owner_id", "owner id is required.")

    schedule.report_type = _clean(schedule.report_type)
    if schedule.report_type is None:
        raise _invalid("missing_report_type", "report_type", "report type is required.")
    schedule.agent_alias = _clean(schedule.agent_alias)
    if schedule.agent_alias is None:
        raise _invalid("missing_agent_alias", "agent_alias", "agent alias is required.")

    frequency = (_clean(schedule.frequency) or "").lower()
    if frequency not in SUPPORTED_FREQUENCIES:
        raise _invalid(
            "unsupported_frequency",
            "frequency",
            f"unsupported frequency: {schedule.frequency!r}.",
        )
    schedule.frequency = frequency

    weekday = _clean(schedule.weekday)
    schedule.weekday = weekday.lower() if weekday else None
    if frequency == "weekly" and schedule.weekday is None:
        raise _invalid("weekday_required", "weekday", "weekday is required for weekly schedules.")

    schedule.time_of_day = _clean(schedule.time_of_day)
    if schedule.time_of_day is None:
        raise _invalid("time_required", "time_of_day", "time of day is required.")

    schedule.rrule = _clean(schedule.rrule)
    if frequency == "custom" and schedule.rrule is None:
        raise _invalid("rrule_required", "rrule", "rrule is required for custom schedules.")

    parse_time_of_day(schedule.time_of_day)
    if frequency == "weekly":
        parse_weekday(schedule.weekday)

    timezone_name = _clean(schedule.timezone)
    schedule.timezone = timezone_name or DEFAULT_TIMEZONE
    if strict_timezones and not is_valid_timezone(schedule.timezone):
        raise _invalid(
            "invalid_timezone",
            "timezone",
            f"unknown timezone: {schedule.timezone!r}.",
        )
