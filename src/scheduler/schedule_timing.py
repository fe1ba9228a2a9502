"""Next-run computation for daily, weekly and custom report schedules.

All functions are pure: they take a schedule definition and a reference
instant and return the first trigger instant strictly after the reference,
normalized to UTC. Calendar math happens on the schedule's local wall clock,
so a 09:00 schedule stays at 09:00 local time across DST changes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, tzinfo
from typing import Protocol

from dateutil.rrule import rrulestr

from scheduler.schedule_service_interface import ScheduleRecurrenceError
from scheduler.schedule_validation import parse_time_of_day, parse_weekday
from time_utils import ensure_utc, resolve_timezone, to_local

LOGGER = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)


class ScheduleTimingLike(Protocol):
    """Protocol for the schedule fields that drive next-run computation."""

    frequency: str
    weekday: str | None
    time_of_day: str
    timezone: str | None
    rrule: str | None


def compute_next_run(schedule: ScheduleTimingLike, reference_time: datetime) -> datetime:
    """Return the next trigger instant in UTC strictly after ``reference_time``."""
    zone = resolve_timezone(schedule.timezone)
    if schedule.frequency == "daily":
        return compute_daily_next_run(schedule.time_of_day, zone, reference_time=reference_time)
    if schedule.frequency == "weekly":
        return compute_weekly_next_run(
            schedule.weekday,
            schedule.time_of_day,
            zone,
            reference_time=reference_time,
        )
    if schedule.frequency == "custom":
        return compute_custom_next_run(schedule.rrule, zone, reference_time=reference_time)
    raise ScheduleRecurrenceError(
        f"unsupported frequency: {schedule.frequency!r}.",
        {"frequency": schedule.frequency},
    )


def compute_daily_next_run(
    time_of_day: str,
    zone: tzinfo,
    *,
    reference_time: datetime,
) -> datetime:
    """Compute the next daily occurrence of ``time_of_day`` after the reference."""
    reference = ensure_utc(reference_time)
    candidate = _local_candidate(time_of_day, zone, reference)
    if ensure_utc(candidate) <= reference:
        candidate = _advance_one_day(candidate)
    return ensure_utc(candidate)


def compute_weekly_next_run(
    weekday: str | None,
    time_of_day: str,
    zone: tzinfo,
    *,
    reference_time: datetime,
) -> datetime:
    """Compute the next occurrence on ``weekday`` at ``time_of_day`` after the reference."""
    target_weekday = parse_weekday(weekday)
    reference = ensure_utc(reference_time)
    candidate = _local_candidate(time_of_day, zone, reference)
    # A 7-day window always holds the target weekday; 8 steps covers "today, already passed".
    for _ in range(8):
        if ensure_utc(candidate) > reference and candidate.weekday() == target_weekday:
            return ensure_utc(candidate)
        candidate = _advance_one_day(candidate)
    raise ScheduleRecurrenceError(
        "unable to compute next weekly run.",
        {"weekday": weekday, "time_of_day": time_of_day},
    )


def compute_custom_next_run(
    rrule_value: str | None,
    zone: tzinfo,
    *,
    reference_time: datetime,
) -> datetime:
    """Compute the first RRULE occurrence strictly after the reference.

    Rules without a ``DTSTART`` are anchored at the reference instant,
    truncated to the minute, on the schedule's local clock. A floating
    ``DTSTART`` or a local-time ``UNTIL`` is evaluated on that same local clock.
    """
    if rrule_value is None or not rrule_value.strip():
        raise ScheduleRecurrenceError(
            "rrule is required for custom schedules.",
            {"rrule": rrule_value},
        )
    reference = to_local(reference_time, zone)
    anchor = reference.replace(second=0, microsecond=0)
    try:
        rule = rrulestr(rrule_value.strip(), dtstart=anchor)
    except (ValueError, TypeError) as exc:
        # A local-time UNTIL only parses against a naive anchor.
        try:
            rule = rrulestr(rrule_value.strip(), dtstart=anchor.replace(tzinfo=None))
        except (ValueError, TypeError):
            LOGGER.warning("Failed to parse RRULE '%s': %s", rrule_value, exc)
            raise ScheduleRecurrenceError(
                f"unable to parse rrule: {exc}",
                {"rrule": rrule_value},
            ) from exc

    try:
        next_occurrence = rule.after(reference, inc=False)
    except TypeError:
        # Floating DTSTART or local UNTIL: compare on the naive local clock instead.
        next_occurrence = rule.after(reference.replace(tzinfo=None), inc=False)
        if next_occurrence is not None:
            next_occurrence = next_occurrence.replace(tzinfo=zone)

    if next_occurrence is None:
        raise ScheduleRecurrenceError(
            "rrule has no occurrence after the reference time.",
            {"rrule": rrule_value, "reference_time": reference_time.isoformat()},
        )
    return ensure_utc(next_occurrence)


def _local_candidate(time_of_day: str, zone: tzinfo, reference: datetime) -> datetime:
    """Build the ``time_of_day`` instant on the reference's local calendar date."""
    hour, minute = parse_time_of_day(time_of_day)
    local_reference = reference.astimezone(zone)
    return local_reference.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _advance_one_day(value: datetime) -> datetime:
    """Step one calendar day on the local wall clock."""
    naive = value.replace(tzinfo=None) + _ONE_DAY
    return naive.replace(tzinfo=value.tzinfo)
