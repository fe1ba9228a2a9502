"""Unit tests for next-run computation across frequencies and zones."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from scheduler.schedule_service_interface import ScheduleRecurrenceError
from scheduler.schedule_timing import compute_next_run


@dataclass
class _Timing:
    """Minimal schedule definition for timing tests."""

    frequency: str
    time_of_day: str = "09:00"
    weekday: str | None = None
    timezone: str | None = "UTC"
    rrule: str | None = None


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_daily_rolls_to_next_day_when_time_passed() -> None:
    """Ensure a passed daily time moves to the following day."""
    result = compute_next_run(_Timing("daily"), _utc(2024, 1, 1, 10, 0))

    assert result == _utc(2024, 1, 2, 9, 0)


def test_daily_uses_same_day_when_time_ahead() -> None:
    """Ensure a later daily time stays on the reference day."""
    result = compute_next_run(_Timing("daily"), _utc(2024, 1, 1, 8, 59))

    assert result == _utc(2024, 1, 1, 9, 0)


def test_daily_never_returns_reference_instant() -> None:
    """Ensure the result is strictly after a reference equal to the trigger time."""
    result = compute_next_run(_Timing("daily"), _utc(2024, 1, 1, 9, 0))

    assert result == _utc(2024, 1, 2, 9, 0)


@pytest.mark.parametrize(
    "reference",
    [
        _utc(2024, 1, 1, 0, 0),
        _utc(2024, 2, 29, 8, 59, 59),
        _utc(2024, 2, 29, 9, 0, 1),
        _utc(2024, 12, 31, 23, 59),
    ],
)
def test_daily_result_is_within_a_day_and_strictly_after(reference: datetime) -> None:
    """Ensure daily UTC results are strictly after the reference and within 24 hours."""
    result = compute_next_run(_Timing("daily"), reference)

    assert reference < result <= reference + timedelta(hours=24)
    assert (result.hour, result.minute) == (9, 0)


def test_daily_result_is_returned_in_utc() -> None:
    """Ensure results are normalized to UTC regardless of the schedule zone."""
    schedule = _Timing("daily", timezone="America/New_York")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 10, 0))

    assert result == _utc(2024, 1, 1, 14, 0)
    assert result.utcoffset() == timedelta(0)


def test_daily_keeps_local_wall_clock_across_dst() -> None:
    """Ensure a local 09:00 schedule stays at 09:00 local after spring forward."""
    schedule = _Timing("daily", timezone="America/New_York")

    result = compute_next_run(schedule, _utc(2024, 3, 9, 15, 0))

    assert result == _utc(2024, 3, 10, 13, 0)
    local = result.astimezone(ZoneInfo("America/New_York"))
    assert (local.hour, local.minute) == (9, 0)


def test_daily_uses_local_calendar_date() -> None:
    """Ensure the candidate day comes from the schedule's local date."""
    schedule = _Timing("daily", time_of_day="08:00", timezone="Asia/Tokyo")

    # 23:30 UTC is already 08:30 the next day in Tokyo.
    result = compute_next_run(schedule, _utc(2024, 1, 1, 23, 30))

    assert result == _utc(2024, 1, 2, 23, 0)


def test_unknown_timezone_falls_back_to_utc() -> None:
    """Ensure an unresolvable zone computes as UTC instead of failing."""
    schedule = _Timing("daily", timezone="Not/AZone")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 10, 0))

    assert result == _utc(2024, 1, 2, 9, 0)


def test_weekly_moves_to_next_configured_weekday() -> None:
    """Ensure a Tuesday reference lands on the following Monday."""
    schedule = _Timing("weekly", time_of_day="08:00", weekday="monday")

    result = compute_next_run(schedule, _utc(2024, 1, 2, 8, 30))

    assert result == _utc(2024, 1, 8, 8, 0)
    assert result - _utc(2024, 1, 2, 8, 0) == timedelta(days=6)


def test_weekly_same_day_before_time() -> None:
    """Ensure the same weekday is used when the time is still ahead."""
    schedule = _Timing("weekly", time_of_day="08:00", weekday="mon")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 7, 0))

    assert result == _utc(2024, 1, 1, 8, 0)


def test_weekly_same_day_after_time_waits_a_week() -> None:
    """Ensure a passed time on the configured weekday moves a full week."""
    schedule = _Timing("weekly", time_of_day="08:00", weekday="monday")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 8, 0))

    assert result == _utc(2024, 1, 8, 8, 0)


@pytest.mark.parametrize(
    "weekday", ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
)
def test_weekly_lands_on_weekday_within_a_week(weekday: str) -> None:
    """Ensure weekly results fall on the weekday, strictly after and within 7 days."""
    reference = _utc(2024, 5, 15, 12, 0)
    schedule = _Timing("weekly", time_of_day="12:00", weekday=weekday)

    result = compute_next_run(schedule, reference)

    assert reference < result <= reference + timedelta(days=7)
    assert result.strftime("%A").lower() == weekday


def test_weekly_weekday_is_evaluated_in_local_zone() -> None:
    """Ensure the weekday check uses the schedule's local calendar."""
    schedule = _Timing(
        "weekly",
        time_of_day="07:00",
        weekday="monday",
        timezone="Pacific/Auckland",
    )

    result = compute_next_run(schedule, _utc(2024, 1, 3, 0, 0))

    local = result.astimezone(ZoneInfo("Pacific/Auckland"))
    assert local.weekday() == 0
    assert (local.hour, local.minute) == (7, 0)
    # Monday 07:00 NZDT is Sunday 18:00 UTC.
    assert result == _utc(2024, 1, 7, 18, 0)


def test_custom_returns_first_occurrence_after_reference() -> None:
    """Ensure custom rules yield the first occurrence strictly after the reference."""
    schedule = _Timing("custom", rrule="FREQ=DAILY;BYHOUR=9;BYMINUTE=0")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 10, 0))

    assert result == _utc(2024, 1, 2, 9, 0)


def test_custom_accepts_rrule_prefix() -> None:
    """Ensure rules written with an RRULE: prefix parse."""
    schedule = _Timing("custom", rrule="RRULE:FREQ=WEEKLY;BYDAY=FR;BYHOUR=17;BYMINUTE=30")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 0, 0))

    assert result == _utc(2024, 1, 5, 17, 30)


def test_custom_is_exclusive_of_reference() -> None:
    """Ensure an occurrence equal to the reference is skipped."""
    schedule = _Timing("custom", rrule="FREQ=HOURLY;BYMINUTE=0")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 10, 0))

    assert result == _utc(2024, 1, 1, 11, 0)


def test_custom_honors_explicit_utc_dtstart() -> None:
    """Ensure an explicit DTSTART anchors the rule."""
    schedule = _Timing(
        "custom",
        rrule="DTSTART:20240101T090000Z\nRRULE:FREQ=WEEKLY;BYDAY=MO",
    )

    result = compute_next_run(schedule, _utc(2024, 1, 2, 0, 0))

    assert result == _utc(2024, 1, 8, 9, 0)


def test_custom_floating_dtstart_uses_schedule_zone() -> None:
    """Ensure a floating DTSTART is read on the schedule's wall clock."""
    schedule = _Timing(
        "custom",
        timezone="Europe/Berlin",
        rrule="DTSTART:20240101T090000\nRRULE:FREQ=DAILY",
    )

    result = compute_next_run(schedule, _utc(2024, 1, 1, 9, 0))

    assert result == _utc(2024, 1, 2, 8, 0)


def test_custom_rule_in_local_zone() -> None:
    """Ensure BYHOUR values are local to the schedule zone."""
    schedule = _Timing("custom", timezone="Europe/Berlin", rrule="FREQ=DAILY;BYHOUR=9;BYMINUTE=0")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 12, 0))

    assert result == _utc(2024, 1, 2, 8, 0)


def test_custom_local_until_is_accepted() -> None:
    """Ensure a rule bounded by a local-time UNTIL still yields its next occurrence."""
    schedule = _Timing("custom", rrule="FREQ=DAILY;BYHOUR=9;BYMINUTE=0;UNTIL=20300101T000000")

    result = compute_next_run(schedule, _utc(2024, 1, 1, 10, 0))

    assert result == _utc(2024, 1, 2, 9, 0)


def test_custom_local_until_uses_schedule_zone() -> None:
    """Ensure local-UNTIL rules are evaluated on the schedule's wall clock."""
    schedule = _Timing(
        "custom",
        timezone="Europe/Berlin",
        rrule="FREQ=DAILY;BYHOUR=9;BYMINUTE=0;UNTIL=20300101T000000",
    )

    result = compute_next_run(schedule, _utc(2024, 1, 1, 12, 0))

    assert result == _utc(2024, 1, 2, 8, 0)


def test_custom_local_until_in_the_past_raises() -> None:
    """Ensure a local-UNTIL rule that already ended has no next run."""
    schedule = _Timing("custom", rrule="FREQ=DAILY;BYHOUR=9;BYMINUTE=0;UNTIL=20231231T000000")

    with pytest.raises(ScheduleRecurrenceError) as excinfo:
        compute_next_run(schedule, _utc(2024, 1, 1, 10, 0))

    assert "no occurrence" in str(excinfo.value)


@pytest.mark.parametrize("rrule", ["FREQ=SOMETIMES", "not a rule", "FREQ=DAILY;BOGUS=1"])
def test_custom_invalid_rule_raises(rrule: str) -> None:
    """Ensure invalid rules always fail rather than falling back to a default time."""
    with pytest.raises(ScheduleRecurrenceError) as excinfo:
        compute_next_run(_Timing("custom", rrule=rrule), _utc(2024, 1, 1, 10, 0))

    assert excinfo.value.code == "unable_to_compute_next_run"


def test_custom_exhausted_rule_raises() -> None:
    """Ensure a rule with no future occurrence fails."""
    schedule = _Timing(
        "custom",
        rrule="DTSTART:20200101T090000Z\nRRULE:FREQ=DAILY;COUNT=3",
    )

    with pytest.raises(ScheduleRecurrenceError):
        compute_next_run(schedule, _utc(2024, 1, 1, 10, 0))


def test_same_reference_gives_same_result() -> None:
    """Ensure computation is a pure function of the definition and reference."""
    schedule = _Timing("weekly", weekday="friday", time_of_day="18:15", timezone="Europe/London")
    reference = _utc(2024, 6, 1, 12, 0)

    assert compute_next_run(schedule, reference) == compute_next_run(schedule, reference)
