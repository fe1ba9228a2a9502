"""Construction and in-place lifecycle mutations for report schedules."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime

from models import ReportSchedule
from scheduler.schedule_service_interface import ScheduleCreateRequest, ScheduleUpdateRequest

EMAIL_CHANNEL = "email"
WHATSAPP_CHANNEL = "whatsapp"


def normalise_channels(
    channels: Iterable[str] | Mapping[str, bool] | None,
    *,
    email: str | None = None,
    phone_number: str | None = None,
) -> list[str]:
    """Return the sorted, lower-cased channel set for a schedule.

    Explicit names are merged with the channels implied by populated contact
    fields: ``email`` for an email address and ``whatsapp`` for a phone number.
    A mapping keeps only the names whose value is truthy.
    """
    names: set[str] = set()
    if isinstance(channels, Mapping):
        candidates: Iterable[str] = (name for name, enabled in channels.items() if enabled)
    else:
        candidates = channels or ()
    for name in candidates:
        cleaned = str(name).strip().lower()
        if cleaned:
            names.add(cleaned)
    if email and email.strip():
        names.add(EMAIL_CHANNEL)
    if phone_number and phone_number.strip():
        names.add(WHATSAPP_CHANNEL)
    return sorted(names)


def new_schedule(request: ScheduleCreateRequest, *, now: datetime) -> ReportSchedule:
    """Build an unvalidated schedule with a fresh identity from a create request."""
    email = _blank_to_none(request.email)
    phone_number = _blank_to_none(request.phone_number)
    active = bool(request.active)
    return ReportSchedule(
        id=uuid.uuid4(),
        owner_id=request.owner_id,
        report_type=request.report_type,
        agent_alias=request.agent_alias,
        frequency=request.frequency,
        weekday=request.weekday,
        time_of_day=request.time_of_day,
        timezone=request.timezone,
        rrule=request.rrule,
        priority=int(request.priority or 0),
        email=email,
        phone_number=phone_number,
        channels=normalise_channels(request.channels, email=email, phone_number=phone_number),
        active=active,
        paused=bool(request.paused) and active,
        created_at=now,
        updated_at=now,
    )


def apply_update(schedule: ReportSchedule, request: ScheduleUpdateRequest) -> None:
    """Merge the provided fields of an update request onto a schedule."""
    for name in (
        "report_type",
        "agent_alias",
        "frequency",
        "weekday",
        "time_of_day",
        "timezone",
        "rrule",
    ):
        value = getattr(request, name)
        if value is not None and value.strip():
            setattr(schedule, name, value)
    if request.priority is not None:
        schedule.priority = request.priority

    contact_changed = False
    if request.email is not None and request.email.strip():
        schedule.email = request.email.strip()
        contact_changed = True
    if request.phone_number is not None and request.phone_number.strip():
        schedule.phone_number = request.phone_number.strip()
        contact_changed = True
    if request.channels is not None or contact_changed:
        explicit = request.channels if request.channels is not None else schedule.channels
        schedule.channels = normalise_channels(
            explicit,
            email=schedule.email,
            phone_number=schedule.phone_number,
        )

    if request.paused is not None:
        schedule.paused = request.paused
    if request.active is not None:
        schedule.active = request.active
    if not schedule.active:
        schedule.paused = False


def set_next_run(schedule: ReportSchedule, next_run: datetime, *, now: datetime) -> None:
    """Record a freshly computed next run."""
    schedule.next_run = next_run
    schedule.updated_at = now


def mark_executed(schedule: ReportSchedule, next_run: datetime, *, now: datetime) -> None:
    """Record a finished attempt and advance the schedule to its next occurrence."""
    schedule.last_run = now
    schedule.next_run = next_run
    schedule.updated_at = now


def pause(schedule: ReportSchedule, *, now: datetime) -> None:
    """Pause the schedule without touching its next run."""
    schedule.paused = True
    schedule.updated_at = now


def resume(schedule: ReportSchedule, *, now: datetime) -> None:
    """Resume the schedule without touching its next run."""
    schedule.paused = False
    schedule.updated_at = now


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
