"""Shared model->view mappers for report scheduler services."""

from __future__ import annotations

from models import ReportExecutionRun, ReportSchedule
from scheduler.schedule_service_interface import ExecutionRunView, ScheduleView


def to_schedule_view(schedule: ReportSchedule) -> ScheduleView:
    """Convert a ReportSchedule model to its read-only ScheduleView."""
    return ScheduleView(
        id=schedule.id,
        owner_id=schedule.owner_id,
        report_type=schedule.report_type,
        agent_alias=schedule.agent_alias,
        frequency=str(schedule.frequency),
        weekday=schedule.weekday,
        time_of_day=schedule.time_of_day,
        timezone=schedule.timezone or "UTC",
        rrule=schedule.rrule,
        priority=int(schedule.priority or 0),
        email=schedule.email,
        phone_number=schedule.phone_number,
        channels=tuple(schedule.channels or ()),
        active=bool(schedule.active),
        paused=bool(schedule.paused),
        next_run=schedule.next_run,
        last_run=schedule.last_run,
        created_at=schedule.created_at,
        updated_at=schedule.updated_at,
    )


def to_execution_run_view(run: ReportExecutionRun) -> ExecutionRunView:
    """Convert a ReportExecutionRun model to its read-only ExecutionRunView."""
    return ExecutionRunView(
        id=run.id,
        owner_id=run.owner_id,
        schedule_id=run.schedule_id,
        status=str(run.status),
        output=run.output,
        error_message=run.error_message,
        metadata=dict(run.run_metadata or {}),
        started_at=run.started_at,
        completed_at=run.completed_at,
        created_at=run.created_at,
        updated_at=run.updated_at,
    )
