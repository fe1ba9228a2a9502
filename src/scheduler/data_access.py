"""Data access layer for report schedules and their execution runs.

Every function takes an open ``Session`` and leaves transaction control to
the caller. Owner-facing reads and writes are always scoped by ``owner_id``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from models import ReportExecutionRun, ReportSchedule
from time_utils import ensure_utc

logger = logging.getLogger(__name__)

_BULK_UPDATABLE_FIELDS = frozenset({"active", "paused", "updated_at"})


def create_schedule(session: Session, schedule: ReportSchedule) -> ReportSchedule:
    """Persist a new schedule."""
    session.add(schedule)
    session.flush()
    return schedule


def get_schedule(
    session: Session,
    owner_id: uuid.UUID,
    schedule_id: uuid.UUID,
) -> ReportSchedule | None:
    """Return the schedule when it exists and belongs to the owner."""
    return (
        session.query(ReportSchedule)
        .filter(and_(ReportSchedule.id == schedule_id, ReportSchedule.owner_id == owner_id))
        .first()
    )


def update_schedule(session: Session, schedule: ReportSchedule) -> ReportSchedule:
    """Flush pending changes on a schedule loaded in this session or merge a detached one."""
    if schedule not in session:
        schedule = session.merge(schedule)
    session.flush()
    return schedule


def delete_schedule(session: Session, owner_id: uuid.UUID, schedule_id: uuid.UUID) -> bool:
    """Delete an owned schedule and its runs, returning False when it is not owned."""
    schedule = get_schedule(session, owner_id, schedule_id)
    if schedule is None:
        return False
    deleted_runs = (
        session.query(ReportExecutionRun)
        .filter(ReportExecutionRun.schedule_id == schedule_id)
        .delete()
    )
    session.delete(schedule)
    session.flush()
    logger.debug("Deleted schedule %s with %d run(s).", schedule_id, deleted_runs)
    return True


def list_schedules(session: Session, owner_id: uuid.UUID) -> list[ReportSchedule]:
    """Return the owner's schedules, soonest due first."""
    return (
        session.query(ReportSchedule)
        .filter(ReportSchedule.owner_id == owner_id)
        .order_by(ReportSchedule.next_run.asc(), ReportSchedule.created_at.asc())
        .all()
    )


def list_due_schedules(session: Session, now: datetime) -> list[ReportSchedule]:
    """Return active, unpaused schedules across all owners due at or before ``now``."""
    now = ensure_utc(now)
    return (
        session.query(ReportSchedule)
        .filter(
            and_(
                ReportSchedule.active.is_(True),
                ReportSchedule.paused.is_(False),
                ReportSchedule.next_run <= now,
            )
        )
        .order_by(ReportSchedule.next_run.asc(), ReportSchedule.priority.desc())
        .all()
    )


def bulk_update_state(
    session: Session,
    owner_id: uuid.UUID,
    schedule_ids: Iterable[uuid.UUID],
    values: dict[str, object],
) -> int:
    """Apply flag updates to an owner's schedules in a single statement.

    Only ``active``, ``paused`` and ``updated_at`` may be patched. Returns the
    number of rows matched; an empty id set is a no-op.
    """
    ids = list(dict.fromkeys(schedule_ids))
    if not ids or not values:
        return 0
    unknown = set(values) - _BULK_UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Bulk update does not allow fields: {', '.join(sorted(unknown))}.")
    if "updated_at" in values:
        values = {**values, "updated_at": ensure_utc(values["updated_at"])}
    count = (
        session.query(ReportSchedule)
        .filter(and_(ReportSchedule.owner_id == owner_id, ReportSchedule.id.in_(ids)))
        .update(values, synchronize_session=False)
    )
    session.expire_all()
    return count


def insert_run(session: Session, run: ReportExecutionRun) -> ReportExecutionRun:
    """Persist a new execution run."""
    session.add(run)
    session.flush()
    return run


def update_run(session: Session, run: ReportExecutionRun) -> ReportExecutionRun:
    """Flush pending changes on an execution run."""
    if run not in session:
        run = session.merge(run)
    session.flush()
    return run


def get_run(
    session: Session,
    owner_id: uuid.UUID,
    run_id: uuid.UUID,
) -> ReportExecutionRun | None:
    """Return the run when it exists and belongs to the owner."""
    return (
        session.query(ReportExecutionRun)
        .filter(and_(ReportExecutionRun.id == run_id, ReportExecutionRun.owner_id == owner_id))
        .first()
    )


def list_runs(
    session: Session,
    owner_id: uuid.UUID,
    *,
    schedule_id: uuid.UUID | None = None,
    status: str | None = None,
    limit: int,
    offset: int = 0,
) -> list[ReportExecutionRun]:
    """List the owner's runs, newest first, with optional schedule and status filters."""
    filters = [ReportExecutionRun.owner_id == owner_id]
    if schedule_id is not None:
        filters.append(ReportExecutionRun.schedule_id == schedule_id)
    if status is not None and status.strip():
        filters.append(func.lower(ReportExecutionRun.status) == status.strip().lower())
    return (
        session.query(ReportExecutionRun)
        .filter(and_(*filters))
        .order_by(ReportExecutionRun.created_at.desc(), ReportExecutionRun.id.desc())
        .offset(max(offset, 0))
        .limit(limit)
        .all()
    )
