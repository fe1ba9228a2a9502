"""Execution run construction and the forward-only run state machine."""

from __future__ import annotations

import uuid
from datetime import datetime

from models import ReportExecutionRun
from scheduler.schedule_service_interface import ExecutionRunTransitionError

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"

RUN_STATUSES = (PENDING, RUNNING, COMPLETED, FAILED)
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED})

_ALLOWED_STATE_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {RUNNING},
    RUNNING: {COMPLETED, FAILED},
    COMPLETED: set(),
    FAILED: set(),
}


def new_execution_run(
    *,
    owner_id: uuid.UUID,
    schedule_id: uuid.UUID,
    now: datetime,
    metadata: dict[str, object] | None = None,
) -> ReportExecutionRun:
    """Build a pending run with a fresh identity."""
    return ReportExecutionRun(
        id=uuid.uuid4(),
        owner_id=owner_id,
        schedule_id=schedule_id,
        status=PENDING,
        run_metadata=dict(metadata or {}),
        created_at=now,
        updated_at=now,
    )


def is_terminal(run: ReportExecutionRun) -> bool:
    """Return True when the run can no longer change state."""
    return run.status in TERMINAL_STATUSES


def mark_started(run: ReportExecutionRun, *, now: datetime) -> None:
    """Move a pending run to running."""
    _transition(run, RUNNING)
    run.started_at = now
    run.updated_at = now


def mark_completed(run: ReportExecutionRun, output: str, *, now: datetime) -> None:
    """Move a running run to completed with a short output summary."""
    _transition(run, COMPLETED)
    run.output = output
    run.completed_at = now
    run.updated_at = now


def mark_failed(run: ReportExecutionRun, error: BaseException | str, *, now: datetime) -> None:
    """Move a running run to failed, recording the trimmed error message."""
    _transition(run, FAILED)
    message = str(error).strip()
    if not message and isinstance(error, BaseException):
        message = type(error).__name__
    run.error_message = message
    run.completed_at = now
    run.updated_at = now


def _transition(run: ReportExecutionRun, target: str) -> None:
    current = run.status
    if target not in _ALLOWED_STATE_TRANSITIONS.get(current, set()):
        raise ExecutionRunTransitionError(
            f"cannot move execution run from {current} to {target}.",
            {"run_id": str(run.id), "from": current, "to": target},
        )
    run.status = target
