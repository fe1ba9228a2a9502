"""Report schedule orchestration: CRUD, bulk toggles, run history and execution."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from contextlib import closing
from contextvars import copy_context
from datetime import datetime, timedelta
from time import monotonic
from typing import Callable, Iterable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import ReportExecutionRun, ReportSchedule
from scheduler import data_access
from scheduler.execution_runs import (
    mark_completed,
    mark_failed,
    mark_started,
    new_execution_run,
)
from scheduler.mappers import to_execution_run_view, to_schedule_view
from scheduler.report_collaborators import (
    AbsentReportCollaborators,
    DispatchOptions,
    ReportCollaborators,
)
from scheduler.schedule_lifecycle import (
    apply_update,
    mark_executed,
    new_schedule,
    pause,
    resume,
    set_next_run,
)
from scheduler.schedule_service_interface import (
    ExecutionRunListRequest,
    ExecutionRunView,
    ReportCollaboratorNotConfiguredError,
    ReportDispatchError,
    ReportGenerationError,
    ScheduleAttemptError,
    ScheduleCreateRequest,
    ScheduleExecutionCanceledError,
    ScheduleNotFoundError,
    ScheduleRepositoryError,
    ScheduleServiceError,
    ScheduleUpdateRequest,
    ScheduleValidationError,
    ScheduleView,
)
from scheduler.schedule_timing import compute_next_run
from scheduler.schedule_validation import validate_schedule
from structured_logging import attempt_context, bind_run_id
from time_utils import ensure_utc, utc_now

ResultT = TypeVar("ResultT")
logger = logging.getLogger(__name__)

DISPATCHED_OUTPUT = "dispatched"
SCHEDULED_TRIGGER = "scheduled"

_CANCEL_POLL_SECONDS = 0.05


class ReportScheduleService:
    """Report schedule service backed by the scheduler data access layer."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        collaborators: ReportCollaborators | None = None,
        *,
        now_provider: Callable[[], datetime] | None = None,
        execution_offset_seconds: int = 60,
        collaborator_timeout_seconds: float = 30.0,
        default_run_page_size: int = 50,
        max_run_page_size: int = 500,
        strict_timezones: bool = False,
    ) -> None:
        """Initialize the service with a session factory and report collaborators."""
        self._session_factory = session_factory
        self._collaborators = collaborators or AbsentReportCollaborators()
        self._now_provider = now_provider or utc_now
        self._execution_offset = timedelta(seconds=execution_offset_seconds)
        self._collaborator_timeout = collaborator_timeout_seconds
        self._default_run_page_size = default_run_page_size
        self._max_run_page_size = max_run_page_size
        self._strict_timezones = strict_timezones

    def create_schedule(self, request: ScheduleCreateRequest) -> ScheduleView:
        """Validate a new schedule, compute its first run and persist it."""

        def handler(session: Session) -> ScheduleView:
            now = self._now()
            schedule = new_schedule(request, now=now)
            validate_schedule(schedule, strict_timezones=self._strict_timezones)
            schedule.next_run = compute_next_run(schedule, now)
            data_access.create_schedule(session, schedule)
            return to_schedule_view(schedule)

        view = self._execute(handler)
        logger.info(
            "Created report schedule %s for owner %s; next run %s.",
            view.id,
            view.owner_id,
            view.next_run.isoformat(),
        )
        return view

    def get_schedule(self, owner_id: uuid.UUID, schedule_id: uuid.UUID) -> ScheduleView:
        """Return an owned schedule."""

        def handler(session: Session) -> ScheduleView:
            return to_schedule_view(_require_schedule(session, owner_id, schedule_id))

        return self._execute(handler)

    def update_schedule(
        self,
        owner_id: uuid.UUID,
        schedule_id: uuid.UUID,
        request: ScheduleUpdateRequest,
    ) -> ScheduleView:
        """Merge provided fields, re-validate and always recompute the next run."""

        def handler(session: Session) -> ScheduleView:
            now = self._now()
            schedule = _require_schedule(session, owner_id, schedule_id)
            apply_update(schedule, request)
            validate_schedule(schedule, strict_timezones=self._strict_timezones)
            set_next_run(schedule, compute_next_run(schedule, now), now=now)
            data_access.update_schedule(session, schedule)
            return to_schedule_view(schedule)

        return self._execute(handler)

    def delete_schedule(self, owner_id: uuid.UUID, schedule_id: uuid.UUID) -> None:
        """Delete an owned schedule together with its run history."""

        def handler(session: Session) -> None:
            if not data_access.delete_schedule(session, owner_id, schedule_id):
                raise _not_found(owner_id, schedule_id)

        self._execute(handler)
        logger.info("Deleted report schedule %s for owner %s.", schedule_id, owner_id)

    def list_schedules(self, owner_id: uuid.UUID) -> list[ScheduleView]:
        """Return the owner's schedules, soonest due first."""

        def handler(session: Session) -> list[ScheduleView]:
            schedules = data_access.list_schedules(session, owner_id)
            return [to_schedule_view(item) for item in schedules]

        return self._execute(handler)

    def list_due(self, now: datetime | None = None) -> list[ScheduleView]:
        """Return enabled schedules across all owners due at or before ``now``."""
        reference = ensure_utc(now) if now is not None else self._now()

        def handler(session: Session) -> list[ScheduleView]:
            return [
                to_schedule_view(item)
                for item in data_access.list_due_schedules(session, reference)
            ]

        return self._execute(handler)

    def pause_schedule(self, owner_id: uuid.UUID, schedule_id: uuid.UUID) -> ScheduleView:
        """Pause one owned schedule, leaving its next run untouched."""
        return self._toggle(owner_id, schedule_id, pause)

    def resume_schedule(self, owner_id: uuid.UUID, schedule_id: uuid.UUID) -> ScheduleView:
        """Resume one owned schedule, leaving its next run untouched."""
        return self._toggle(owner_id, schedule_id, resume)

    def bulk_set_active(
        self,
        owner_id: uuid.UUID,
        schedule_ids: Iterable[uuid.UUID],
        active: bool,
    ) -> int:
        """Activate or deactivate owned schedules; deactivation also clears paused."""
        values: dict[str, object] = {"active": active}
        if not active:
            values["paused"] = False
        return self._bulk_update(owner_id, schedule_ids, values)

    def bulk_pause(
        self,
        owner_id: uuid.UUID,
        schedule_ids: Iterable[uuid.UUID],
        paused: bool,
    ) -> int:
        """Pause or resume owned schedules in one statement."""
        return self._bulk_update(owner_id, schedule_ids, {"paused": paused})

    def list_runs(
        self,
        owner_id: uuid.UUID,
        request: ExecutionRunListRequest | None = None,
    ) -> list[ExecutionRunView]:
        """Return the owner's execution history, newest first."""
        query = request or ExecutionRunListRequest()
        limit = self._page_size(query.limit)

        def handler(session: Session) -> list[ExecutionRunView]:
            runs = data_access.list_runs(
                session,
                owner_id,
                schedule_id=query.schedule_id,
                status=query.status,
                limit=limit,
                offset=max(query.offset or 0, 0),
            )
            return [to_execution_run_view(run) for run in runs]

        return self._execute(handler)

    def execute(
        self,
        schedule: ScheduleView,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionRunView | None:
        """Run one dispatch attempt for a due schedule.

        Disabled schedules are skipped and return ``None``. Generation and
        dispatch failures are recorded on a failed run and raised as
        ``ScheduleAttemptError`` subclasses without advancing the schedule, so
        the next sweep retries it. On success the run is completed and the
        schedule advances to its next occurrence.
        """
        if not (schedule.active and not schedule.paused):
            logger.debug("Skipping disabled report schedule %s.", schedule.id)
            return None
        if not self._collaborators.configured:
            raise ReportCollaboratorNotConfiguredError(
                "report collaborators are not configured.",
                {"schedule_id": str(schedule.id)},
            )

        with attempt_context(schedule_id=schedule.id, owner_id=schedule.owner_id):
            run_id = self._start_run(schedule)
            bind_run_id(run_id)
            details = {"run_id": str(run_id), "schedule_id": str(schedule.id)}

            try:
                summary = self._call_collaborator(
                    lambda: self._collaborators.generator.generate(schedule.owner_id),
                    cancel_event,
                    stage="generation",
                )
            except Exception as exc:
                self._fail_run(schedule.owner_id, run_id, exc)
                raise _attempt_error(
                    ReportGenerationError, "report generation", exc, details
                ) from exc

            options = DispatchOptions.from_schedule(schedule)
            try:
                self._call_collaborator(
                    lambda: self._collaborators.dispatcher.dispatch(summary, options),
                    cancel_event,
                    stage="dispatch",
                )
            except Exception as exc:
                self._fail_run(schedule.owner_id, run_id, exc)
                raise _attempt_error(
                    ReportDispatchError, "report dispatch", exc, details
                ) from exc

            run_view = self._complete_run(schedule.owner_id, run_id)
            self._advance_schedule(schedule.owner_id, schedule.id)
            logger.info("Report schedule %s executed.", schedule.id)
            return run_view

    def _start_run(self, schedule: ScheduleView) -> uuid.UUID:
        """Persist a pending run, then persist its move to running."""

        def handler(session: Session) -> uuid.UUID:
            now = self._now()
            run = new_execution_run(
                owner_id=schedule.owner_id,
                schedule_id=schedule.id,
                now=now,
                metadata={
                    "report_type": schedule.report_type,
                    "agent_alias": schedule.agent_alias,
                    "trigger": SCHEDULED_TRIGGER,
                    "channels": list(schedule.channels),
                },
            )
            data_access.insert_run(session, run)
            session.commit()
            mark_started(run, now=self._now())
            data_access.update_run(session, run)
            return run.id

        return self._execute(handler)

    def _fail_run(self, owner_id: uuid.UUID, run_id: uuid.UUID, error: BaseException) -> None:
        logger.warning("Report schedule attempt failed: %s", error)

        def handler(session: Session) -> None:
            run = _require_run(session, owner_id, run_id)
            mark_failed(run, error, now=self._now())
            data_access.update_run(session, run)

        self._execute(handler)

    def _complete_run(self, owner_id: uuid.UUID, run_id: uuid.UUID) -> ExecutionRunView:
        def handler(session: Session) -> ExecutionRunView:
            run = _require_run(session, owner_id, run_id)
            mark_completed(run, DISPATCHED_OUTPUT, now=self._now())
            data_access.update_run(session, run)
            return to_execution_run_view(run)

        return self._execute(handler)

    def _advance_schedule(self, owner_id: uuid.UUID, schedule_id: uuid.UUID) -> None:
        """Move the schedule to the occurrence after now plus the execution offset."""

        def handler(session: Session) -> None:
            now = self._now()
            schedule = _require_schedule(session, owner_id, schedule_id)
            next_run = compute_next_run(schedule, now + self._execution_offset)
            mark_executed(schedule, next_run, now=now)
            data_access.update_schedule(session, schedule)

        self._execute(handler)

    def _call_collaborator(
        self,
        call: Callable[[], ResultT],
        cancel_event: threading.Event | None,
        *,
        stage: str,
    ) -> ResultT:
        """Run a collaborator call under the configured timeout and cancel token."""
        if cancel_event is not None and cancel_event.is_set():
            raise ScheduleExecutionCanceledError(f"{stage} canceled before start.")
        deadline = None
        if self._collaborator_timeout > 0:
            deadline = monotonic() + self._collaborator_timeout
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"report-{stage}")
        try:
            # Collaborator log lines keep the attempt identifiers.
            future = executor.submit(copy_context().run, call)
            while True:
                slice_seconds = _CANCEL_POLL_SECONDS if cancel_event is not None else None
                if deadline is not None:
                    remaining = max(deadline - monotonic(), 0.0)
                    if slice_seconds is None:
                        slice_seconds = remaining
                    else:
                        slice_seconds = min(slice_seconds, remaining)
                done, _ = wait([future], timeout=slice_seconds, return_when=FIRST_COMPLETED)
                if done:
                    return future.result()
                if cancel_event is not None and cancel_event.is_set():
                    raise ScheduleExecutionCanceledError(f"{stage} canceled.")
                if deadline is not None and monotonic() >= deadline:
                    raise TimeoutError(
                        f"{stage} timed out after {self._collaborator_timeout:g}s."
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _toggle(
        self,
        owner_id: uuid.UUID,
        schedule_id: uuid.UUID,
        mutate: Callable[..., None],
    ) -> ScheduleView:
        def handler(session: Session) -> ScheduleView:
            schedule = _require_schedule(session, owner_id, schedule_id)
            mutate(schedule, now=self._now())
            data_access.update_schedule(session, schedule)
            return to_schedule_view(schedule)

        return self._execute(handler)

    def _bulk_update(
        self,
        owner_id: uuid.UUID,
        schedule_ids: Iterable[uuid.UUID],
        values: dict[str, object],
    ) -> int:
        ids = list(schedule_ids)
        if not ids:
            return 0

        def handler(session: Session) -> int:
            return data_access.bulk_update_state(
                session,
                owner_id,
                ids,
                {**values, "updated_at": self._now()},
            )

        count = self._execute(handler)
        logger.info("Bulk updated %d report schedule(s) for owner %s: %s.", count, owner_id, values)
        return count

    def _page_size(self, limit: int | None) -> int:
        if limit is None or limit <= 0:
            return self._default_run_page_size
        return min(limit, self._max_run_page_size)

    def _now(self) -> datetime:
        return ensure_utc(self._now_provider())

    def _execute(self, handler: Callable[[Session], ResultT]) -> ResultT:
        """Run a handler inside a managed session with error mapping."""
        with closing(self._session_factory()) as session:
            try:
                result = handler(session)
                session.commit()
            except Exception as exc:
                session.rollback()
                if isinstance(exc, ScheduleServiceError):
                    raise
                raise _map_exception(exc) from exc
        return result


def _require_schedule(
    session: Session,
    owner_id: uuid.UUID,
    schedule_id: uuid.UUID,
) -> ReportSchedule:
    schedule = data_access.get_schedule(session, owner_id, schedule_id)
    if schedule is None:
        raise _not_found(owner_id, schedule_id)
    return schedule


def _require_run(session: Session, owner_id: uuid.UUID, run_id: uuid.UUID) -> ReportExecutionRun:
    run = data_access.get_run(session, owner_id, run_id)
    if run is None:
        raise ScheduleNotFoundError("execution run not found.", {"run_id": str(run_id)})
    return run


def _not_found(owner_id: uuid.UUID, schedule_id: uuid.UUID) -> ScheduleNotFoundError:
    return ScheduleNotFoundError(
        "schedule not found.",
        {"schedule_id": str(schedule_id), "owner_id": str(owner_id)},
    )


def _attempt_error(
    error_cls: type[ScheduleAttemptError],
    stage: str,
    exc: Exception,
    details: dict[str, object],
) -> ScheduleAttemptError:
    """Wrap an attempt failure, keeping cancellation as its own error type."""
    if isinstance(exc, ScheduleExecutionCanceledError):
        return ScheduleExecutionCanceledError(str(exc), {**details, "stage": stage})
    return error_cls(f"{stage} failed: {exc}", details)


def _map_exception(exc: Exception) -> ScheduleServiceError:
    """Map unexpected exceptions to service errors."""
    if isinstance(exc, SQLAlchemyError):
        logger.error("Report schedule persistence failed.", exc_info=exc)
        return ScheduleRepositoryError(f"persistence failure: {exc}")
    if isinstance(exc, ValueError):
        return ScheduleValidationError(str(exc))
    logger.error("Unexpected report schedule failure.", exc_info=exc)
    return ScheduleServiceError("internal_error", str(exc))
