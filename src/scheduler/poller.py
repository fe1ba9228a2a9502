"""Single-instance poller that sweeps due report schedules."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from scheduler.schedule_service import ReportScheduleService
from scheduler.schedule_service_interface import (
    ReportCollaboratorNotConfiguredError,
    ScheduleAttemptError,
    ScheduleServiceError,
)
from time_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    """Outcome counts for one sweep of due schedules."""

    due: int
    executed: int
    failed: int
    skipped: int

    @property
    def has_failures(self) -> bool:
        """Return True when at least one attempt failed."""
        return self.failed > 0


class SchedulePoller:
    """Fetch due schedules and execute them one at a time.

    Only one poller should run against a data store at a time; two pollers
    can pick up the same due schedule and dispatch it twice.
    """

    def __init__(
        self,
        service: ReportScheduleService,
        *,
        now_provider: Callable[[], datetime] | None = None,
        interval_seconds: float = 60,
    ) -> None:
        self._service = service
        self._now_provider = now_provider or utc_now
        self._interval_seconds = interval_seconds

    def sweep(self, cancel_event: threading.Event | None = None) -> SweepResult:
        """Execute every schedule due now and return the outcome counts.

        Attempt failures are logged and counted. A missing collaborator is
        raised because no schedule could ever succeed.
        """
        now = self._now_provider()
        due = self._service.list_due(now)
        executed = failed = skipped = 0
        for schedule in due:
            if cancel_event is not None and cancel_event.is_set():
                remaining = len(due) - executed - failed - skipped
                logger.info("Sweep stopped early; %d schedule(s) left.", remaining)
                break
            try:
                run = self._service.execute(schedule, cancel_event)
            except ReportCollaboratorNotConfiguredError:
                raise
            except ScheduleAttemptError as exc:
                failed += 1
                logger.warning("Report schedule %s attempt failed: %s", schedule.id, exc)
                continue
            except ScheduleServiceError as exc:
                failed += 1
                logger.error(
                    "Report schedule %s could not be executed (%s): %s",
                    schedule.id,
                    exc.code,
                    exc,
                )
                continue
            if run is None:
                skipped += 1
            else:
                executed += 1
        result = SweepResult(due=len(due), executed=executed, failed=failed, skipped=skipped)
        logger.info(
            "Sweep finished: due=%d executed=%d failed=%d skipped=%d.",
            result.due,
            result.executed,
            result.failed,
            result.skipped,
        )
        return result

    def run(self, stop_event: threading.Event, *, max_sweeps: int | None = None) -> int:
        """Sweep until the stop event is set, returning the number of sweeps."""
        sweeps = 0
        while not stop_event.is_set():
            self.sweep(stop_event)
            sweeps += 1
            if max_sweeps is not None and sweeps >= max_sweeps:
                break
            stop_event.wait(self._interval_seconds)
        return sweeps
