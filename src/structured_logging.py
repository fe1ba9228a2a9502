"""Stdout logging for the report scheduler.

Every record carries the service name and, while an execution attempt is in
progress, the schedule, owner and run it belongs to. JSON lines always include
those attempt keys (``null`` outside an attempt) so log queries can filter on
them without checking for presence first.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Iterator

SCHEDULE_ID = "schedule_id"
OWNER_ID = "owner_id"
RUN_ID = "run_id"
ATTEMPT_FIELDS = (SCHEDULE_ID, OWNER_ID, RUN_ID)

_ATTEMPT: ContextVar[dict[str, str]] = ContextVar("report_scheduler_attempt", default={})


def current_attempt() -> dict[str, str]:
    """Return the identifiers of the attempt in progress, if any."""
    return dict(_ATTEMPT.get())


@contextmanager
def attempt_context(*, schedule_id: object, owner_id: object) -> Iterator[None]:
    """Tag every log record emitted inside the block with the schedule and owner."""
    token = _ATTEMPT.set({SCHEDULE_ID: str(schedule_id), OWNER_ID: str(owner_id)})
    try:
        yield
    finally:
        _ATTEMPT.reset(token)


def bind_run_id(run_id: object) -> None:
    """Add the execution run id to the attempt in progress."""
    attempt = _ATTEMPT.get()
    if not attempt:
        raise RuntimeError("bind_run_id called outside attempt_context")
    _ATTEMPT.set({**attempt, RUN_ID: str(run_id)})


class AttemptFilter(logging.Filter):
    """Copy the service name and attempt identifiers onto each record."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self._service = service

    def filter(self, record: logging.LogRecord) -> bool:
        attempt = current_attempt()
        record.service = self._service
        for field in ATTEMPT_FIELDS:
            setattr(record, field, attempt.get(field))
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line with a fixed key set."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": getattr(record, "service", None),
            "message": record.getMessage(),
        }
        for field in ATTEMPT_FIELDS:
            payload[field] = getattr(record, field, None)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


class PlainFormatter(logging.Formatter):
    """Console lines; attempt identifiers are appended in brackets when bound."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        tags = []
        for field in ATTEMPT_FIELDS:
            value = getattr(record, field, None)
            if value:
                tags.append(f"{field.removesuffix('_id')}={value}")
        if not tags:
            return line
        return f"{line} [{' '.join(tags)}]"


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = True,
    service: str | None = None,
) -> None:
    """Route all logging to a single stdout handler, replacing existing handlers."""
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.addFilter(AttemptFilter(service))
    handler.setFormatter(JsonFormatter() if json_output else PlainFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())
