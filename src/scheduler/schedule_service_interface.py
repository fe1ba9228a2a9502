"""Report schedule service interface definitions for command and query boundaries."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime


class ScheduleServiceError(Exception):
    """Base exception for report schedule service failures."""

    def __init__(self, code: str, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize the error with a machine-readable code and details."""
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ScheduleValidationError(ScheduleServiceError):
    """Raised when schedule inputs fail validation."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a validation error with optional details."""
        super().__init__("validation_error", message, details)

    @property
    def reason(self) -> str | None:
        """Return the closed-set validation reason, when present."""
        value = self.details.get("reason")
        return str(value) if value is not None else None


class ScheduleNotFoundError(ScheduleServiceError):
    """Raised when a schedule does not resolve for the requesting owner."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a not-found error with optional details."""
        super().__init__("not_found", message, details)


class ScheduleRecurrenceError(ScheduleServiceError):
    """Raised when the next trigger instant cannot be computed."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a recurrence computation error with optional details."""
        super().__init__("unable_to_compute_next_run", message, details)


class ReportCollaboratorNotConfiguredError(ScheduleServiceError):
    """Raised when execution is requested without report collaborators."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a missing-collaborator error with optional details."""
        super().__init__("collaborator_not_configured", message, details)


class ScheduleAttemptError(ScheduleServiceError):
    """Base class for failures recorded on an execution run."""


class ReportGenerationError(ScheduleAttemptError):
    """Raised when the report generator fails or times out."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a generation failure with optional details."""
        super().__init__("generation_failed", message, details)


class ReportDispatchError(ScheduleAttemptError):
    """Raised when the report dispatcher fails or times out."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a dispatch failure with optional details."""
        super().__init__("dispatch_failed", message, details)


class ScheduleExecutionCanceledError(ScheduleAttemptError):
    """Raised when an in-flight attempt is canceled by the caller."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a canceled-attempt error with optional details."""
        super().__init__("execution_canceled", message, details)


class ScheduleRepositoryError(ScheduleServiceError):
    """Raised when the persistence layer fails."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize a repository failure with optional details."""
        super().__init__("repository_failure", message, details)


class ExecutionRunTransitionError(ScheduleServiceError):
    """Raised when an execution run state transition is invalid."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize an invalid state transition error with optional details."""
        super().__init__("invalid_state_transition", message, details)


@dataclass(frozen=True)
class ScheduleCreateRequest:
    """Command request to create a report schedule."""

    owner_id: uuid.UUID | None
    report_type: str
    agent_alias: str
    frequency: str
    time_of_day: str
    weekday: str | None = None
    timezone: str | None = None
    rrule: str | None = None
    priority: int = 0
    email: str | None = None
    phone_number: str | None = None
    channels: Iterable[str] | Mapping[str, bool] | None = None
    active: bool = True
    paused: bool = False


@dataclass(frozen=True)
class ScheduleUpdateRequest:
    """Command request to update a subset of schedule fields.

    ``None`` and blank strings leave a field unchanged. ``active`` and
    ``paused`` are applied whenever they are not ``None``, so an explicit
    ``False`` is honored.
    """

    report_type: str | None = None
    agent_alias: str | None = None
    frequency: str | None = None
    weekday: str | None = None
    time_of_day: str | None = None
    timezone: str | None = None
    rrule: str | None = None
    priority: int | None = None
    email: str | None = None
    phone_number: str | None = None
    channels: Iterable[str] | Mapping[str, bool] | None = None
    active: bool | None = None
    paused: bool | None = None


@dataclass(frozen=True)
class ExecutionRunListRequest:
    """Query request to list execution runs for an owner."""

    schedule_id: uuid.UUID | None = None
    status: str | None = None
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True)
class ScheduleView:
    """Read-only view of a report schedule."""

    id: uuid.UUID
    owner_id: uuid.UUID
    report_type: str
    agent_alias: str
    frequency: str
    weekday: str | None
    time_of_day: str
    timezone: str
    rrule: str | None
    priority: int
    email: str | None
    phone_number: str | None
    channels: tuple[str, ...]
    active: bool
    paused: bool
    next_run: datetime
    last_run: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ExecutionRunView:
    """Read-only view of an execution run."""

    id: uuid.UUID
    owner_id: uuid.UUID
    schedule_id: uuid.UUID
    status: str
    output: str | None
    error_message: str | None
    metadata: dict[str, object] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
