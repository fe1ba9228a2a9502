"""Data models for the report scheduler."""

from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.orm import declarative_base, relationship

# SQLAlchemy base
Base = declarative_base()

# Scheduler enums
ScheduleFrequencyEnum = Enum(
    "daily",
    "weekly",
    "custom",
    name="report_schedule_frequency",
    native_enum=False,
)
ExecutionRunStatusEnum = Enum(
    "pending",
    "running",
    "completed",
    "failed",
    name="report_execution_run_status",
    native_enum=False,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportSchedule(Base):
    """Recurring report definition owned by a single user."""

    __tablename__ = "report_schedules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    report_type = Column(String(100), nullable=False)
    agent_alias = Column(String(100), nullable=False)
    frequency = Column(ScheduleFrequencyEnum, nullable=False)
    weekday = Column(String(20), nullable=True)
    time_of_day = Column(String(5), nullable=False)
    timezone = Column(String(100), nullable=False, default="UTC")
    rrule = Column(String(1000), nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    email = Column(String(320), nullable=True)
    phone_number = Column(String(50), nullable=True)
    channels = Column(JSON, nullable=False, default=list)
    active = Column(Boolean, nullable=False, default=True)
    paused = Column(Boolean, nullable=False, default=False)
    next_run = Column(DateTime(timezone=True), nullable=False, index=True)
    last_run = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)

    runs = relationship(
        "ReportExecutionRun",
        back_populates="schedule",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ReportExecutionRun(Base):
    """One dispatch attempt for a report schedule."""

    __tablename__ = "report_execution_runs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    schedule_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("report_schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(ExecutionRunStatusEnum, nullable=False, default="pending", index=True)
    output = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes.
    run_metadata = Column("metadata", JSON, nullable=False, default=dict)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)

    schedule = relationship("ReportSchedule", back_populates="runs")


_SCHEDULE_TIMESTAMPS = ("next_run", "last_run", "created_at", "updated_at")
_RUN_TIMESTAMPS = ("started_at", "completed_at", "created_at", "updated_at")


def _ensure_aware_timestamp(value: datetime | None) -> datetime | None:
    """Normalize timestamps to UTC when timezone info is missing."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _normalize_timestamps(target: Base, names: tuple[str, ...]) -> None:
    state = target.__dict__
    for name in names:
        # Only touch loaded attributes so expired ones are not refreshed here.
        if name in state:
            value = state[name]
            aware = _ensure_aware_timestamp(value)
            if aware is not value:
                # Bypass change tracking; the stored instant is unchanged.
                state[name] = aware


@event.listens_for(ReportSchedule, "load")
def _normalize_schedule_on_load(target: ReportSchedule, _context: object) -> None:
    """Ensure loaded schedule timestamps retain timezone awareness."""
    _normalize_timestamps(target, _SCHEDULE_TIMESTAMPS)


@event.listens_for(ReportSchedule, "refresh")
def _normalize_schedule_on_refresh(
    target: ReportSchedule, _context: object, _attrs: object
) -> None:
    """Ensure refreshed schedule timestamps retain timezone awareness."""
    _normalize_timestamps(target, _SCHEDULE_TIMESTAMPS)


@event.listens_for(ReportExecutionRun, "load")
def _normalize_run_on_load(target: ReportExecutionRun, _context: object) -> None:
    """Ensure loaded run timestamps retain timezone awareness."""
    _normalize_timestamps(target, _RUN_TIMESTAMPS)


@event.listens_for(ReportExecutionRun, "refresh")
def _normalize_run_on_refresh(
    target: ReportExecutionRun, _context: object, _attrs: object
) -> None:
    """Ensure refreshed run timestamps retain timezone awareness."""
    _normalize_timestamps(target, _RUN_TIMESTAMPS)
