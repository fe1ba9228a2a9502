"""Report generation and dispatch collaborator contracts.

The scheduler only decides when a report fires. Producing the report and
delivering it belong to an injected capability that is either configured
with a generator and dispatcher, or absent.
"""

from __future__ import annotations

import importlib
import logging
import uuid
from dataclasses import dataclass
from typing import Protocol, Union, runtime_checkable

from models import ReportSchedule
from scheduler.schedule_service_interface import ScheduleView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchOptions:
    """Delivery options derived from a schedule's contact fields."""

    send_email: bool
    email_address: str | None
    send_whatsapp: bool
    phone_number: str | None
    agent_alias: str

    @classmethod
    def from_schedule(cls, schedule: ReportSchedule | ScheduleView) -> "DispatchOptions":
        """Build dispatch options from a schedule or schedule view."""
        email = (schedule.email or "").strip() or None
        phone_number = (schedule.phone_number or "").strip() or None
        return cls(
            send_email=email is not None,
            email_address=email,
            send_whatsapp=phone_number is not None,
            phone_number=phone_number,
            agent_alias=schedule.agent_alias,
        )


@runtime_checkable
class ReportGenerator(Protocol):
    """Produces the report summary for an owner."""

    def generate(self, owner_id: uuid.UUID) -> str:
        """Return the report summary, raising on failure."""
        ...


@runtime_checkable
class ReportDispatcher(Protocol):
    """Delivers a report summary over the requested channels."""

    def dispatch(self, summary: str, options: DispatchOptions) -> None:
        """Deliver the summary, raising on failure."""
        ...


@dataclass(frozen=True)
class ConfiguredReportCollaborators:
    """Collaborators able to generate and dispatch reports."""

    generator: ReportGenerator
    dispatcher: ReportDispatcher
    configured: bool = True


@dataclass(frozen=True)
class AbsentReportCollaborators:
    """Placeholder used when no report collaborators are available."""

    configured: bool = False


ReportCollaborators = Union[ConfiguredReportCollaborators, AbsentReportCollaborators]


def load_collaborators(factory_path: str | None) -> ReportCollaborators:
    """Resolve a ``module:attribute`` factory into report collaborators.

    The factory is called without arguments and may return configured
    collaborators, ``None`` or an ``(generator, dispatcher)`` pair.
    """
    if factory_path is None or not factory_path.strip():
        return AbsentReportCollaborators()
    module_name, _, attribute = factory_path.strip().partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Collaborator factory must be 'module:attribute': {factory_path}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attribute)
    result = factory()
    if result is None:
        logger.warning("Collaborator factory %s returned no collaborators.", factory_path)
        return AbsentReportCollaborators()
    if isinstance(result, (ConfiguredReportCollaborators, AbsentReportCollaborators)):
        return result
    if isinstance(result, tuple) and len(result) == 2:
        generator, dispatcher = result
        return ConfiguredReportCollaborators(generator=generator, dispatcher=dispatcher)
    raise TypeError(
        f"Collaborator factory {factory_path} returned unsupported value: {type(result).__name__}"
    )
