"""Report scheduler command-line interface implemented with Typer."""

from __future__ import annotations

import dataclasses
import json
import signal
import threading
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import typer

from config import settings
from scheduler.poller import SchedulePoller, SweepResult
from scheduler.report_collaborators import load_collaborators
from scheduler.schedule_service import ReportScheduleService
from scheduler.schedule_service_interface import ScheduleServiceError
from structured_logging import configure_logging

SUCCESS_EXIT_CODE = 0
ATTEMPT_FAILURE_EXIT_CODE = 1
SERVICE_ERROR_EXIT_CODE = 3

SERVICE_NAME = "report-scheduler"


@dataclass(frozen=True)
class CliConfig:
    """Global CLI runtime options."""

    as_json: bool


def _serialize(value: Any) -> Any:
    """Convert result objects to JSON-serializable structures."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if dataclasses.is_dataclass(value):
        return _serialize(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(key): _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize(item) for item in value]
    return str(value)


def _emit_output(result: Any, as_json: bool, rendered: str) -> None:
    """Render command output in the requested format."""
    if as_json:
        typer.echo(json.dumps(_serialize(result), sort_keys=True, separators=(",", ":")))
        return
    typer.echo(rendered)


def _emit_error(exc: ScheduleServiceError, as_json: bool) -> None:
    """Render a service error to stderr."""
    if as_json:
        typer.echo(json.dumps({"error": str(exc), "code": exc.code}), err=True)
        return
    typer.echo(f"error ({exc.code}): {exc}", err=True)


def _render_sweep(result: SweepResult) -> str:
    return (
        f"due={result.due} executed={result.executed} "
        f"failed={result.failed} skipped={result.skipped}"
    )


def _build_service() -> ReportScheduleService:
    """Build the schedule service from settings."""
    from database import get_session_factory

    scheduler_settings = settings.scheduler
    return ReportScheduleService(
        get_session_factory(),
        load_collaborators(scheduler_settings.collaborator_factory),
        execution_offset_seconds=scheduler_settings.execution_offset_seconds,
        collaborator_timeout_seconds=scheduler_settings.collaborator_timeout_seconds,
        default_run_page_size=scheduler_settings.default_run_page_size,
        max_run_page_size=scheduler_settings.max_run_page_size,
        strict_timezones=scheduler_settings.strict_timezones,
    )


def _build_poller(service: ReportScheduleService) -> SchedulePoller:
    return SchedulePoller(service, interval_seconds=settings.scheduler.poll_interval_seconds)


def _require_config(ctx: typer.Context) -> CliConfig:
    """Return required CLI config from Typer context."""
    config = ctx.obj
    if not isinstance(config, CliConfig):
        raise RuntimeError("CLI configuration not initialized")
    return config


app = typer.Typer(no_args_is_help=True, help="Report scheduler command-line interface")


@app.callback()
def main(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Configure logging and store global options for all commands."""
    configure_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        service=SERVICE_NAME,
    )
    ctx.obj = CliConfig(as_json=as_json)


@app.command("migrate")
def migrate(
    revision: str = typer.Option("head", help="Alembic revision to upgrade to"),
) -> None:
    """Apply database migrations."""
    from database import run_migrations

    run_migrations(revision)
    typer.echo(f"migrated to {revision}")


@app.command("sweep")
def sweep(ctx: typer.Context) -> None:
    """Execute every due schedule once."""
    cfg = _require_config(ctx)
    poller = _build_poller(_build_service())
    try:
        result = poller.sweep()
    except ScheduleServiceError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=SERVICE_ERROR_EXIT_CODE) from exc
    _emit_output(result, cfg.as_json, _render_sweep(result))
    if result.has_failures:
        raise typer.Exit(code=ATTEMPT_FAILURE_EXIT_CODE)


@app.command("poll")
def poll(
    ctx: typer.Context,
    max_sweeps: int | None = typer.Option(None, min=1, help="Stop after this many sweeps"),
) -> None:
    """Sweep due schedules until interrupted."""
    cfg = _require_config(ctx)
    poller = _build_poller(_build_service())
    stop_event = threading.Event()

    def _stop(_signum: int, _frame: object) -> None:
        stop_event.set()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)
    try:
        sweeps = poller.run(stop_event, max_sweeps=max_sweeps)
    except ScheduleServiceError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=SERVICE_ERROR_EXIT_CODE) from exc
    _emit_output({"sweeps": sweeps}, cfg.as_json, f"stopped after {sweeps} sweep(s)")


@app.command("due")
def due(ctx: typer.Context) -> None:
    """List schedules that are due now."""
    cfg = _require_config(ctx)
    service = _build_service()
    try:
        schedules = service.list_due()
    except ScheduleServiceError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=SERVICE_ERROR_EXIT_CODE) from exc
    lines = [
        f"{item.id} owner={item.owner_id} {item.frequency} next_run={item.next_run.isoformat()}"
        for item in schedules
    ]
    _emit_output(schedules, cfg.as_json, "\n".join(lines) if lines else "no schedules due")


if __name__ == "__main__":
    app()
