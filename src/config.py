"""Configuration management for the report scheduler."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_REPO_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_CONFIG_PATH = _REPO_ROOT / "config" / "report_scheduler.yml"
_USER_CONFIG_PATHS = [
    Path("~/.config/report-scheduler/report_scheduler.yml").expanduser(),
    Path("/config/report_scheduler.yml"),
]
_USER_SECRETS_PATHS = [
    Path("~/.config/report-scheduler/secrets.yml").expanduser(),
    Path("/config/secrets.yml"),
]


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from disk, returning an empty mapping if missing."""
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def _yaml_settings_source(paths: list[Path]):
    """Create a Pydantic settings source for a list of YAML paths."""

    def source() -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for path in paths:
            _deep_merge(merged, _load_yaml(path))
        return merged

    return source


def _deep_merge(target: dict[str, Any], incoming: dict[str, Any]) -> None:
    """Merge nested mappings in place, letting incoming values win."""
    for key, value in incoming.items():
        existing = target.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            _deep_merge(existing, value)
        else:
            target[key] = value


def _set_nested_value(target: dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted-path value on a nested mapping, creating containers."""
    parts = path.split(".")
    cursor = target
    for key in parts[:-1]:
        node = cursor.get(key)
        if not isinstance(node, dict):
            node = {}
            cursor[key] = node
        cursor = node
    cursor[parts[-1]] = value


def _parse_env_value(raw: str, kind: str) -> Any:
    """Parse an environment value into the requested primitive type."""
    if kind == "int":
        return int(raw)
    if kind == "float":
        return float(raw)
    if kind == "bool":
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if kind == "json":
        return json.loads(raw)
    return raw


def _env_settings_source():
    """Create a settings source that maps environment variables to config keys."""
    mapping = {
        "DATABASE_URL": ("database.url", "str"),
        "DATABASE_ECHO": ("database.echo", "bool"),
        "LOG_LEVEL": ("log_level", "str"),
        "LOG_JSON": ("log_json", "bool"),
        "SCHEDULER_EXECUTION_OFFSET_SECONDS": ("scheduler.execution_offset_seconds", "int"),
        "SCHEDULER_COLLABORATOR_TIMEOUT": ("scheduler.collaborator_timeout_seconds", "float"),
        "SCHEDULER_POLL_INTERVAL": ("scheduler.poll_interval_seconds", "int"),
        "SCHEDULER_STRICT_TIMEZONES": ("scheduler.strict_timezones", "bool"),
        "SCHEDULER_COLLABORATOR_FACTORY": ("scheduler.collaborator_factory", "str"),
    }

    def source() -> dict[str, Any]:
        data: dict[str, Any] = {}
        for env_key, (path, kind) in mapping.items():
            raw = os.environ.get(env_key)
            if raw is None:
                continue
            _set_nested_value(data, path, _parse_env_value(raw, kind))
        return data

    return source


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite:///report_scheduler.db"
    echo: bool = False


class SchedulerConfig(BaseModel):
    """Schedule execution and polling configuration."""

    execution_offset_seconds: int = 60
    collaborator_timeout_seconds: float = 30.0
    poll_interval_seconds: int = 60
    default_run_page_size: int = 50
    max_run_page_size: int = 500
    strict_timezones: bool = False
    collaborator_factory: str | None = None

    @field_validator("execution_offset_seconds")
    @classmethod
    def validate_execution_offset(cls, value: int) -> int:
        """Ensure the post-execution offset moves strictly forward."""
        if value < 1:
            raise ValueError("scheduler.execution_offset_seconds must be >= 1.")
        return value

    @field_validator("collaborator_timeout_seconds")
    @classmethod
    def validate_collaborator_timeout(cls, value: float) -> float:
        """Ensure the collaborator timeout is non-negative."""
        if value < 0:
            raise ValueError("scheduler.collaborator_timeout_seconds must be >= 0.")
        return value

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, value: int) -> int:
        """Ensure the poll interval is positive."""
        if value < 1:
            raise ValueError("scheduler.poll_interval_seconds must be >= 1.")
        return value

    @field_validator("default_run_page_size", "max_run_page_size")
    @classmethod
    def validate_page_size(cls, value: int) -> int:
        """Ensure page sizes are positive."""
        if value < 1:
            raise ValueError("scheduler run page sizes must be >= 1.")
        return value

    @field_validator("collaborator_factory")
    @classmethod
    def validate_collaborator_factory(cls, value: str | None) -> str | None:
        """Ensure the collaborator factory uses module:attribute form."""
        if value is None or not value.strip():
            return None
        module_name, _, attribute = value.strip().partition(":")
        if not module_name or not attribute:
            raise ValueError("scheduler.collaborator_factory must be 'module:attribute'.")
        return value.strip()

    @model_validator(mode="after")
    def validate_page_bounds(self) -> "SchedulerConfig":
        """Ensure the default page size does not exceed the maximum."""
        if self.default_run_page_size > self.max_run_page_size:
            raise ValueError(
                "scheduler.default_run_page_size must be <= scheduler.max_run_page_size."
            )
        return self


class Settings(BaseSettings):
    """Application settings loaded from environment variables and YAML files."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Layer settings sources in descending order of precedence."""
        return (
            init_settings,
            _env_settings_source(),
            _yaml_settings_source(_USER_SECRETS_PATHS),
            _yaml_settings_source(_USER_CONFIG_PATHS),
            _yaml_settings_source([_DEFAULT_CONFIG_PATH]),
        )

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Database Configuration
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # Scheduler Configuration
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalize and validate the log level name."""
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log_level: {value}")
        return normalized


# Global settings instance
settings = Settings()
