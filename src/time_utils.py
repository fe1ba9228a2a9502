"""Time zone helpers for UTC storage and schedule-local calendar math."""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


def is_valid_timezone(timezone_name: str | None) -> bool:
    """Return True when the name resolves to an IANA zone."""
    if timezone_name is None or not timezone_name.strip():
        return False
    try:
        ZoneInfo(timezone_name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(timezone_name: str | None) -> tzinfo:
    """Return the zone for a name, falling back to UTC when it cannot be resolved."""
    name = (timezone_name or "").strip()
    if not name or name.upper() == DEFAULT_TIMEZONE:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; falling back to UTC.", name)
        return timezone.utc


def ensure_utc(value: datetime) -> datetime:
    """Convert a datetime to UTC, treating naive values as already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime, zone: tzinfo) -> datetime:
    """Convert a datetime into the given zone, treating naive values as UTC."""
    return ensure_utc(value).astimezone(zone)


def utc_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)
