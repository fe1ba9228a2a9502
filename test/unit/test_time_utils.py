"""Unit tests for timezone conversion helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from time_utils import ensure_utc, is_valid_timezone, resolve_timezone, to_local


def test_resolve_timezone_defaults_to_utc() -> None:
    """Blank and UTC names resolve to the UTC singleton."""
    assert resolve_timezone(None) is timezone.utc
    assert resolve_timezone("  ") is timezone.utc
    assert resolve_timezone("utc") is timezone.utc


def test_resolve_timezone_unknown_falls_back(caplog) -> None:
    """Unknown zones fall back to UTC with a warning."""
    with caplog.at_level("WARNING"):
        zone = resolve_timezone("Mars/Olympus_Mons")

    assert zone is timezone.utc
    assert "Mars/Olympus_Mons" in caplog.text


def test_resolve_timezone_named_zone() -> None:
    """IANA names resolve to zoneinfo zones."""
    zone = resolve_timezone("America/New_York")
    assert getattr(zone, "key", None) == "America/New_York"


def test_is_valid_timezone() -> None:
    """Only resolvable names are valid."""
    assert is_valid_timezone("Europe/Berlin") is True
    assert is_valid_timezone("Nowhere/Special") is False
    assert is_valid_timezone("") is False
    assert is_valid_timezone(None) is False


def test_ensure_utc_treats_naive_as_utc() -> None:
    """Naive values are tagged UTC; aware values are converted."""
    naive = datetime(2025, 1, 15, 12, 0)
    offset = datetime(2025, 1, 15, 12, 0, tzinfo=timezone(timedelta(hours=2)))

    assert ensure_utc(naive) == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
    assert ensure_utc(offset).hour == 10
    assert ensure_utc(offset).tzinfo == timezone.utc


def test_to_local_converts_from_utc() -> None:
    """to_local converts aware UTC times to the requested zone."""
    utc_time = datetime(2025, 1, 15, 17, 0, 0, tzinfo=timezone.utc)
    converted = to_local(utc_time, resolve_timezone("America/New_York"))

    assert converted.hour == 12
    assert converted.tzinfo is not None
