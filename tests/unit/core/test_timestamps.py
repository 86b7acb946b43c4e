"""Unit tests for timestamp conversion helpers."""

from __future__ import annotations

import pytest

from core.timestamps import iso_to_millis, now_millis


def test_iso_to_millis_accepts_zulu_suffix() -> None:
    """A trailing Z should be read as UTC."""
    assert iso_to_millis("1970-01-01T00:00:01Z") == 1000


def test_iso_to_millis_treats_naive_values_as_utc() -> None:
    """Naive datetimes should match their explicit-UTC form."""
    assert iso_to_millis("2024-01-31T12:00:00") == iso_to_millis("2024-01-31T12:00:00+00:00")


def test_iso_to_millis_applies_offset() -> None:
    """Offsets should shift the instant, not the wall clock."""
    assert iso_to_millis("1970-01-01T01:00:00+01:00") == 0


def test_iso_to_millis_keeps_millisecond_precision() -> None:
    """Fractional seconds should truncate to whole milliseconds."""
    assert iso_to_millis("1970-01-01T00:00:00.123999Z") == 123


def test_iso_to_millis_rejects_garbage() -> None:
    """Non-ISO strings should raise ValueError."""
    with pytest.raises(ValueError):
        iso_to_millis("yesterday")


def test_now_millis_is_epoch_milliseconds() -> None:
    """Current time should be in milliseconds after 2020."""
    assert now_millis() > iso_to_millis("2020-01-01T00:00:00Z")
