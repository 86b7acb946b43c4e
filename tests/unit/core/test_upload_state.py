"""Unit tests for upload lifecycle transitions."""

from __future__ import annotations

import pytest

from core.errors import TagLedgerError
from core.upload_state import UploadTracker, validate_transition


def test_tracker_follows_success_path() -> None:
    """A successful upload should end in the indexed terminal state."""
    tracker = UploadTracker()
    for state in (
        "remote_write_in_flight",
        "remote_write_succeeded",
        "indexing_in_flight",
        "indexed",
    ):
        tracker.advance(state)

    assert tracker.state == "indexed" and tracker.is_terminal


def test_tracker_rejects_indexing_before_remote_write() -> None:
    """Indexing must never start before the remote write succeeds."""
    tracker = UploadTracker()
    tracker.advance("remote_write_in_flight")

    with pytest.raises(TagLedgerError):
        tracker.advance("indexing_in_flight")


def test_remote_write_failed_is_terminal() -> None:
    """A failed remote write has no further transitions."""
    with pytest.raises(TagLedgerError):
        validate_transition("remote_write_failed", "remote_write_in_flight")


def test_pending_tracker_is_not_terminal() -> None:
    """A fresh tracker starts pending."""
    tracker = UploadTracker()

    assert tracker.state == "pending" and not tracker.is_terminal
