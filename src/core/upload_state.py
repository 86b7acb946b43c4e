"""Upload lifecycle states and transition validation.

Every upload moves from ``pending`` through the remote write and, on
success, through local indexing. Terminal states have no exits.
"""

from __future__ import annotations

from typing import Literal

from core.errors import TagLedgerError

UploadState = Literal[
    "pending",
    "remote_write_in_flight",
    "remote_write_failed",
    "remote_write_succeeded",
    "indexing_in_flight",
    "indexed",
    "indexing_failed",
]
ALLOWED_STATE_TRANSITIONS: dict[UploadState, tuple[UploadState, ...]] = {
    "pending": ("remote_write_in_flight",),
    "remote_write_in_flight": ("remote_write_failed", "remote_write_succeeded"),
    "remote_write_failed": (),
    "remote_write_succeeded": ("indexing_in_flight",),
    "indexing_in_flight": ("indexed", "indexing_failed"),
    "indexed": (),
    "indexing_failed": (),
}
TERMINAL_STATES: tuple[UploadState, ...] = (
    "remote_write_failed",
    "indexed",
    "indexing_failed",
)


def validate_transition(current_state: UploadState, next_state: UploadState) -> None:
    """Validate one upload lifecycle transition.

    Args:
        current_state: State the upload is in.
        next_state: Requested next state.

    Raises:
        TagLedgerError: If the transition is not allowed.
    """
    allowed_states = ALLOWED_STATE_TRANSITIONS[current_state]
    if next_state not in allowed_states:
        raise TagLedgerError(
            f"Invalid upload state transition {current_state} -> {next_state}. "
            f"Allowed next states: {', '.join(allowed_states) or 'none'}."
        )


class UploadTracker:
    """Mutable state holder for one in-flight upload."""

    def __init__(self) -> None:
        self._state: UploadState = "pending"

    @property
    def state(self) -> UploadState:
        """Return the current upload state."""
        return self._state

    def advance(self, next_state: UploadState) -> None:
        """Move to the next state after validating the transition."""
        validate_transition(self._state, next_state)
        self._state = next_state

    @property
    def is_terminal(self) -> bool:
        """Return whether the upload reached a terminal state."""
        return self._state in TERMINAL_STATES
