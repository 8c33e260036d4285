"""Sync state machine.

States:
    OFFLINE -> IDLE <-> SYNCING -> SYNCED
                               -> ERROR
    any connected state -> AWAITING_RECONNECT -> IDLE

SYNCED and ERROR go back to IDLE on the next local change. All state
transitions are validated.
"""

from __future__ import annotations

from mealsync.core.types import SyncState

# Valid state transitions
VALID_TRANSITIONS: dict[SyncState, set[SyncState]] = {
    SyncState.OFFLINE: {SyncState.IDLE, SyncState.AWAITING_RECONNECT},
    SyncState.IDLE: {
        SyncState.SYNCING,
        SyncState.OFFLINE,
        SyncState.AWAITING_RECONNECT,
    },
    SyncState.SYNCING: {
        SyncState.SYNCED,
        SyncState.ERROR,
        SyncState.IDLE,  # Conflicts pending or superseded by a local edit
        SyncState.AWAITING_RECONNECT,
        SyncState.OFFLINE,
    },
    SyncState.SYNCED: {
        SyncState.IDLE,
        SyncState.SYNCING,
        SyncState.OFFLINE,
        SyncState.AWAITING_RECONNECT,
    },
    SyncState.ERROR: {
        SyncState.IDLE,
        SyncState.SYNCING,
        SyncState.OFFLINE,
        SyncState.AWAITING_RECONNECT,
    },
    SyncState.AWAITING_RECONNECT: {SyncState.IDLE, SyncState.OFFLINE},
}


class InvalidTransitionError(Exception):
    """Raised when attempting invalid state transition."""

    def __init__(self, old: SyncState, new: SyncState) -> None:
        super().__init__(f"Cannot transition from {old.name} to {new.name}")
        self.old = old
        self.new = new


def can_transition(old: SyncState, new: SyncState) -> bool:
    """Check whether old -> new is allowed (self-transitions always are)."""
    return old == new or new in VALID_TRANSITIONS[old]


def check_transition(old: SyncState, new: SyncState) -> bool:
    """Validate a transition.

    Returns:
        True if the state changes, False for a self-transition.

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    if old == new:
        return False
    if new not in VALID_TRANSITIONS[old]:
        raise InvalidTransitionError(old, new)
    return True
