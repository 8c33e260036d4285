"""Shared types for the sync engine.

This module provides:
- SyncError, NotConnectedError: Exception classes
- SyncOutcome: Result of one sync or resolution attempt
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from mealsync.core.types import SyncState

if TYPE_CHECKING:
    from mealsync.client.sync.domain.merge import Conflict


class SyncError(Exception):
    """Base exception for sync errors."""


class NotConnectedError(SyncError):
    """No remote file selected or no authenticated session."""


class SyncOutcome(str, Enum):
    """What a call to perform_sync() or resolve() ended with."""

    SYNCED = "synced"  # Merged snapshot committed and uploaded
    CONFLICTS = "conflicts"  # Halted, conflicts await resolution
    IN_PROGRESS = "in_progress"  # Another cycle holds the guard, no-op
    RECONNECT_REQUIRED = "reconnect_required"  # Session expired, not attempted
    ERROR = "error"  # Failed, local data and baseline untouched
    SUPERSEDED = "superseded"  # Local edit landed mid-cycle or reset, nothing committed
    NOTHING_TO_RESOLVE = "nothing_to_resolve"  # resolve() without conflicts, no-op


# Callback type aliases
StateCallback = Callable[[SyncState], None]
ConflictsCallback = Callable[[list["Conflict"]], None]
