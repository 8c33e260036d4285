"""Shared types for mealsync.

This module defines enums used by both the sync engine and the CLI.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """Sync state of the local cache relative to the remote snapshot.

    Exactly one state is held by the orchestrator at a time. It is derived
    state and never persisted.
    """

    OFFLINE = "offline"  # No provider session or no remote file selected
    IDLE = "idle"  # Connected, unsynced changes may exist
    SYNCING = "syncing"
    SYNCED = "synced"  # Local cache matches the last uploaded snapshot
    ERROR = "error"  # Last attempt failed, local data untouched
    AWAITING_RECONNECT = "awaiting_reconnect"  # Session expired
