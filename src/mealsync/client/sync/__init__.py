"""Snapshot sync engine.

Architecture:
    LocalStore watermark → AutoSyncScheduler → SyncOrchestrator → RemoteFileProvider

Components:
- **SyncOrchestrator**: State machine, runs download/merge/commit/upload cycles
- **AutoSyncScheduler**: Debounces local changes into sync calls
- **ConflictGateway**: Outstanding conflicts and the bulk resolve entry point
- **domain**: Pure merge and state transition rules
"""

from mealsync.client.sync.domain import (
    Conflict,
    ConflictDirection,
    InvalidTransitionError,
    MergeResult,
    merge,
    resolve,
)
from mealsync.client.sync.gateway import ConflictGateway
from mealsync.client.sync.orchestrator import SyncOrchestrator
from mealsync.client.sync.scheduler import AutoSyncScheduler
from mealsync.client.sync.types import NotConnectedError, SyncError, SyncOutcome

__all__ = [
    # Engine
    "AutoSyncScheduler",
    "ConflictGateway",
    "SyncOrchestrator",
    # Domain
    "Conflict",
    "ConflictDirection",
    "InvalidTransitionError",
    "MergeResult",
    "merge",
    "resolve",
    # Types
    "NotConnectedError",
    "SyncError",
    "SyncOutcome",
]
