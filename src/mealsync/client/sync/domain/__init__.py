"""Domain modules for sync business rules.

This package centralizes business logic for the sync system:
- merge: Three-way snapshot merge and bulk conflict resolution
- states: Sync state machine transitions

Architecture:
    domain/ contains pure business logic without external dependencies.
    Implementation details (store writes, provider calls) stay in the
    orchestrator.
"""

from mealsync.client.sync.domain.merge import (
    Conflict,
    ConflictDirection,
    MergeAction,
    MergeResult,
    classify,
    display_name,
    merge,
    resolve,
)
from mealsync.client.sync.domain.states import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    can_transition,
    check_transition,
)

__all__ = [
    # merge
    "Conflict",
    "ConflictDirection",
    "MergeAction",
    "MergeResult",
    "classify",
    "display_name",
    "merge",
    "resolve",
    # states
    "VALID_TRANSITIONS",
    "InvalidTransitionError",
    "can_transition",
    "check_transition",
]
