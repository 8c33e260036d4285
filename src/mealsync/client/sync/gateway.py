"""Conflict resolution gateway.

Holds the conflicts surfaced by the most recent sync cycle and accepts one
bulk decision for all of them. Per-record choices are not supported: the
direction applies to every outstanding conflict.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from mealsync.client.sync.domain.merge import Conflict, ConflictDirection
from mealsync.client.sync.types import ConflictsCallback, SyncError, SyncOutcome

logger = logging.getLogger(__name__)

ConflictKey = tuple[str, str]
Resolver = Callable[[ConflictDirection, frozenset[ConflictKey]], SyncOutcome]


class ConflictGateway:
    """Outstanding conflicts plus the single entry point to resolve them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._applying = threading.Lock()
        self._conflicts: list[Conflict] = []
        self._subscribers: list[ConflictsCallback] = []
        self._resolver: Resolver | None = None

    def bind(self, resolver: Resolver) -> None:
        """Set the function that re-runs the sync cycle with a decision."""
        self._resolver = resolver

    @property
    def conflicts(self) -> list[Conflict]:
        """Outstanding conflicts of the latest cycle."""
        with self._lock:
            return list(self._conflicts)

    @property
    def has_conflicts(self) -> bool:
        return bool(self._conflicts)

    @property
    def is_resolving(self) -> bool:
        """Whether a resolution is being applied right now."""
        return self._applying.locked()

    def outstanding_keys(self) -> frozenset[ConflictKey]:
        with self._lock:
            return frozenset(c.key for c in self._conflicts)

    def on_conflicts(self, callback: ConflictsCallback) -> Callable[[], None]:
        """Register a callback invoked with the new list whenever it changes.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, conflicts: list[Conflict]) -> None:
        """Replace the outstanding conflicts."""
        with self._lock:
            if conflicts == self._conflicts:
                return
            self._conflicts = list(conflicts)
            subscribers = list(self._subscribers)

        logger.info("%d conflict(s) outstanding", len(conflicts))
        for callback in subscribers:
            try:
                callback(list(conflicts))
            except Exception:
                logger.exception("Conflict subscriber failed")

    def clear(self) -> None:
        """Drop all outstanding conflicts."""
        self.publish([])

    def resolve(self, direction: ConflictDirection | str) -> SyncOutcome:
        """Resolve every outstanding conflict in one direction.

        Args:
            direction: "local" keeps this device's versions, "remote" keeps
                the cloud versions.

        Returns:
            NOTHING_TO_RESOLVE when there are no conflicts, IN_PROGRESS when a
            resolution is already being applied, otherwise the outcome of the
            re-run sync cycle.

        Raises:
            ValueError: If direction is not "local" or "remote".
        """
        direction = ConflictDirection(direction)
        keys = self.outstanding_keys()
        if not keys:
            logger.debug("No conflicts to resolve")
            return SyncOutcome.NOTHING_TO_RESOLVE
        if self._resolver is None:
            raise SyncError("Conflict gateway is not bound to an orchestrator")

        if not self._applying.acquire(blocking=False):
            logger.debug("Resolution already in progress")
            return SyncOutcome.IN_PROGRESS
        try:
            logger.info("Resolving %d conflict(s) keeping %s versions", len(keys), direction.value)
            return self._resolver(direction, keys)
        finally:
            self._applying.release()
