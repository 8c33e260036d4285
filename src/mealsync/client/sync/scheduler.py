"""Debounced auto-sync scheduler.

Watches the local store watermark and triggers a sync after local changes
settle:
- First change seen while the synced watermark is unknown (just connected,
  file just selected, session renewed) syncs immediately.
- Every later increase restarts a delay timer. Only the trailing edge
  fires, so a burst of edits collapses into one sync.

Timers are generation-guarded: once cancel() returns, a timer that was
already running its callback will not trigger a sync.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from mealsync.client.store import LocalStore
from mealsync.client.sync.types import SyncOutcome
from mealsync.core.config import DEFAULT_DEBOUNCE_DELAY

logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    """Turns watermark changes into debounced sync calls."""

    def __init__(
        self,
        store: LocalStore,
        trigger: Callable[[], SyncOutcome | None],
        delay: float = DEFAULT_DEBOUNCE_DELAY,
        is_active: Callable[[], bool] | None = None,
        on_unsynced: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Store whose watermark is observed.
            trigger: Runs one sync cycle.
            delay: Quiet period in seconds before a sync fires.
            is_active: Returns False while syncing must not be scheduled.
            on_unsynced: Called when a change makes local data unsynced.
        """
        self._store = store
        self._trigger = trigger
        self._delay = delay
        self._is_active = is_active or (lambda: True)
        self._on_unsynced = on_unsynced

        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._synced_watermark: int | None = None
        self._first_sync_scheduled = False
        self._muted_thread: int | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def synced_watermark(self) -> int | None:
        """Watermark of the last committed sync, None when unknown."""
        return self._synced_watermark

    @property
    def is_pending(self) -> bool:
        """Whether a sync timer is armed."""
        return self._timer is not None

    def start(self) -> None:
        """Subscribe to watermark changes."""
        with self._lock:
            if self._unsubscribe is not None:
                return
            self._unsubscribe = self._store.on_watermark_change(self._on_watermark)
        logger.debug("Auto-sync scheduler started (delay %.1fs)", self._delay)

    def stop(self) -> None:
        """Unsubscribe and cancel any armed timer."""
        self.cancel()
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe:
            unsubscribe()

    def cancel(self) -> None:
        """Cancel the armed timer, if any."""
        with self._lock:
            self._cancel_locked()

    def reset(self) -> None:
        """Forget the synced watermark so the next change syncs immediately."""
        with self._lock:
            self._cancel_locked()
            self._synced_watermark = None
            self._first_sync_scheduled = False

    def mark_synced(self, watermark: int) -> None:
        """Record the watermark that was just committed and uploaded."""
        with self._lock:
            self._synced_watermark = watermark

    def poke(self) -> None:
        """Evaluate the current watermark as if it had just changed.

        No-op until start() has been called.
        """
        self._on_watermark(self._store.watermark())

    @contextmanager
    def muted(self) -> Iterator[None]:
        """Ignore watermark changes made by the current thread.

        Wraps the sync cycle's own store writes so that committing a merge
        does not schedule another sync.
        """
        with self._lock:
            self._muted_thread = threading.get_ident()
        try:
            yield
        finally:
            with self._lock:
                self._muted_thread = None

    # === Internals ===

    def _cancel_locked(self) -> None:
        self._generation += 1
        if self._timer:
            self._timer.cancel()
            self._timer = None

    def _schedule_locked(self, delay: float) -> None:
        self._cancel_locked()
        generation = self._generation
        self._timer = threading.Timer(delay, self._fire, args=(generation,))
        self._timer.daemon = True
        self._timer.start()

    def _on_watermark(self, watermark: int) -> None:
        notify_unsynced = False
        with self._lock:
            if self._unsubscribe is None or self._muted_thread == threading.get_ident():
                return
            if not self._is_active():
                return

            if self._synced_watermark is None:
                if not self._first_sync_scheduled:
                    logger.debug("First watermark %s, syncing now", watermark)
                    self._first_sync_scheduled = True
                    self._schedule_locked(0)
                else:
                    self._schedule_locked(self._delay)
            elif watermark > self._synced_watermark:
                notify_unsynced = True
                self._schedule_locked(self._delay)

        if notify_unsynced and self._on_unsynced:
            self._on_unsynced()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            if not self._is_active():
                return
            synced = self._synced_watermark
            if synced is not None and self._store.watermark() <= synced:
                logger.debug("Nothing new since watermark %s, skipping sync", synced)
                return

        try:
            outcome = self._trigger()
        except Exception:
            logger.exception("Scheduled sync failed")
            return

        if outcome is SyncOutcome.IN_PROGRESS:
            # Another cycle holds the guard; try again after it settles
            with self._lock:
                if generation == self._generation:
                    self._schedule_locked(self._delay)
