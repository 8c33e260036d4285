"""Sync orchestrator for the local-first snapshot sync.

This module provides:
- SyncOrchestrator: Owns the sync state machine and runs sync cycles

One cycle:
1. Download, decompress and parse the remote snapshot (missing = empty)
2. Read the local snapshot and the baseline (missing = empty)
3. Three-way merge
4. Conflicts: persist nothing, publish them, wait for a decision
5. Otherwise commit locally, upload, and persist the new baseline

Every provider, codec and schema failure is converted here into a state
and a SyncOutcome. Only the NotConnectedError precondition escapes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from mealsync.client.notifications import (
    Notification,
    conflicts_notification,
    reconnect_notification,
    send_notification,
    sync_failed_notification,
)
from mealsync.client.providers.base import (
    AccountInfo,
    AuthError,
    NetworkError,
    NotFoundError,
    ProviderError,
    RemoteFileReference,
)
from mealsync.client.store import StaleSnapshotError
from mealsync.client.sync.domain.merge import (
    Conflict,
    ConflictDirection,
    merge,
    resolve,
)
from mealsync.client.sync.domain.states import check_transition
from mealsync.client.sync.gateway import ConflictGateway, ConflictKey
from mealsync.client.sync.scheduler import AutoSyncScheduler
from mealsync.client.sync.types import (
    ConflictsCallback,
    NotConnectedError,
    StateCallback,
    SyncOutcome,
)
from mealsync.core.compression import CodecError, compress, decompress
from mealsync.core.config import SyncSettings
from mealsync.core.snapshot import SchemaError, Snapshot, deserialize, now_ms, serialize
from mealsync.core.types import SyncState

if TYPE_CHECKING:
    from mealsync.client.providers.base import RemoteFileProvider
    from mealsync.client.store import LocalStore

logger = logging.getLogger(__name__)

Notifier = Callable[[Notification], object]
Resolution = tuple[ConflictDirection, frozenset[ConflictKey]]


class SyncOrchestrator:
    """Central coordinator between the local store and one remote file.

    Usage:
        orchestrator = SyncOrchestrator(provider, store)
        orchestrator.start()

        # ... local edits trigger debounced syncs automatically ...
        orchestrator.sync_now()
        if orchestrator.conflicts:
            orchestrator.resolve_conflicts("local")

        orchestrator.close()
    """

    def __init__(
        self,
        provider: RemoteFileProvider,
        store: LocalStore,
        notifier: Notifier | None = None,
        settings: SyncSettings | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            provider: Remote file provider (the only one this instance uses).
            store: Local durable store.
            notifier: Receives user-visible notifications.
            settings: Sync tunables.
        """
        self._provider = provider
        self._store = store
        self._notifier = notifier or send_notification
        self._settings = settings or SyncSettings()

        self._state = SyncState.OFFLINE
        self._lock = threading.RLock()

        # Held for the whole cycle, acquired before any provider call
        self._sync_guard = threading.Lock()

        # Bumped on file switch and reset; stale cycles must not commit
        self._session = 0

        self._current_file: RemoteFileReference | None = None
        self._last_synced_at: int | None = None
        self._last_error: str | None = None

        self._state_listeners: list[StateCallback] = []

        self._gateway = ConflictGateway()
        self._gateway.bind(self._apply_resolution)

        self._scheduler = AutoSyncScheduler(
            store,
            trigger=self._auto_sync,
            delay=self._settings.debounce_delay,
            is_active=self._auto_sync_active,
            on_unsynced=self._on_unsynced_change,
        )

    # === Read side ===

    @property
    def state(self) -> SyncState:
        """Current sync state."""
        return self._state

    @property
    def conflicts(self) -> list[Conflict]:
        """Conflicts awaiting resolve_conflicts()."""
        return self._gateway.conflicts

    @property
    def current_file(self) -> RemoteFileReference | None:
        """Selected remote file."""
        return self._current_file

    @property
    def last_synced_at(self) -> int | None:
        """Epoch ms of the last successful sync."""
        return self._last_synced_at

    @property
    def last_error(self) -> str | None:
        """Message of the last failed cycle, cleared on success."""
        return self._last_error

    @property
    def is_sync_in_progress(self) -> bool:
        return self._sync_guard.locked()

    @property
    def gateway(self) -> ConflictGateway:
        return self._gateway

    @property
    def scheduler(self) -> AutoSyncScheduler:
        return self._scheduler

    def account_info(self) -> AccountInfo | None:
        """Connected account, None when not authenticated."""
        if not self._provider.is_authenticated():
            return None
        return self._provider.get_account_info()

    def on_state_change(self, callback: StateCallback) -> Callable[[], None]:
        """Register a callback invoked with every new state.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            self._state_listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._state_listeners:
                    self._state_listeners.remove(callback)

        return unsubscribe

    def on_conflicts(self, callback: ConflictsCallback) -> Callable[[], None]:
        """Register a callback invoked whenever the outstanding conflicts change."""
        return self._gateway.on_conflicts(callback)

    # === State ===

    def _set_state(self, new_state: SyncState, session: int | None = None) -> bool:
        """Transition to new_state and notify listeners.

        Args:
            new_state: Target state.
            session: When given, the transition only happens if no file
                switch or reset occurred since that session started.

        Returns:
            True if the state changed.
        """
        with self._lock:
            if session is not None and session != self._session:
                return False
            old_state = self._state
            if not check_transition(old_state, new_state):
                return False
            self._state = new_state
            listeners = list(self._state_listeners)

        logger.debug("Sync state %s -> %s", old_state.value, new_state.value)
        for callback in listeners:
            try:
                callback(new_state)
            except Exception:
                logger.exception("State listener failed")
        return True

    def _notify(self, notification: Notification) -> None:
        try:
            self._notifier(notification)
        except Exception:
            logger.exception("Failed to deliver notification")

    # === Entry points ===

    def start(self, auto_sync: bool = True) -> SyncState:
        """Restore the persisted selection and pick the starting state.

        Args:
            auto_sync: Watch the store and sync automatically. The first sync
                runs right away on a timer thread.

        Returns:
            The starting state.
        """
        ref = self._store.get_remote_file()
        with self._lock:
            self._current_file = ref
            self._last_synced_at = self._store.get_last_sync_at()

        authenticated = self._provider.is_authenticated()
        if self._store.is_connected() and not authenticated:
            logger.info("Previous session is no longer valid, awaiting reconnect")
            self._set_state(SyncState.AWAITING_RECONNECT)
        elif ref is None or not authenticated:
            self._set_state(SyncState.OFFLINE)
        else:
            self._set_state(SyncState.IDLE)

        if auto_sync:
            self._scheduler.start()
            self._scheduler.reset()
            self._scheduler.poke()
        return self._state

    def connect(self) -> AccountInfo:
        """Attach to the account of the externally established session.

        Raises:
            NotConnectedError: If no authenticated session exists.
        """
        if not self._provider.is_authenticated():
            raise NotConnectedError("Not signed in. Sign in to your cloud account first.")
        account = self._provider.get_account_info()
        self._store.set_connected(True)
        logger.info("Connected as %s", account.email or account.name)

        if self._current_file is not None:
            self._set_state(SyncState.IDLE)
            self._scheduler.reset()
            self._scheduler.poke()
        return account

    def select_remote_file(
        self,
        ref: RemoteFileReference,
        *,
        is_new: bool | None = None,
    ) -> SyncOutcome:
        """Attach to a remote snapshot file and run the first sync.

        An existing file is authoritative: local data is cleared before the
        first sync adopts it. A new file keeps local data so the first sync
        uploads it.

        Args:
            ref: File picked from list_folder() or built by new_file_reference().
            is_new: Override for whether the file still has to be created.
                Defaults to ``not ref.exists``.

        Raises:
            NotConnectedError: If no authenticated session exists.
        """
        if not self._provider.is_authenticated():
            raise NotConnectedError("Not signed in. Connect before selecting a file.")
        if is_new is None:
            is_new = not ref.exists

        self._scheduler.reset()
        self._gateway.clear()
        with self._lock:
            self._session += 1
            # Keeps the scheduler inactive while local data is swapped out
            self._current_file = None

            if not is_new:
                logger.info("Adopting existing remote file %s, clearing local data", ref.name)
                self._store.clear_all()
            else:
                logger.info("Creating new remote file %s from local data", ref.name)
            self._store.clear_baseline()
            self._store.set_remote_file(ref)
            self._store.set_connected(True)
            self._current_file = ref
        self._set_state(SyncState.IDLE)

        outcome = self.perform_sync()
        if outcome is SyncOutcome.IN_PROGRESS:
            self._scheduler.poke()
        return outcome

    def sync_now(self) -> SyncOutcome:
        """Manual sync, bypassing the debounce timer."""
        return self.perform_sync()

    def perform_sync(self) -> SyncOutcome:
        """Run one sync cycle.

        Returns:
            The cycle outcome. IN_PROGRESS if another cycle is running.

        Raises:
            NotConnectedError: If no file is selected or no session exists.
        """
        return self._run_cycle(resolution=None)

    def resolve_conflicts(self, direction: ConflictDirection | str) -> SyncOutcome:
        """Resolve every outstanding conflict in one direction."""
        return self._gateway.resolve(direction)

    def dismiss_conflicts(self) -> None:
        """Drop outstanding conflicts without resolving them.

        Auto-sync resumes; the next cycle reports them again if they still
        exist.
        """
        self._gateway.clear()
        self._scheduler.reset()
        self._scheduler.poke()

    def disconnect_and_reset(self) -> None:
        """Forget the remote file and wipe local data."""
        self._scheduler.reset()
        with self._lock:
            self._session += 1
            self._current_file = None
            self._last_synced_at = None
            self._last_error = None
            self._store.clear_all()
            self._store.clear_sync_metadata()
        self._gateway.clear()
        self._set_state(SyncState.OFFLINE)
        logger.info("Disconnected and reset local data")

    def on_reauthenticated(self) -> None:
        """Signal from the authentication collaborator that a session exists."""
        if self._state is not SyncState.AWAITING_RECONNECT:
            return
        if not self._provider.is_authenticated():
            logger.warning("Reauthentication reported but provider has no session")
            return

        self._store.set_connected(True)
        if self._current_file is None:
            self._set_state(SyncState.OFFLINE)
            return
        self._set_state(SyncState.IDLE)
        self._scheduler.reset()
        self._scheduler.poke()

    def close(self) -> None:
        """Stop automatic syncing."""
        self._scheduler.stop()

    # === Scheduler hooks ===

    def _auto_sync_active(self) -> bool:
        return (
            self._current_file is not None
            and self._state not in (SyncState.OFFLINE, SyncState.AWAITING_RECONNECT)
            and not self._gateway.has_conflicts
        )

    def _on_unsynced_change(self) -> None:
        if self._state in (SyncState.SYNCED, SyncState.ERROR):
            self._set_state(SyncState.IDLE)

    def _auto_sync(self) -> SyncOutcome | None:
        try:
            return self.perform_sync()
        except NotConnectedError as e:
            logger.debug("Skipping scheduled sync: %s", e)
            return None

    def _apply_resolution(
        self,
        direction: ConflictDirection,
        keys: frozenset[ConflictKey],
    ) -> SyncOutcome:
        return self._run_cycle(resolution=(direction, keys))

    # === Cycle ===

    def _run_cycle(self, resolution: Resolution | None) -> SyncOutcome:
        if self._state is SyncState.AWAITING_RECONNECT:
            logger.debug("Sync skipped, awaiting reconnect")
            return SyncOutcome.RECONNECT_REQUIRED

        ref = self._current_file
        if ref is None:
            raise NotConnectedError("No remote file selected")
        if not self._provider.is_authenticated():
            raise NotConnectedError("Not signed in")

        if not self._sync_guard.acquire(blocking=False):
            logger.debug("Sync already in progress")
            return SyncOutcome.IN_PROGRESS

        try:
            session = self._session
            if self._state is SyncState.OFFLINE:
                self._set_state(SyncState.IDLE, session)
            self._set_state(SyncState.SYNCING, session)
            return self._sync_cycle(ref, resolution, session)
        finally:
            self._sync_guard.release()

    def _sync_cycle(
        self,
        ref: RemoteFileReference,
        resolution: Resolution | None,
        session: int,
    ) -> SyncOutcome:
        try:
            remote = self._download(ref)
            local = self._store.get_snapshot()
            base = self._store.get_baseline() or Snapshot.empty(last_modified=0)

            result = merge(base, local, remote)
            logger.debug(
                "Merged %d records with %d conflict(s)",
                result.merged.record_count(),
                len(result.conflicts),
            )

            if result.conflicts:
                unseen = {c.key for c in result.conflicts} - (resolution[1] if resolution else set())
                if resolution is None or unseen:
                    return self._halt_on_conflicts(result.conflicts, session)
                merged = resolve(result, resolution[0])
            else:
                merged = result.merged

            return self._commit(ref, merged, local.last_modified, session)

        except AuthError as e:
            # SessionExpiredError included: no retry until on_reauthenticated()
            logger.warning("Sync stopped, session expired: %s", e)
            self._scheduler.cancel()
            if self._set_state(SyncState.AWAITING_RECONNECT, session):
                self._notify(reconnect_notification())
            return SyncOutcome.RECONNECT_REQUIRED
        except (NetworkError, ProviderError, SchemaError, CodecError) as e:
            logger.warning("Sync failed: %s", e)
            return self._fail(str(e), session)
        except Exception as e:
            logger.exception("Unexpected error during sync")
            return self._fail(f"Unexpected error: {e}", session)

    def _download(self, ref: RemoteFileReference) -> Snapshot:
        try:
            blob = self._provider.download(ref)
        except NotFoundError:
            logger.info("Remote file %s does not exist yet, starting empty", ref.name)
            return Snapshot.empty(last_modified=0)
        return deserialize(decompress(blob))

    def _halt_on_conflicts(self, conflicts: list[Conflict], session: int) -> SyncOutcome:
        logger.info("Sync halted on %d conflict(s)", len(conflicts))
        with self._lock:
            if session != self._session:
                return SyncOutcome.SUPERSEDED
        self._gateway.publish(conflicts)
        self._notify(conflicts_notification(conflicts))
        self._set_state(SyncState.IDLE, session)
        return SyncOutcome.CONFLICTS

    def _commit(
        self,
        ref: RemoteFileReference,
        merged: Snapshot,
        expected_watermark: int,
        session: int,
    ) -> SyncOutcome:
        # Session checks and the writes they guard share self._lock with
        # disconnect_and_reset() and select_remote_file()
        try:
            with self._lock:
                if session != self._session:
                    logger.info("Selection changed during sync, discarding result")
                    return SyncOutcome.SUPERSEDED
                with self._scheduler.muted():
                    committed = self._store.replace_snapshot(
                        merged,
                        expected_watermark=expected_watermark,
                    )
        except StaleSnapshotError as e:
            logger.info("%s, deferring to the next sync", e)
            self._set_state(SyncState.IDLE, session)
            return SyncOutcome.SUPERSEDED

        blob = compress(serialize(merged))
        uploaded = self._provider.upload(ref, blob)

        synced_at = now_ms()
        with self._lock:
            if session != self._session:
                logger.info("Selection changed during upload, discarding result")
                return SyncOutcome.SUPERSEDED
            self._store.set_baseline(merged)
            self._store.set_remote_file(uploaded)
            self._store.set_last_sync_at(synced_at)
            self._current_file = uploaded
            self._last_synced_at = synced_at
            self._last_error = None

        self._gateway.clear()
        self._scheduler.mark_synced(committed)
        self._set_state(SyncState.SYNCED, session)
        logger.info(
            "Synced %s: %d records, %d bytes",
            uploaded.name,
            merged.record_count(),
            len(blob),
        )
        return SyncOutcome.SYNCED

    def _fail(self, message: str, session: int) -> SyncOutcome:
        with self._lock:
            if session == self._session:
                self._last_error = message
        if self._set_state(SyncState.ERROR, session):
            self._notify(sync_failed_notification(message))
        return SyncOutcome.ERROR
