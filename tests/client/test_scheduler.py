"""Tests for the debounced auto-sync scheduler."""

from __future__ import annotations

import threading
import time

from mealsync.client.store import LocalStore
from mealsync.client.sync.scheduler import AutoSyncScheduler
from mealsync.client.sync.types import SyncOutcome


class Recorder:
    """Trigger double counting calls."""

    def __init__(self, outcome: SyncOutcome | None = SyncOutcome.SYNCED) -> None:
        self.calls = 0
        self.outcome = outcome
        self.called = threading.Event()

    def __call__(self) -> SyncOutcome | None:
        self.calls += 1
        self.called.set()
        return self.outcome


class TestAutoSyncScheduler:
    """Tests for AutoSyncScheduler."""

    def test_not_started_ignores_changes(self, store: LocalStore) -> None:
        """Nothing is scheduled before start()."""
        trigger = Recorder()
        scheduler = AutoSyncScheduler(store, trigger, delay=0.01)

        store.put_record("recipes", {"id": "r1"})
        scheduler.poke()

        assert not scheduler.is_pending
        assert trigger.calls == 0

    def test_first_change_syncs_immediately(self, store: LocalStore) -> None:
        """Unknown synced watermark: the first poke fires without delay."""
        trigger = Recorder()
        scheduler = AutoSyncScheduler(store, trigger, delay=10.0)
        scheduler.start()
        try:
            scheduler.poke()
            assert trigger.called.wait(timeout=2)
            assert trigger.calls == 1
        finally:
            scheduler.stop()

    def test_later_changes_debounced(self, store: LocalStore) -> None:
        """After a sync, a burst of edits fires once after the delay."""
        trigger = Recorder()
        unsynced: list[bool] = []
        scheduler = AutoSyncScheduler(
            store,
            trigger,
            delay=0.3,
            on_unsynced=lambda: unsynced.append(True),
        )
        scheduler.mark_synced(store.watermark())
        scheduler.start()
        try:
            for i in range(3):
                store.put_record("recipes", {"id": f"r{i}"})
            assert scheduler.is_pending
            assert trigger.calls == 0
            assert len(unsynced) == 3

            assert trigger.called.wait(timeout=2)
            time.sleep(0.4)
            assert trigger.calls == 1
        finally:
            scheduler.stop()

    def test_no_change_no_sync(self, store: LocalStore) -> None:
        """Watermark at or below the synced one does nothing."""
        trigger = Recorder()
        store.put_record("recipes", {"id": "r1"})
        scheduler = AutoSyncScheduler(store, trigger, delay=0.01)
        scheduler.mark_synced(store.watermark())
        scheduler.start()
        try:
            scheduler.poke()
            assert not scheduler.is_pending
        finally:
            scheduler.stop()

    def test_inactive_suppresses(self, store: LocalStore) -> None:
        """is_active=False blocks scheduling."""
        trigger = Recorder()
        scheduler = AutoSyncScheduler(store, trigger, delay=0.01, is_active=lambda: False)
        scheduler.start()
        try:
            store.put_record("recipes", {"id": "r1"})
            assert not scheduler.is_pending
        finally:
            scheduler.stop()

    def test_cancel_prevents_fire(self, store: LocalStore) -> None:
        """A cancelled timer never triggers."""
        trigger = Recorder()
        scheduler = AutoSyncScheduler(store, trigger, delay=0.1)
        scheduler.mark_synced(0)
        scheduler.start()
        try:
            store.put_record("recipes", {"id": "r1"})
            scheduler.cancel()
            assert not scheduler.is_pending
            time.sleep(0.25)
            assert trigger.calls == 0
        finally:
            scheduler.stop()

    def test_reset_makes_next_change_immediate(self, store: LocalStore) -> None:
        """reset() forgets the synced watermark."""
        trigger = Recorder()
        scheduler = AutoSyncScheduler(store, trigger, delay=10.0)
        scheduler.mark_synced(0)
        scheduler.start()
        try:
            scheduler.reset()
            assert scheduler.synced_watermark is None
            store.put_record("recipes", {"id": "r1"})
            assert trigger.called.wait(timeout=2)
        finally:
            scheduler.stop()

    def test_muted_ignores_own_writes(self, store: LocalStore) -> None:
        """Writes made inside muted() by this thread are not changes."""
        trigger = Recorder()
        scheduler = AutoSyncScheduler(store, trigger, delay=0.01)
        scheduler.mark_synced(0)
        scheduler.start()
        try:
            with scheduler.muted():
                store.put_record("recipes", {"id": "r1"})
            assert not scheduler.is_pending

            store.put_record("recipes", {"id": "r2"})
            assert scheduler.is_pending or trigger.called.wait(timeout=2)
        finally:
            scheduler.stop()

    def test_in_progress_rearms(self, store: LocalStore) -> None:
        """A busy orchestrator gets another attempt after the delay."""
        trigger = Recorder(outcome=SyncOutcome.IN_PROGRESS)
        scheduler = AutoSyncScheduler(store, trigger, delay=0.05)
        scheduler.mark_synced(0)
        scheduler.start()
        try:
            store.put_record("recipes", {"id": "r1"})
            deadline = time.monotonic() + 2
            while trigger.calls < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert trigger.calls >= 2
        finally:
            scheduler.stop()

    def test_trigger_exception_logged(self, store: LocalStore) -> None:
        """A raising trigger does not kill later scheduling."""
        calls: list[int] = []
        fired = threading.Event()

        def trigger() -> SyncOutcome:
            calls.append(1)
            fired.set()
            raise RuntimeError("boom")

        scheduler = AutoSyncScheduler(store, trigger, delay=0.01)
        scheduler.mark_synced(0)
        scheduler.start()
        try:
            store.put_record("recipes", {"id": "r1"})
            assert fired.wait(timeout=2)
            fired.clear()
            store.put_record("recipes", {"id": "r2"})
            assert fired.wait(timeout=2)
            assert len(calls) == 2
        finally:
            scheduler.stop()

    def test_stop_unsubscribes(self, store: LocalStore) -> None:
        trigger = Recorder()
        scheduler = AutoSyncScheduler(store, trigger, delay=0.01)
        scheduler.mark_synced(0)
        scheduler.start()
        scheduler.stop()

        store.put_record("recipes", {"id": "r1"})
        assert not scheduler.is_pending
