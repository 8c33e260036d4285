"""Tests for the conflict resolution gateway."""

from __future__ import annotations

import threading

import pytest

from mealsync.client.sync.domain import Conflict, ConflictDirection
from mealsync.client.sync.gateway import ConflictGateway
from mealsync.client.sync.types import SyncError, SyncOutcome


def make_conflict(record_id: str = "I1", kind: str = "ingredients") -> Conflict:
    """Create a Conflict for testing."""
    return Conflict(
        id=record_id,
        kind=kind,
        display_name=record_id,
        local_modified=200,
        remote_modified=180,
    )


class TestConflictGateway:
    """Tests for ConflictGateway."""

    def test_publish_and_read(self) -> None:
        gateway = ConflictGateway()
        conflicts = [make_conflict("I1"), make_conflict("R1", "recipes")]

        gateway.publish(conflicts)

        assert gateway.conflicts == conflicts
        assert gateway.has_conflicts
        assert gateway.outstanding_keys() == {("ingredients", "I1"), ("recipes", "R1")}

    def test_subscribers_only_on_change(self) -> None:
        """Publishing the same list twice notifies once."""
        gateway = ConflictGateway()
        seen: list[list[Conflict]] = []
        gateway.on_conflicts(seen.append)

        gateway.publish([make_conflict()])
        gateway.publish([make_conflict()])
        gateway.clear()

        assert seen == [[make_conflict()], []]

    def test_failing_subscriber(self) -> None:
        gateway = ConflictGateway()
        seen: list[list[Conflict]] = []

        def broken(_: list[Conflict]) -> None:
            raise RuntimeError("boom")

        gateway.on_conflicts(broken)
        unsubscribe = gateway.on_conflicts(seen.append)
        gateway.publish([make_conflict()])
        unsubscribe()
        gateway.clear()

        assert seen == [[make_conflict()]]

    def test_resolve_without_conflicts(self) -> None:
        """Nothing outstanding: no-op, resolver not called."""
        gateway = ConflictGateway()
        calls: list[ConflictDirection] = []
        gateway.bind(lambda direction, keys: calls.append(direction) or SyncOutcome.SYNCED)

        assert gateway.resolve("local") is SyncOutcome.NOTHING_TO_RESOLVE
        assert calls == []

    def test_resolve_passes_keys(self) -> None:
        """The resolver receives the direction and the outstanding keys."""
        gateway = ConflictGateway()
        received: list[tuple[ConflictDirection, frozenset]] = []

        def resolver(direction: ConflictDirection, keys: frozenset) -> SyncOutcome:
            received.append((direction, keys))
            return SyncOutcome.SYNCED

        gateway.bind(resolver)
        gateway.publish([make_conflict()])

        assert gateway.resolve("remote") is SyncOutcome.SYNCED
        assert received == [(ConflictDirection.REMOTE, frozenset({("ingredients", "I1")}))]

    def test_resolve_unbound(self) -> None:
        gateway = ConflictGateway()
        gateway.publish([make_conflict()])
        with pytest.raises(SyncError):
            gateway.resolve("local")

    def test_resolve_invalid_direction(self) -> None:
        gateway = ConflictGateway()
        gateway.publish([make_conflict()])
        with pytest.raises(ValueError):
            gateway.resolve("sideways")

    def test_resolve_while_resolving(self) -> None:
        """A second resolve during the first returns IN_PROGRESS."""
        gateway = ConflictGateway()
        entered = threading.Event()
        release = threading.Event()

        def slow(direction: ConflictDirection, keys: frozenset) -> SyncOutcome:
            entered.set()
            release.wait(timeout=5)
            return SyncOutcome.SYNCED

        gateway.bind(slow)
        gateway.publish([make_conflict()])
        results: list[SyncOutcome] = []
        worker = threading.Thread(target=lambda: results.append(gateway.resolve("local")))
        worker.start()
        assert entered.wait(timeout=5)

        assert gateway.is_resolving
        assert gateway.resolve("local") is SyncOutcome.IN_PROGRESS

        release.set()
        worker.join(timeout=5)
        assert results == [SyncOutcome.SYNCED]
        assert not gateway.is_resolving
