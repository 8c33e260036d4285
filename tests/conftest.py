"""Pytest fixtures shared by the mealsync test suite."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fakes import FakeProvider

from mealsync.client.notifications import Notification
from mealsync.client.store import LocalStore
from mealsync.client.sync.orchestrator import SyncOrchestrator
from mealsync.core.config import SyncSettings


@pytest.fixture
def store(tmp_path: Path) -> Generator[LocalStore, None, None]:
    """Local store backed by a temporary database."""
    s = LocalStore(tmp_path / "state.db")
    yield s
    s.close()


@pytest.fixture
def provider() -> FakeProvider:
    """In-memory remote provider."""
    return FakeProvider()


@pytest.fixture
def notifications() -> list[Notification]:
    """Collects notifications sent by the orchestrator."""
    return []


@pytest.fixture
def orchestrator(
    provider: FakeProvider,
    store: LocalStore,
    notifications: list[Notification],
) -> Generator[SyncOrchestrator, None, None]:
    """Orchestrator with a short debounce delay, not started."""
    o = SyncOrchestrator(
        provider,
        store,
        notifier=notifications.append,
        settings=SyncSettings(debounce_delay=0.05),
    )
    yield o
    o.close()
