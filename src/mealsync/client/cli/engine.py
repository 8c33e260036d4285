"""Wiring of the sync engine for CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from mealsync.client.cli.config import (
    get_provider_config,
    get_state_db_path,
    get_sync_settings,
    load_config,
)
from mealsync.client.providers.base import RemoteFileProvider
from mealsync.client.providers.onedrive import OneDriveProvider
from mealsync.client.providers.tokens import KeyringTokenSource
from mealsync.client.store import LocalStore
from mealsync.client.sync.orchestrator import SyncOrchestrator
from mealsync.core.config import ProviderConfig


@dataclass
class Engine:
    """Objects one CLI command works with."""

    store: LocalStore
    tokens: KeyringTokenSource
    provider: RemoteFileProvider
    orchestrator: SyncOrchestrator


def create_token_source() -> KeyringTokenSource:
    return KeyringTokenSource()


def create_provider(tokens: KeyringTokenSource, config: ProviderConfig) -> RemoteFileProvider:
    return OneDriveProvider(tokens, config)


@contextmanager
def open_engine() -> Iterator[Engine]:
    """Open store, provider and orchestrator, closing them on exit."""
    config = load_config()
    store = LocalStore(get_state_db_path(config))
    tokens = create_token_source()
    provider = create_provider(tokens, get_provider_config(config))
    orchestrator = SyncOrchestrator(provider, store, settings=get_sync_settings(config))
    try:
        yield Engine(store=store, tokens=tokens, provider=provider, orchestrator=orchestrator)
    finally:
        orchestrator.close()
        close = getattr(provider, "close", None)
        if close:
            close()
        store.close()


def format_timestamp(ms: int | None) -> str:
    """Render epoch milliseconds for humans."""
    if ms is None:
        return "never"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")
