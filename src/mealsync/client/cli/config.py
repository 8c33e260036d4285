"""Configuration utilities for the mealsync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from mealsync.core.config import DEFAULT_DEBOUNCE_DELAY, DEFAULT_GRAPH_URL, ProviderConfig, SyncSettings

STATE_DB_NAME = "state.db"


def get_config_dir() -> Path:
    """Get the configuration directory for mealsync.

    Returns:
        Path to ~/.mealsync or equivalent.
    """
    return Path.home() / ".mealsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_state_db_path(config: dict[str, Any] | None = None) -> Path:
    """Get the local store database path.

    Returns:
        Configured state_db, or state.db in the config directory.
    """
    config = load_config() if config is None else config
    if config.get("state_db"):
        return Path(config["state_db"]).expanduser()
    return get_config_dir() / STATE_DB_NAME


def get_provider_config(config: dict[str, Any] | None = None) -> ProviderConfig:
    """Build the provider configuration."""
    config = load_config() if config is None else config
    return ProviderConfig(graph_url=config.get("graph_url", DEFAULT_GRAPH_URL))


def get_sync_settings(config: dict[str, Any] | None = None) -> SyncSettings:
    """Build the sync settings."""
    config = load_config() if config is None else config
    return SyncSettings(
        debounce_delay=float(config.get("debounce_delay", DEFAULT_DEBOUNCE_DELAY)),
    )
