"""Shared configuration classes for mealsync.

This module defines configuration classes used by the provider adapters,
the sync engine and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_GRAPH_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_DEBOUNCE_DELAY = 15.0  # seconds
SNAPSHOT_SUFFIX = ".json.gz"  # double extension every snapshot file carries


@dataclass
class ProviderConfig:
    """Configuration for connecting to the cloud drive API.

    Attributes:
        graph_url: Base URL of the Microsoft Graph API.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    graph_url: str = DEFAULT_GRAPH_URL
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize API URL."""
        self.graph_url = self.graph_url.rstrip("/")


@dataclass
class SyncSettings:
    """Tunables for the sync orchestrator.

    Attributes:
        debounce_delay: Quiet period after the last local change before an
            automatic sync fires.
    """

    debounce_delay: float = DEFAULT_DEBOUNCE_DELAY

    def __post_init__(self) -> None:
        if self.debounce_delay < 0:
            raise ValueError("debounce_delay must not be negative")
