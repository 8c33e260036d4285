"""Core module - Shared codec, snapshot model, and config."""

from mealsync.core.compression import CodecError, compress, decompress
from mealsync.core.config import ProviderConfig, SyncSettings
from mealsync.core.snapshot import (
    COLLECTIONS,
    SNAPSHOT_VERSION,
    Record,
    SchemaError,
    Snapshot,
    deserialize,
    now_ms,
    serialize,
)
from mealsync.core.types import SyncState

__all__ = [
    # Compression
    "CodecError",
    "compress",
    "decompress",
    # Config
    "ProviderConfig",
    "SyncSettings",
    # Snapshot
    "COLLECTIONS",
    "SNAPSHOT_VERSION",
    "Record",
    "SchemaError",
    "Snapshot",
    "deserialize",
    "now_ms",
    "serialize",
    # Types
    "SyncState",
]
