"""Local durable store for the sync client.

This module provides:
- LocalStore: SQLite-backed record store with a change watermark
- StaleSnapshotError: Raised when a bulk replace races a local edit

Architecture:
    Every record lives in one row of the ``records`` table, keyed by
    collection and id, with its full JSON document in ``data``. Deletes are
    soft: the record stays with ``isDeleted`` set so the deletion syncs.

    The watermark is the snapshot ``lastModified``. Every local mutation
    stamps the record with ``max(now, watermark + 1)`` so the watermark
    strictly increases and observers can tell that unsynced changes exist.
    Bulk replaces set it to the replaced snapshot's ``lastModified``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from mealsync.client.providers.base import RemoteFileReference
from mealsync.core.snapshot import (
    COLLECTIONS,
    Record,
    Snapshot,
    deserialize,
    now_ms,
    serialize,
)

logger = logging.getLogger(__name__)

WatermarkCallback = Callable[[int], None]

# sync_state keys
WATERMARK_KEY = "watermark"
BASELINE_KEY = "baseline"
REMOTE_FILE_KEY = "remote_file"
CONNECTED_KEY = "connected"
LAST_SYNC_AT_KEY = "last_sync_at"


class StaleSnapshotError(Exception):
    """Raised when replace_snapshot finds the watermark moved underneath it."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Local data changed during sync (watermark {actual}, expected {expected})"
        )
        self.expected = expected
        self.actual = actual


class LocalStore:
    """SQLite-based durable store for synced collections.

    Thread-safe: all database access goes through one connection guarded by
    an RLock. Watermark listeners are called after the lock is released.
    """

    def __init__(self, db_path: Path) -> None:
        """Open (or create) the store database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._listeners: list[WatermarkCallback] = []

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode, explicit transactions
        )
        self._conn.row_factory = sqlite3.Row

        # WAL lets the CLI read while another process writes
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()
        self._watermark = self._read_watermark()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS records (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                position INTEGER NOT NULL,
                data TEXT NOT NULL,
                updated_at INTEGER NOT NULL,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (collection, id)
            );

            -- Key-value sync metadata
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements in one IMMEDIATE transaction (caller holds lock)."""
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    def _read_watermark(self) -> int:
        row = self._conn.execute(
            "SELECT value FROM sync_state WHERE key = ?",
            (WATERMARK_KEY,),
        ).fetchone()
        return int(row["value"]) if row and row["value"] else 0

    def _write_watermark(self, conn: sqlite3.Connection, value: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
            (WATERMARK_KEY, str(value)),
        )

    # === Watermark ===

    def watermark(self) -> int:
        """Current lastModified of the local data (epoch ms)."""
        return self._watermark

    def on_watermark_change(self, callback: WatermarkCallback) -> Callable[[], None]:
        """Register a callback invoked with the new watermark on every change.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, watermark: int) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(watermark)
            except Exception:
                logger.exception("Watermark listener failed")

    def refresh(self) -> int:
        """Re-read the persisted watermark.

        Another process (e.g. a second CLI invocation) may have written to
        the database. Listeners are notified when the value changed.

        Returns:
            The current watermark.
        """
        with self._lock:
            persisted = self._read_watermark()
            changed = persisted != self._watermark
            self._watermark = persisted
        if changed:
            logger.debug("Watermark changed externally to %s", persisted)
            self._notify(persisted)
        return persisted

    # === Snapshot operations ===

    def get_snapshot(self) -> Snapshot:
        """Read every collection as one snapshot."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT collection, data FROM records ORDER BY collection, position"
            ).fetchall()
            watermark = self._read_watermark()

        collections: dict[str, list[Record]] = {name: [] for name in COLLECTIONS}
        for row in rows:
            collections.setdefault(row["collection"], []).append(json.loads(row["data"]))
        return Snapshot(collections=collections, last_modified=watermark)

    def replace_snapshot(
        self,
        snapshot: Snapshot,
        *,
        expected_watermark: int | None = None,
    ) -> int:
        """Atomically replace every collection with the snapshot content.

        Args:
            snapshot: New content. Its lastModified becomes the watermark.
            expected_watermark: When given, the replace only happens if the
                persisted watermark still equals this value.

        Returns:
            The new watermark.

        Raises:
            StaleSnapshotError: If expected_watermark no longer matches.
        """
        with self._lock:
            with self._transaction() as conn:
                current = self._read_watermark()
                if expected_watermark is not None and current != expected_watermark:
                    raise StaleSnapshotError(expected_watermark, current)

                conn.execute("DELETE FROM records")
                conn.executemany(
                    """
                    INSERT INTO records (
                        collection, id, position, data, updated_at, is_deleted
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            name,
                            record["id"],
                            position,
                            json.dumps(record),
                            record["updatedAt"],
                            int(bool(record.get("isDeleted", False))),
                        )
                        for name, records in snapshot.collections.items()
                        for position, record in enumerate(records)
                    ],
                )
                self._write_watermark(conn, snapshot.last_modified)
            self._watermark = snapshot.last_modified
        logger.debug(
            "Replaced local data: %d records, watermark %s",
            snapshot.record_count(),
            snapshot.last_modified,
        )
        self._notify(snapshot.last_modified)
        return snapshot.last_modified

    def clear_all(self) -> None:
        """Delete every record and reset the watermark."""
        with self._lock:
            with self._transaction() as conn:
                conn.execute("DELETE FROM records")
                self._write_watermark(conn, 0)
            self._watermark = 0
        logger.info("Cleared local data")
        self._notify(0)

    # === Record operations ===

    def put_record(self, collection: str, record: Record) -> Record:
        """Create or update a record.

        The record is stamped with a fresh updatedAt. A missing id is
        generated.

        Args:
            collection: Collection wire name.
            record: Record fields.

        Returns:
            The stored record.
        """
        self._check_collection(collection)
        stored = dict(record)
        stored.setdefault("id", uuid.uuid4().hex)
        stored.setdefault("isDeleted", False)

        with self._lock:
            with self._transaction() as conn:
                watermark = self._stamp(stored)
                row = conn.execute(
                    "SELECT position FROM records WHERE collection = ? AND id = ?",
                    (collection, stored["id"]),
                ).fetchone()
                if row is None:
                    position = conn.execute(
                        "SELECT COALESCE(MAX(position), -1) + 1 FROM records "
                        "WHERE collection = ?",
                        (collection,),
                    ).fetchone()[0]
                else:
                    position = row["position"]
                self._write_record(conn, collection, stored, position)
                self._write_watermark(conn, watermark)
            self._watermark = watermark
        self._notify(watermark)
        return stored

    def delete_record(self, collection: str, record_id: str) -> Record | None:
        """Soft-delete a record.

        Returns:
            The tombstoned record, or None if no such record exists.
        """
        self._check_collection(collection)
        with self._lock:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT position, data FROM records WHERE collection = ? AND id = ?",
                    (collection, record_id),
                ).fetchone()
                if row is None:
                    return None
                stored = json.loads(row["data"])
                stored["isDeleted"] = True
                watermark = self._stamp(stored)
                self._write_record(conn, collection, stored, row["position"])
                self._write_watermark(conn, watermark)
            self._watermark = watermark
        self._notify(watermark)
        return stored

    def get_record(
        self,
        collection: str,
        record_id: str,
        include_deleted: bool = False,
    ) -> Record | None:
        """Get a record by id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT data, is_deleted FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
        if row is None or (row["is_deleted"] and not include_deleted):
            return None
        return json.loads(row["data"])

    def list_records(self, collection: str, include_deleted: bool = False) -> list[Record]:
        """List records of a collection in stored order."""
        query = "SELECT data FROM records WHERE collection = ?"
        if not include_deleted:
            query += " AND is_deleted = 0"
        with self._lock:
            rows = self._conn.execute(query + " ORDER BY position", (collection,)).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def _stamp(self, record: Record) -> int:
        """Set updatedAt strictly above the persisted watermark (caller holds lock)."""
        updated_at = max(now_ms(), self._read_watermark() + 1)
        record["updatedAt"] = updated_at
        return updated_at

    def _write_record(
        self,
        conn: sqlite3.Connection,
        collection: str,
        record: Record,
        position: int,
    ) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO records (
                collection, id, position, data, updated_at, is_deleted
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                collection,
                record["id"],
                position,
                json.dumps(record),
                record["updatedAt"],
                int(bool(record.get("isDeleted", False))),
            ),
        )

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(
                f"Unknown collection '{collection}', expected one of {', '.join(COLLECTIONS)}"
            )

    # === Sync state ===

    def get_state(self, key: str) -> str | None:
        """Get a sync state value."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a sync state value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def delete_state(self, key: str) -> None:
        """Remove a sync state value."""
        with self._lock:
            self._conn.execute("DELETE FROM sync_state WHERE key = ?", (key,))

    def get_baseline(self) -> Snapshot | None:
        """Get the snapshot persisted after the last successful sync."""
        value = self.get_state(BASELINE_KEY)
        return deserialize(value) if value else None

    def set_baseline(self, snapshot: Snapshot) -> None:
        """Persist the baseline for the next three-way merge."""
        self.set_state(BASELINE_KEY, serialize(snapshot))

    def clear_baseline(self) -> None:
        """Forget the baseline (next merge treats everything as new)."""
        self.delete_state(BASELINE_KEY)

    def get_remote_file(self) -> RemoteFileReference | None:
        """Get the selected remote file reference."""
        value = self.get_state(REMOTE_FILE_KEY)
        return RemoteFileReference.from_dict(json.loads(value)) if value else None

    def set_remote_file(self, ref: RemoteFileReference) -> None:
        """Persist the selected remote file reference."""
        self.set_state(REMOTE_FILE_KEY, json.dumps(ref.to_dict()))

    def clear_remote_file(self) -> None:
        """Forget the selected remote file."""
        self.delete_state(REMOTE_FILE_KEY)

    def is_connected(self) -> bool:
        """Whether the user connected a provider account before."""
        return self.get_state(CONNECTED_KEY) == "1"

    def set_connected(self, connected: bool) -> None:
        """Persist the connected flag."""
        self.set_state(CONNECTED_KEY, "1" if connected else "0")

    def get_last_sync_at(self) -> int | None:
        """Get timestamp (epoch ms) of the last successful sync."""
        value = self.get_state(LAST_SYNC_AT_KEY)
        return int(value) if value else None

    def set_last_sync_at(self, timestamp: int) -> None:
        """Set timestamp (epoch ms) of the last successful sync."""
        self.set_state(LAST_SYNC_AT_KEY, str(timestamp))

    def clear_sync_metadata(self) -> None:
        """Forget baseline, remote file, connection flag and last sync time."""
        with self._lock:
            self._conn.executemany(
                "DELETE FROM sync_state WHERE key = ?",
                [
                    (BASELINE_KEY,),
                    (REMOTE_FILE_KEY,),
                    (CONNECTED_KEY,),
                    (LAST_SYNC_AT_KEY,),
                ],
            )

    def stats(self) -> dict[str, int]:
        """Record counts per collection (live records only)."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT collection, COUNT(*) AS n FROM records "
                "WHERE is_deleted = 0 GROUP BY collection"
            ).fetchall()
        counts = {name: 0 for name in COLLECTIONS}
        counts.update({row["collection"]: row["n"] for row in rows})
        return counts
