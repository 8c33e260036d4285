"""Snapshot model and serializer.

A snapshot is the complete content of every synced collection at one point
in time. It is what gets compressed and stored as the remote file, what the
local store hands to the merge engine, and what is persisted as the baseline
after each successful sync.

This module provides:
- Snapshot: Collections of records plus lastModified/version metadata
- serialize / deserialize: Stable JSON wire format
- SchemaError: Raised on structurally invalid documents
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

# A record is a plain JSON object with at least "id" and "updatedAt"
Record = dict[str, Any]

# Wire names of the collections every snapshot must carry
RECIPES = "recipes"
MEAL_PLANS = "mealPlans"
INGREDIENTS = "ingredients"
GROCERY_LISTS = "groceryLists"
GROCERY_ITEMS = "groceryItems"

COLLECTIONS: tuple[str, ...] = (
    RECIPES,
    MEAL_PLANS,
    INGREDIENTS,
    GROCERY_LISTS,
    GROCERY_ITEMS,
)

SNAPSHOT_VERSION = 1

LAST_MODIFIED_KEY = "lastModified"
VERSION_KEY = "version"


class SchemaError(Exception):
    """Raised when a snapshot document is structurally invalid."""


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def is_deleted(record: Record) -> bool:
    """Check the soft-delete flag of a record (absent means live)."""
    return bool(record.get("isDeleted", False))


def _is_int(value: Any) -> bool:
    # bool is a subclass of int but never a valid timestamp or version
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class Snapshot:
    """Complete content of all synced collections.

    Attributes:
        collections: Records per collection wire name, in stored order.
        last_modified: Epoch milliseconds of the newest change.
        version: Wire format version.
    """

    collections: dict[str, list[Record]] = field(default_factory=dict)
    last_modified: int = 0
    version: int = SNAPSHOT_VERSION

    def __post_init__(self) -> None:
        for name in COLLECTIONS:
            self.collections.setdefault(name, [])

    @classmethod
    def empty(cls, last_modified: int | None = None) -> Snapshot:
        """Create a snapshot with every required collection empty.

        Args:
            last_modified: Timestamp to carry. Defaults to now.
        """
        return cls(
            collections={name: [] for name in COLLECTIONS},
            last_modified=now_ms() if last_modified is None else last_modified,
        )

    def records(self, name: str) -> list[Record]:
        """Records of one collection (empty list if unknown)."""
        return self.collections.get(name, [])

    def index(self, name: str) -> dict[str, Record]:
        """Records of one collection keyed by id, preserving order."""
        return {record["id"]: record for record in self.records(name)}

    def record_count(self, include_deleted: bool = True) -> int:
        """Count records across all collections."""
        return sum(
            1
            for records in self.collections.values()
            for record in records
            if include_deleted or not is_deleted(record)
        )

    def compute_last_modified(self, default: int = 0) -> int:
        """Max updatedAt across all records, or default when there are none."""
        stamps = [
            record["updatedAt"]
            for records in self.collections.values()
            for record in records
        ]
        return max(stamps, default=default)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire document shape."""
        doc: dict[str, Any] = {
            name: [dict(record) for record in records]
            for name, records in self.collections.items()
        }
        doc[LAST_MODIFIED_KEY] = self.last_modified
        doc[VERSION_KEY] = self.version
        return doc

    @classmethod
    def from_dict(cls, data: Any) -> Snapshot:
        """Create a Snapshot from a decoded wire document.

        Raises:
            SchemaError: If the document is structurally invalid.
        """
        if not isinstance(data, dict):
            raise SchemaError("Snapshot document must be a JSON object")

        version = data.get(VERSION_KEY)
        if not _is_int(version):
            raise SchemaError(f"'{VERSION_KEY}' must be an integer, got {version!r}")
        if version > SNAPSHOT_VERSION:
            raise SchemaError(
                f"Snapshot version {version} is newer than supported "
                f"version {SNAPSHOT_VERSION}"
            )

        last_modified = data.get(LAST_MODIFIED_KEY)
        if not _is_int(last_modified):
            raise SchemaError(
                f"'{LAST_MODIFIED_KEY}' must be an integer, got {last_modified!r}"
            )

        for name in COLLECTIONS:
            if name not in data:
                raise SchemaError(f"Missing required collection '{name}'")

        collections: dict[str, list[Record]] = {}
        for name, value in data.items():
            if name in (LAST_MODIFIED_KEY, VERSION_KEY):
                continue
            if name in COLLECTIONS and not isinstance(value, list):
                raise SchemaError(f"Collection '{name}' must be a list")
            if isinstance(value, list):
                collections[name] = _validate_records(name, value)

        return cls(
            collections=collections,
            last_modified=last_modified,
            version=version,
        )


def _validate_records(name: str, items: list[Any]) -> list[Record]:
    seen: set[str] = set()
    for position, record in enumerate(items):
        where = f"{name}[{position}]"
        if not isinstance(record, dict):
            raise SchemaError(f"{where}: record must be an object")

        record_id = record.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise SchemaError(f"{where}: 'id' must be a non-empty string")
        if record_id in seen:
            raise SchemaError(f"{where}: duplicate id '{record_id}'")
        seen.add(record_id)

        if not _is_int(record.get("updatedAt")):
            raise SchemaError(
                f"{where}: 'updatedAt' must be an integer, "
                f"got {record.get('updatedAt')!r}"
            )
        if "isDeleted" in record and not isinstance(record["isDeleted"], bool):
            raise SchemaError(f"{where}: 'isDeleted' must be a boolean")
    return items


def serialize(snapshot: Snapshot) -> str:
    """Serialize a snapshot to stable JSON.

    Keys are sorted and separators compact so identical snapshots always
    produce identical text.
    """
    return json.dumps(
        snapshot.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def deserialize(text: str) -> Snapshot:
    """Parse snapshot JSON.

    Raises:
        SchemaError: On invalid JSON or an invalid document. Values are never
            coerced.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"Invalid snapshot JSON: {e}") from e
    return Snapshot.from_dict(data)
