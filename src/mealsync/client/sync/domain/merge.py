"""Three-way merge of snapshots.

Each record is classified by comparing its local and remote versions with
the version in the baseline (the snapshot persisted after the last
successful sync). A missing record is ``None``.

Matrix:
| local vs remote | local vs base | remote vs base | Action        |
|-----------------|---------------|----------------|---------------|
| equal           | *             | *              | Take either   |
| differ          | equal         | differ         | Take remote   |
| differ          | differ        | equal          | Take local    |
| differ          | differ        | differ         | Conflict      |

Equality is value equality of the whole record, so a soft delete
(``isDeleted: true``) is an ordinary change and delete-vs-edit is an
ordinary conflict. While conflicts are pending the merged snapshot holds
the remote version of each conflicting record; it must not be committed
until resolve() has been applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto

from mealsync.core.snapshot import COLLECTIONS, Record, Snapshot


class MergeAction(Enum):
    """Outcome for one record id."""

    TAKE_EITHER = auto()  # Both sides agree
    TAKE_LOCAL = auto()  # Changed only locally, must be uploaded
    TAKE_REMOTE = auto()  # Changed only remotely, must be adopted
    CONFLICT = auto()  # Changed on both sides to different values


class ConflictDirection(str, Enum):
    """Which side wins when conflicts are resolved in bulk."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class Conflict:
    """A record changed differently on both sides since the baseline.

    Attributes:
        id: Record id.
        kind: Collection wire name (e.g. "ingredients").
        display_name: Human-readable label for the record.
        local_modified: Local updatedAt, None if the record is absent locally.
        remote_modified: Remote updatedAt, None if absent remotely.
        local_record: Local version of the record.
        remote_record: Remote version of the record.
    """

    id: str
    kind: str
    display_name: str
    local_modified: int | None
    remote_modified: int | None
    local_record: Record | None = field(default=None, compare=False, repr=False)
    remote_record: Record | None = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the conflicting record across sync cycles."""
        return (self.kind, self.id)


@dataclass
class MergeResult:
    """Result of merge()."""

    merged: Snapshot
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def classify(
    base: Record | None,
    local: Record | None,
    remote: Record | None,
) -> MergeAction:
    """Classify one record id."""
    if local == remote:
        return MergeAction.TAKE_EITHER
    if local == base:
        return MergeAction.TAKE_REMOTE
    if remote == base:
        return MergeAction.TAKE_LOCAL
    return MergeAction.CONFLICT


def display_name(record: Record | None, fallback: str) -> str:
    """Pick a label for a record: name, then title, then the id."""
    if record:
        for key in ("name", "title"):
            value = record.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


def _collection_names(*snapshots: Snapshot) -> list[str]:
    names = list(COLLECTIONS)
    for snapshot in snapshots:
        for name in snapshot.collections:
            if name not in names:
                names.append(name)
    return names


def merge(base: Snapshot, local: Snapshot, remote: Snapshot) -> MergeResult:
    """Three-way merge of local and remote against the baseline.

    Pure and deterministic: per collection, ids are visited in remote order,
    then ids only present locally in local order.

    Args:
        base: Snapshot persisted after the last successful sync.
        local: Current local content.
        remote: Content downloaded from the remote file.

    Returns:
        MergeResult with the merged snapshot and any conflicts. When
        conflicts exist, merged holds the remote version of each.
    """
    collections: dict[str, list[Record]] = {}
    conflicts: list[Conflict] = []

    for name in _collection_names(remote, local):
        base_index = base.index(name)
        local_index = local.index(name)
        remote_index = remote.index(name)

        ids = list(remote_index)
        ids.extend(record_id for record_id in local_index if record_id not in remote_index)

        merged: list[Record] = []
        for record_id in ids:
            b = base_index.get(record_id)
            l = local_index.get(record_id)  # noqa: E741
            r = remote_index.get(record_id)

            action = classify(b, l, r)
            if action is MergeAction.TAKE_LOCAL:
                chosen = l
            elif action is MergeAction.CONFLICT:
                conflicts.append(
                    Conflict(
                        id=record_id,
                        kind=name,
                        display_name=display_name(l or r, record_id),
                        local_modified=l["updatedAt"] if l else None,
                        remote_modified=r["updatedAt"] if r else None,
                        local_record=l,
                        remote_record=r,
                    )
                )
                chosen = r
            else:
                chosen = r

            if chosen is not None:
                merged.append(chosen)

        collections[name] = merged

    fallback = max(base.last_modified, local.last_modified, remote.last_modified)
    snapshot = Snapshot(collections=collections, version=remote.version)
    snapshot.last_modified = snapshot.compute_last_modified(default=fallback)
    return MergeResult(merged=snapshot, conflicts=conflicts)


def resolve(result: MergeResult, direction: ConflictDirection | str) -> Snapshot:
    """Apply a bulk decision to every conflict of a merge result.

    Args:
        result: Output of merge().
        direction: "remote" keeps the provisional remote versions. "local"
            puts back the local version of every conflicting record (drops
            it when the record is absent locally).

    Returns:
        A snapshot ready to commit.
    """
    direction = ConflictDirection(direction)
    if direction is ConflictDirection.REMOTE or not result.conflicts:
        return result.merged

    collections = {name: list(records) for name, records in result.merged.collections.items()}
    for conflict in result.conflicts:
        records = collections.setdefault(conflict.kind, [])
        position = next(
            (i for i, record in enumerate(records) if record["id"] == conflict.id),
            None,
        )
        if conflict.local_record is None:
            if position is not None:
                del records[position]
        elif position is None:
            records.append(conflict.local_record)
        else:
            records[position] = conflict.local_record

    snapshot = Snapshot(collections=collections, version=result.merged.version)
    snapshot.last_modified = snapshot.compute_last_modified(
        default=result.merged.last_modified
    )
    return snapshot
