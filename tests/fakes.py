"""In-memory test doubles shared by the test suite."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from mealsync.client.providers.base import (
    AccountInfo,
    AuthError,
    FolderListing,
    FolderReference,
    NotFoundError,
    RemoteFileReference,
    is_snapshot_file,
)
from mealsync.core.compression import compress, decompress
from mealsync.core.snapshot import Record, Snapshot, deserialize, serialize


def record(record_id: str, updated_at: int, **fields: Any) -> Record:
    """Build a record with the mandatory fields."""
    return {"id": record_id, "updatedAt": updated_at, "isDeleted": False, **fields}


def snapshot(last_modified: int | None = None, **collections: list[Record]) -> Snapshot:
    """Build a snapshot; lastModified defaults to the newest record."""
    snap = Snapshot(collections=dict(collections))
    snap.last_modified = (
        snap.compute_last_modified() if last_modified is None else last_modified
    )
    return snap


class FakeProvider:
    """RemoteFileProvider keeping files in a dict.

    Attributes:
        files: Blob per item id.
        fail: Exception to raise per operation name ("download", "upload",
            "list_folder"), consumed once.
        before_download: Hook run inside download(), before returning.
        before_upload: Hook run inside upload(), before the blob is stored.
    """

    def __init__(self, authenticated: bool = True) -> None:
        self.authenticated = authenticated
        self.account = AccountInfo(name="Alex Cook", email="alex@example.com")
        self.files: dict[str, bytes] = {}
        self.names: dict[str, str] = {}
        self.fail: dict[str, Exception] = {}
        self.before_download: Callable[[], None] | None = None
        self.before_upload: Callable[[], None] | None = None
        self.downloads = 0
        self.uploads = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()
        self._next_id = 1

    # === Helpers for tests ===

    def put_snapshot(self, snap: Snapshot, name: str = "family.json.gz") -> RemoteFileReference:
        """Store a snapshot as if another device had uploaded it."""
        ref = RemoteFileReference(id=f"item-{self._next_id}", name=name, path=f"/{name}")
        self._next_id += 1
        self.files[ref.id] = compress(serialize(snap))
        self.names[ref.id] = name
        return ref

    def get_snapshot(self, ref: RemoteFileReference) -> Snapshot:
        return deserialize(decompress(self.files[ref.id]))

    def _maybe_fail(self, operation: str) -> None:
        error = self.fail.pop(operation, None)
        if error is not None:
            raise error

    def _enter(self) -> None:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)

    def _leave(self) -> None:
        with self._lock:
            self.active -= 1

    # === RemoteFileProvider ===

    def is_authenticated(self) -> bool:
        return self.authenticated

    def get_account_info(self) -> AccountInfo:
        if not self.authenticated:
            raise AuthError("Not authenticated")
        return self.account

    def upload(self, ref: RemoteFileReference, blob: bytes) -> RemoteFileReference:
        self._enter()
        try:
            self._maybe_fail("upload")
            if self.before_upload:
                self.before_upload()
            self.uploads += 1
            item_id = ref.id
            if not item_id:
                item_id = f"item-{self._next_id}"
                self._next_id += 1
            self.files[item_id] = blob
            self.names[item_id] = ref.name
            return RemoteFileReference(id=item_id, name=ref.name, path=ref.path)
        finally:
            self._leave()

    def download(self, ref: RemoteFileReference) -> bytes:
        self._enter()
        try:
            self._maybe_fail("download")
            self.downloads += 1
            if self.before_download:
                self.before_download()
            if ref.id in self.files:
                return self.files[ref.id]
            raise NotFoundError("Item not found", 404)
        finally:
            self._leave()

    def list_folder(self, parent: FolderReference | None = None) -> FolderListing:
        self._maybe_fail("list_folder")
        return FolderListing(
            files=[
                RemoteFileReference(id=item_id, name=name, path=f"/{name}")
                for item_id, name in self.names.items()
                if is_snapshot_file(name)
            ]
        )


class FakeTokenSource:
    """Token source double with the KeyringTokenSource write API."""

    def __init__(self) -> None:
        self.token: str | None = None
        self.account: AccountInfo | None = None
        self.expires_in: int | None = None

    def store_token(self, token: str, account: AccountInfo, expires_in: int | None = None) -> None:
        self.token = token
        self.account = account
        self.expires_in = expires_in

    def clear(self) -> None:
        self.token = None
        self.account = None

    def current_account(self) -> AccountInfo | None:
        return self.account if self.token else None

    def access_token(self) -> str:
        if not self.token:
            raise AuthError("Not authenticated")
        return self.token
