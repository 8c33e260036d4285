"""Remote file provider interface.

This module provides:
- RemoteFileReference / FolderReference / FolderListing / AccountInfo
- RemoteFileProvider: Protocol every cloud backend implements
- ProviderError hierarchy shared by all backends
- Snapshot file naming helpers

The sync engine depends only on RemoteFileProvider. Swapping the cloud
vendor means writing another implementation of it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from mealsync.core.config import SNAPSHOT_SUFFIX

# === Errors ===


class ProviderError(Exception):
    """Base exception for remote provider errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(ProviderError):
    """No authenticated session where one is required."""


class SessionExpiredError(AuthError):
    """An authenticated call discovered the session has lapsed."""


class NotFoundError(ProviderError):
    """Remote object does not exist."""


class NetworkError(ProviderError):
    """Transport failure talking to the provider."""


# === Models ===


@dataclass
class AccountInfo:
    """Account of the connected user."""

    name: str
    email: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "email": self.email}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccountInfo:
        return cls(name=data.get("name", ""), email=data.get("email", ""))


@dataclass
class RemoteFileReference:
    """Pointer to a snapshot file in the remote store.

    Attributes:
        id: Provider item id. Empty until the file is first uploaded.
        name: File name including the snapshot suffix.
        path: Path from the drive root (e.g. "/Meals/family.json.gz").
            Empty means the application folder.
        is_shared_with_me: File lives in another user's drive.
        drive_id: Owning drive id for shared files.
        parent_id: Parent folder id, used to create a file in a shared folder.
    """

    id: str
    name: str
    path: str = ""
    is_shared_with_me: bool = False
    drive_id: str | None = None
    parent_id: str | None = None

    @property
    def exists(self) -> bool:
        """Whether the file has been created remotely."""
        return bool(self.id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "is_shared_with_me": self.is_shared_with_me,
            "drive_id": self.drive_id,
            "parent_id": self.parent_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFileReference:
        """Create from a persisted dictionary."""
        return cls(
            id=data.get("id", ""),
            name=data["name"],
            path=data.get("path", ""),
            is_shared_with_me=data.get("is_shared_with_me", False),
            drive_id=data.get("drive_id"),
            parent_id=data.get("parent_id"),
        )


@dataclass
class FolderReference:
    """Folder in the remote store, as returned by list_folder()."""

    id: str
    name: str
    path: str
    is_shared_with_me: bool = False
    drive_id: str | None = None


@dataclass
class FolderListing:
    """Contents of one remote folder, snapshot files only."""

    folders: list[FolderReference] = field(default_factory=list)
    files: list[RemoteFileReference] = field(default_factory=list)


# === Naming ===


def is_snapshot_file(name: str) -> bool:
    """Check whether a file name follows the snapshot naming convention."""
    return name.endswith(SNAPSHOT_SUFFIX) and len(name) > len(SNAPSHOT_SUFFIX)


def new_file_reference(
    name: str,
    folder: FolderReference | None = None,
) -> RemoteFileReference:
    """Build a reference for a snapshot file that does not exist yet.

    The snapshot suffix is appended when missing.

    Args:
        name: File name chosen by the user.
        folder: Parent folder, or None for the application folder.

    Raises:
        ValueError: If the name is empty or contains a path separator.
    """
    name = name.strip()
    if not name:
        raise ValueError("File name must not be empty")
    if "/" in name or "\\" in name:
        raise ValueError(f"File name must not contain path separators: {name!r}")
    if not is_snapshot_file(name):
        name += SNAPSHOT_SUFFIX

    if folder is None:
        return RemoteFileReference(id="", name=name)
    return RemoteFileReference(
        id="",
        name=name,
        path=f"{folder.path.rstrip('/')}/{name}",
        is_shared_with_me=folder.is_shared_with_me,
        drive_id=folder.drive_id,
        parent_id=folder.id,
    )


# === Interface ===


@runtime_checkable
class RemoteFileProvider(Protocol):
    """Operations the sync engine needs from a cloud file store.

    Every method except is_authenticated() requires an authenticated session
    and raises AuthError when there is none, SessionExpiredError when the
    session lapsed mid-call. Providers never log the user in themselves.
    """

    def is_authenticated(self) -> bool:
        """Report whether a session exists. Never touches the network."""
        ...

    def get_account_info(self) -> AccountInfo:
        """Return the connected account."""
        ...

    def upload(self, ref: RemoteFileReference, blob: bytes) -> RemoteFileReference:
        """Create (empty ref.id) or overwrite the file.

        Returns:
            The reference with the provider-assigned id and canonical name.
        """
        ...

    def download(self, ref: RemoteFileReference) -> bytes:
        """Fetch the file content. Raises NotFoundError if it is gone."""
        ...

    def list_folder(self, parent: FolderReference | None = None) -> FolderListing:
        """List sub-folders and snapshot files of a folder (root when None)."""
        ...
