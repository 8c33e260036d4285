"""Remote file providers."""

from mealsync.client.providers.base import (
    AccountInfo,
    AuthError,
    FolderListing,
    FolderReference,
    NetworkError,
    NotFoundError,
    ProviderError,
    RemoteFileProvider,
    RemoteFileReference,
    SessionExpiredError,
    is_snapshot_file,
    new_file_reference,
)
from mealsync.client.providers.onedrive import OneDriveProvider
from mealsync.client.providers.tokens import (
    KeyringTokenSource,
    StaticTokenSource,
    TokenSource,
    TokenStoreError,
)

__all__ = [
    # Interface
    "RemoteFileProvider",
    "AccountInfo",
    "FolderListing",
    "FolderReference",
    "RemoteFileReference",
    "is_snapshot_file",
    "new_file_reference",
    # Errors
    "AuthError",
    "NetworkError",
    "NotFoundError",
    "ProviderError",
    "SessionExpiredError",
    # Implementations
    "OneDriveProvider",
    # Tokens
    "KeyringTokenSource",
    "StaticTokenSource",
    "TokenSource",
    "TokenStoreError",
]
