"""OneDrive provider over the Microsoft Graph API.

This module provides:
- OneDriveProvider: RemoteFileProvider backed by httpx
- Upload/download of snapshot files (app folder, drive path, shared drives)
- Folder browsing including items shared with the user
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mealsync.client.providers.base import (
    AccountInfo,
    AuthError,
    FolderListing,
    FolderReference,
    NetworkError,
    NotFoundError,
    ProviderError,
    RemoteFileReference,
    SessionExpiredError,
    is_snapshot_file,
)
from mealsync.client.providers.tokens import TokenSource
from mealsync.core.config import ProviderConfig

logger = logging.getLogger(__name__)

ITEM_FIELDS = "id,name,folder,file,parentReference"
SHARED_FIELDS = "id,name,folder,file,remoteItem"


class OneDriveProvider:
    """Remote file provider for OneDrive personal and shared drives."""

    def __init__(
        self,
        token_source: TokenSource,
        config: ProviderConfig | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            token_source: Supplies the bearer token of the external session.
            config: API endpoint and transport settings.
        """
        self._token_source = token_source
        self._config = config or ProviderConfig()
        self._client = httpx.Client(
            base_url=self._config.graph_url,
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            follow_redirects=True,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> OneDriveProvider:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    # === Transport ===

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request and map failures to provider errors."""
        if self._token_source.current_account() is None:
            raise AuthError("Not authenticated. Please connect first.")
        token = self._token_source.access_token()

        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {token}"
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise SessionExpiredError("Session expired. Please reconnect.", 401)
        if response.status_code == 404:
            raise NotFoundError("Item not found", 404)
        if response.status_code >= 400:
            raise ProviderError(self._error_detail(response), response.status_code)
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return response.text or response.reason_phrase or "Unknown error"

    def _get_all(self, url: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        """GET a collection, following @odata.nextLink pages."""
        items: list[dict[str, Any]] = []
        next_url: str | None = url
        while next_url:
            response = self._request("GET", next_url, params=params)
            data = response.json()
            items.extend(data.get("value", []))
            next_url = data.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None
        return items

    # === Auth ===

    def is_authenticated(self) -> bool:
        """Check for a stored session without network access."""
        return self._token_source.current_account() is not None

    def get_account_info(self) -> AccountInfo:
        """Return the connected account.

        Raises:
            AuthError: If no session exists.
        """
        account = self._token_source.current_account()
        if account is None:
            raise AuthError("Not authenticated. Please connect first.")
        return account

    # === Files ===

    @staticmethod
    def _item_url(ref: RemoteFileReference) -> str:
        if ref.drive_id:
            return f"/drives/{ref.drive_id}/items/{ref.id}"
        return f"/me/drive/items/{ref.id}"

    @staticmethod
    def _new_item_url(ref: RemoteFileReference) -> str:
        if ref.drive_id and ref.parent_id:
            return f"/drives/{ref.drive_id}/items/{ref.parent_id}:/{ref.name}:"
        if ref.path:
            return f"/me/drive/root:{ref.path}:"
        return f"/me/drive/special/approot:/{ref.name}:"

    def upload(self, ref: RemoteFileReference, blob: bytes) -> RemoteFileReference:
        """Create or overwrite a snapshot file.

        Args:
            ref: Target file. An empty id creates it.
            blob: Compressed snapshot bytes.

        Returns:
            Reference carrying the server-assigned id and name.
        """
        url = self._item_url(ref) if ref.exists else self._new_item_url(ref)
        response = self._request(
            "PUT",
            f"{url}/content",
            content=blob,
            headers={"Content-Type": "application/octet-stream"},
        )
        item = response.json()
        logger.debug("Uploaded %s (%d bytes) as item %s", ref.name, len(blob), item.get("id"))
        return RemoteFileReference(
            id=item["id"],
            name=item.get("name", ref.name),
            path=ref.path,
            is_shared_with_me=ref.is_shared_with_me,
            drive_id=ref.drive_id,
            parent_id=ref.parent_id,
        )

    def download(self, ref: RemoteFileReference) -> bytes:
        """Download a snapshot file.

        Raises:
            NotFoundError: If the file does not exist (yet).
        """
        url = self._item_url(ref) if ref.exists else self._new_item_url(ref)
        response = self._request("GET", f"{url}/content")
        logger.debug("Downloaded %s (%d bytes)", ref.name, len(response.content))
        return response.content

    # === Browsing ===

    def list_folder(self, parent: FolderReference | None = None) -> FolderListing:
        """List sub-folders and snapshot files.

        The root listing combines the personal drive with items shared with
        the user. Shared items are skipped if that query fails.
        """
        if parent is None:
            listing = self._list_children(
                "/me/drive/root/children",
                base_path="",
                is_shared=False,
                drive_id=None,
            )
            try:
                shared = self._list_shared()
            except AuthError:
                raise
            except ProviderError as e:
                logger.warning("Failed to load shared items: %s", e)
            else:
                listing.folders.extend(shared.folders)
                listing.files.extend(shared.files)
            return listing

        if parent.is_shared_with_me and parent.drive_id:
            url = f"/drives/{parent.drive_id}/items/{parent.id}/children"
        else:
            url = f"/me/drive/root:{parent.path}:/children"
        return self._list_children(
            url,
            base_path=parent.path.rstrip("/"),
            is_shared=parent.is_shared_with_me,
            drive_id=parent.drive_id,
        )

    def _list_children(
        self,
        url: str,
        base_path: str,
        is_shared: bool,
        drive_id: str | None,
    ) -> FolderListing:
        listing = FolderListing()
        for item in self._get_all(url, params={"$select": ITEM_FIELDS}):
            name = item["name"]
            path = f"{base_path}/{name}"
            item_drive = None
            if is_shared:
                item_drive = drive_id or item.get("parentReference", {}).get("driveId")
            if "folder" in item:
                listing.folders.append(
                    FolderReference(
                        id=item["id"],
                        name=name,
                        path=path,
                        is_shared_with_me=is_shared,
                        drive_id=item_drive,
                    )
                )
            elif "file" in item and is_snapshot_file(name):
                listing.files.append(
                    RemoteFileReference(
                        id=item["id"],
                        name=name,
                        path=path,
                        is_shared_with_me=is_shared,
                        drive_id=item_drive,
                    )
                )
        return listing

    def _list_shared(self) -> FolderListing:
        listing = FolderListing()
        for item in self._get_all("/me/drive/sharedWithMe", params={"$select": SHARED_FIELDS}):
            remote = item.get("remoteItem")
            if not remote:
                continue
            name = item["name"]
            drive_id = remote.get("parentReference", {}).get("driveId")
            if "folder" in remote:
                listing.folders.append(
                    FolderReference(
                        id=remote["id"],
                        name=name,
                        path=f"/{name}",
                        is_shared_with_me=True,
                        drive_id=drive_id,
                    )
                )
            elif "file" in remote and is_snapshot_file(name):
                listing.files.append(
                    RemoteFileReference(
                        id=remote["id"],
                        name=name,
                        path=f"/{name}",
                        is_shared_with_me=True,
                        drive_id=drive_id,
                    )
                )
        return listing
