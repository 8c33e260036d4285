"""Access token sources for cloud providers.

Interactive login and token renewal happen outside mealsync. This module
only stores and hands out a token that was obtained elsewhere:
- TokenSource: Protocol the providers query
- KeyringTokenSource: Token persisted in the OS keyring
- StaticTokenSource: In-memory token
"""

from __future__ import annotations

import contextlib
import json
import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import keyring
from keyring.errors import KeyringError

from mealsync.client.providers.base import AccountInfo, AuthError, SessionExpiredError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "mealsync"
KEYRING_USERNAME = "onedrive-session"


class TokenStoreError(Exception):
    """Exception raised when the token cannot be persisted."""


class TokenSource(Protocol):
    """Supplies the current account and a bearer token."""

    def current_account(self) -> AccountInfo | None:
        """Account of the stored session, or None. Must not block on network."""
        ...

    def access_token(self) -> str:
        """Return a usable token.

        Raises:
            AuthError: If there is no session.
            SessionExpiredError: If the session lapsed.
        """
        ...


def _is_expired(expires_at: datetime | None) -> bool:
    return expires_at is not None and datetime.now(UTC) >= expires_at


class StaticTokenSource:
    """Token held in memory."""

    def __init__(
        self,
        token: str | None,
        account: AccountInfo | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        self.token = token
        self.account = account
        self.expires_at = expires_at

    def current_account(self) -> AccountInfo | None:
        return self.account if self.token else None

    def access_token(self) -> str:
        if not self.token:
            raise AuthError("Not authenticated. Please connect first.")
        if _is_expired(self.expires_at):
            raise SessionExpiredError("Session expired. Please reconnect.", 401)
        return self.token

    def expire(self) -> None:
        """Mark the session as lapsed."""
        self.expires_at = datetime.now(UTC) - timedelta(seconds=1)


class KeyringTokenSource:
    """Token persisted in the OS keyring.

    The session is stored as one JSON entry so that the CLI process that
    connects and a later process that syncs see the same state.
    """

    def __init__(
        self,
        service: str = KEYRING_SERVICE,
        username: str = KEYRING_USERNAME,
    ) -> None:
        self._service = service
        self._username = username

    def _load(self) -> dict[str, Any] | None:
        raw = None
        with contextlib.suppress(KeyringError):
            raw = keyring.get_password(self._service, self._username)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable session in keyring")
            return None

    def store_token(
        self,
        token: str,
        account: AccountInfo,
        expires_in: int | None = None,
    ) -> None:
        """Persist a token obtained by an external login flow.

        Args:
            token: Bearer access token.
            account: Account the token belongs to.
            expires_in: Lifetime in seconds, None for no known expiry.

        Raises:
            TokenStoreError: If the keyring rejects the entry.
        """
        expires_at = None
        if expires_in is not None:
            expires_at = (datetime.now(UTC) + timedelta(seconds=expires_in)).isoformat()
        data = {
            "access_token": token,
            "expires_at": expires_at,
            "account": account.to_dict(),
        }
        try:
            keyring.set_password(self._service, self._username, json.dumps(data))
        except KeyringError as e:
            raise TokenStoreError(f"Could not store token in keyring: {e}") from e

    def clear(self) -> None:
        """Remove the stored session (silently if there is none)."""
        with contextlib.suppress(KeyringError):
            keyring.delete_password(self._service, self._username)

    def current_account(self) -> AccountInfo | None:
        data = self._load()
        if data is None or "account" not in data:
            return None
        return AccountInfo.from_dict(data["account"])

    def access_token(self) -> str:
        data = self._load()
        if data is None or not data.get("access_token"):
            raise AuthError("Not authenticated. Please connect first.")
        expires_at = data.get("expires_at")
        if expires_at and _is_expired(datetime.fromisoformat(expires_at)):
            raise SessionExpiredError("Session expired. Please reconnect.", 401)
        return data["access_token"]
