"""Tests for token sources."""

from __future__ import annotations

import json
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from mealsync.client.providers.base import AccountInfo, AuthError, SessionExpiredError
from mealsync.client.providers.tokens import (
    KEYRING_SERVICE,
    KEYRING_USERNAME,
    KeyringTokenSource,
    StaticTokenSource,
    TokenStoreError,
)

ACCOUNT = AccountInfo(name="Alex Cook", email="alex@example.com")


class FakeKeyring:
    """In-memory keyring backend."""

    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.entries.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.entries[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        if (service, username) not in self.entries:
            raise PasswordDeleteError("Password not found")
        del self.entries[(service, username)]


@pytest.fixture
def fake_keyring() -> Generator[FakeKeyring, None, None]:
    backend = FakeKeyring()
    with (
        patch("keyring.get_password", backend.get_password),
        patch("keyring.set_password", backend.set_password),
        patch("keyring.delete_password", backend.delete_password),
    ):
        yield backend


class TestStaticTokenSource:
    """Tests for StaticTokenSource."""

    def test_token(self) -> None:
        source = StaticTokenSource("abc", ACCOUNT)
        assert source.current_account() == ACCOUNT
        assert source.access_token() == "abc"

    def test_no_token(self) -> None:
        source = StaticTokenSource(None, ACCOUNT)
        assert source.current_account() is None
        with pytest.raises(AuthError):
            source.access_token()

    def test_expire(self) -> None:
        source = StaticTokenSource("abc", ACCOUNT)
        source.expire()
        assert source.current_account() == ACCOUNT
        with pytest.raises(SessionExpiredError):
            source.access_token()


class TestKeyringTokenSource:
    """Tests for KeyringTokenSource."""

    def test_empty_keyring(self, fake_keyring: FakeKeyring) -> None:
        source = KeyringTokenSource()
        assert source.current_account() is None
        with pytest.raises(AuthError):
            source.access_token()

    def test_store_and_read(self, fake_keyring: FakeKeyring) -> None:
        """Stored session is visible to a fresh instance."""
        KeyringTokenSource().store_token("abc", ACCOUNT, expires_in=3600)

        source = KeyringTokenSource()
        assert source.current_account() == ACCOUNT
        assert source.access_token() == "abc"

        data = json.loads(fake_keyring.entries[(KEYRING_SERVICE, KEYRING_USERNAME)])
        assert data["access_token"] == "abc"
        assert data["account"] == {"name": "Alex Cook", "email": "alex@example.com"}
        assert datetime.fromisoformat(data["expires_at"]) > datetime.now(UTC)

    def test_no_expiry(self, fake_keyring: FakeKeyring) -> None:
        KeyringTokenSource().store_token("abc", ACCOUNT)
        assert KeyringTokenSource().access_token() == "abc"

    def test_expired(self, fake_keyring: FakeKeyring) -> None:
        """An expired session still names the account but has no token."""
        expired = (datetime.now(UTC) - timedelta(minutes=5)).isoformat()
        fake_keyring.entries[(KEYRING_SERVICE, KEYRING_USERNAME)] = json.dumps(
            {"access_token": "abc", "expires_at": expired, "account": ACCOUNT.to_dict()}
        )
        source = KeyringTokenSource()

        assert source.current_account() == ACCOUNT
        with pytest.raises(SessionExpiredError):
            source.access_token()

    def test_unreadable_entry(self, fake_keyring: FakeKeyring) -> None:
        fake_keyring.entries[(KEYRING_SERVICE, KEYRING_USERNAME)] = "{not json"
        assert KeyringTokenSource().current_account() is None

    def test_clear(self, fake_keyring: FakeKeyring) -> None:
        source = KeyringTokenSource()
        source.store_token("abc", ACCOUNT)
        source.clear()
        source.clear()
        assert source.current_account() is None

    def test_store_failure(self) -> None:
        """Keyring errors on write are reported."""
        with patch("keyring.set_password", MagicMock(side_effect=KeyringError("locked"))):
            with pytest.raises(TokenStoreError, match="locked"):
                KeyringTokenSource().store_token("abc", ACCOUNT)

    def test_read_failure(self) -> None:
        """Keyring errors on read mean no session."""
        with patch("keyring.get_password", MagicMock(side_effect=KeyringError("no backend"))):
            assert KeyringTokenSource().current_account() is None
