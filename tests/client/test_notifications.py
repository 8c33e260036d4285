"""Tests for notification system."""

from unittest.mock import MagicMock, patch

from mealsync.client.notifications import (
    Notification,
    NotificationType,
    conflicts_notification,
    reconnect_notification,
    send_notification,
    sync_failed_notification,
)
from mealsync.client.sync.domain import Conflict


def make_conflict(name: str) -> Conflict:
    return Conflict(
        id=name.lower(),
        kind="recipes",
        display_name=name,
        local_modified=2,
        remote_modified=3,
    )


class TestNotification:
    """Tests for Notification dataclass."""

    def test_notification_default_type(self) -> None:
        """Should default to INFO type."""
        notif = Notification(title="Title", message="Message")
        assert notif.type == NotificationType.INFO


class TestMessageBuilders:
    """Tests for the sync engine's messages."""

    def test_single_conflict(self) -> None:
        notif = conflicts_notification([make_conflict("Soup")])
        assert notif.type == NotificationType.CONFLICT
        assert "Conflicts" in notif.title
        assert "1 item was changed" in notif.message
        assert "'Soup'" in notif.message

    def test_many_conflicts_summarized(self) -> None:
        """Only the first three names are listed."""
        names = ["Soup", "Stew", "Salad", "Pie", "Tart"]
        notif = conflicts_notification([make_conflict(n) for n in names])
        assert "5 items were changed" in notif.message
        assert "'Salad'" in notif.message
        assert "'Pie'" not in notif.message
        assert "and 2 more" in notif.message

    def test_sync_failed(self) -> None:
        notif = sync_failed_notification("Connection refused")
        assert notif.type == NotificationType.ERROR
        assert notif.message.startswith("Connection refused.")

    def test_reconnect(self) -> None:
        notif = reconnect_notification()
        assert notif.type == NotificationType.WARNING
        assert "Reconnect" in notif.title


class TestSendNotification:
    """Tests for send_notification platform detection."""

    @patch("mealsync.client.notifications.platform.system")
    @patch("mealsync.client.notifications._notify_linux")
    def test_linux(self, mock_linux: MagicMock, mock_system: MagicMock) -> None:
        """Should use Linux notifier on Linux."""
        mock_system.return_value = "Linux"
        mock_linux.return_value = True

        result = send_notification(Notification(title="Test", message="Message"))

        assert result is True
        mock_linux.assert_called_once()

    @patch("mealsync.client.notifications.platform.system")
    @patch("mealsync.client.notifications._notify_macos")
    def test_macos(self, mock_macos: MagicMock, mock_system: MagicMock) -> None:
        mock_system.return_value = "Darwin"
        mock_macos.return_value = True

        assert send_notification(Notification(title="Test", message="Message")) is True
        mock_macos.assert_called_once()

    @patch("mealsync.client.notifications.platform.system")
    @patch("mealsync.client.notifications._notify_windows")
    def test_windows(self, mock_windows: MagicMock, mock_system: MagicMock) -> None:
        mock_system.return_value = "Windows"
        mock_windows.return_value = True

        assert send_notification(Notification(title="Test", message="Message")) is True
        mock_windows.assert_called_once()

    @patch("mealsync.client.notifications.platform.system")
    @patch("mealsync.client.notifications.subprocess.run")
    def test_linux_without_notify_send(self, mock_run: MagicMock, mock_system: MagicMock) -> None:
        """Missing notify-send falls back to the log."""
        mock_system.return_value = "Linux"
        mock_run.side_effect = FileNotFoundError()

        result = send_notification(Notification(title="Test", message="Message"))

        assert result is False

    @patch("mealsync.client.notifications.platform.system")
    def test_unknown_platform(self, mock_system: MagicMock) -> None:
        mock_system.return_value = "Plan9"
        assert send_notification(Notification(title="Test", message="Message")) is False
