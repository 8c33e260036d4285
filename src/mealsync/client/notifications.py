"""Cross-platform system notifications for mealsync.

This module provides:
- Native OS notifications (Windows toast, macOS notification center, Linux notify-send)
- Builders for the sync engine's user-visible messages
- Fallback to the log if notifications are unavailable
"""

from __future__ import annotations

import html
import logging
import platform
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mealsync.client.sync.domain.merge import Conflict

logger = logging.getLogger(__name__)

APP_NAME = "mealsync"

# Conflicts listed by name in a notification before summarizing
MAX_LISTED_CONFLICTS = 3


class NotificationType(Enum):
    """Type of notification."""

    INFO = auto()
    WARNING = auto()
    ERROR = auto()
    CONFLICT = auto()


@dataclass
class Notification:
    """Represents a notification to display."""

    title: str
    message: str
    type: NotificationType = NotificationType.INFO


# notify-send urgency per notification type
LINUX_URGENCY = {
    NotificationType.INFO: "low",
    NotificationType.WARNING: "normal",
    NotificationType.ERROR: "critical",
    NotificationType.CONFLICT: "critical",
}

WINDOWS_TOAST_SCRIPT = """
[Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, ContentType = WindowsRuntime] | Out-Null
[Windows.Data.Xml.Dom.XmlDocument, Windows.Data.Xml.Dom.XmlDocument, ContentType = WindowsRuntime] | Out-Null
$xml = New-Object Windows.Data.Xml.Dom.XmlDocument
$xml.LoadXml('<toast><visual><binding template="ToastText02"><text id="1">{title}</text><text id="2">{message}</text></binding></visual></toast>')
[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier('{app}').Show((New-Object Windows.UI.Notifications.ToastNotification $xml))
"""


def _run_notifier(argv: list[str], **kwargs: object) -> bool:
    """Run a notifier command, reporting whether it succeeded."""
    try:
        subprocess.run(argv, capture_output=True, check=True, timeout=10, **kwargs)  # type: ignore[call-overload]
    except FileNotFoundError:
        logger.debug("Notifier %s not installed", argv[0])
        return False
    except (subprocess.SubprocessError, OSError) as e:
        logger.debug("Notifier %s failed: %s", argv[0], e)
        return False
    return True


def _notify_windows(notification: Notification) -> bool:
    """Toast notification through PowerShell."""
    # Single quotes delimit the PowerShell strings, markup goes in XML
    def quote(text: str) -> str:
        return html.escape(text).replace("'", "''")

    script = WINDOWS_TOAST_SCRIPT.format(
        title=quote(notification.title),
        message=quote(notification.message),
        app=APP_NAME,
    )
    return _run_notifier(
        ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", script],
        creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
    )


def _notify_macos(notification: Notification) -> bool:
    """Notification Center through osascript."""
    def quote(text: str) -> str:
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'

    script = (
        f"display notification {quote(notification.message)} "
        f"with title {quote(notification.title)}"
    )
    return _run_notifier(["osascript", "-e", script])


def _notify_linux(notification: Notification) -> bool:
    return _run_notifier(
        [
            "notify-send",
            "--urgency", LINUX_URGENCY[notification.type],
            "--app-name", APP_NAME,
            notification.title,
            notification.message,
        ]
    )


def send_notification(notification: Notification) -> bool:
    """Send a system notification.

    Uses native OS notification system:
    - Windows: Toast notification via PowerShell
    - macOS: Notification Center via osascript
    - Linux: notify-send

    When none is available the message is logged instead.

    Returns:
        True if a native notification was sent.
    """
    system = platform.system()

    if system == "Windows":
        sent = _notify_windows(notification)
    elif system == "Darwin":
        sent = _notify_macos(notification)
    elif system == "Linux":
        sent = _notify_linux(notification)
    else:
        sent = False

    if not sent:
        level = logging.INFO if notification.type is NotificationType.INFO else logging.WARNING
        logger.log(level, "%s: %s", notification.title, notification.message)
    return sent


# === Sync engine messages ===


def conflicts_notification(conflicts: Sequence[Conflict]) -> Notification:
    """Build the notification shown when a sync halts on conflicts."""
    names = [c.display_name for c in conflicts[:MAX_LISTED_CONFLICTS]]
    listed = ", ".join(f"'{name}'" for name in names)
    if len(conflicts) > MAX_LISTED_CONFLICTS:
        listed += f" and {len(conflicts) - MAX_LISTED_CONFLICTS} more"
    noun = "item was" if len(conflicts) == 1 else "items were"
    return Notification(
        title="mealsync - Conflicts Detected",
        message=(
            f"{len(conflicts)} {noun} changed on this device and in the cloud: "
            f"{listed}. Choose which version to keep."
        ),
        type=NotificationType.CONFLICT,
    )


def sync_failed_notification(message: str) -> Notification:
    """Build the notification shown when a sync cycle fails."""
    return Notification(
        title="mealsync - Sync Failed",
        message=f"{message}. Your changes are kept on this device until the next sync.",
        type=NotificationType.ERROR,
    )


def reconnect_notification() -> Notification:
    """Build the notification shown when the cloud session expired."""
    return Notification(
        title="mealsync - Reconnect Required",
        message="Your OneDrive session expired. Reconnect to resume syncing.",
        type=NotificationType.WARNING,
    )
