import datetime
import sys
from dataclasses import dataclass, field
from typing import List, Optional, TextIO

DEFAULT_ICON = "/icon-192x192.png"

PERMISSION_DEFAULT = "default"
PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"


@dataclass
class Notification:
    title: str
    body: str
    icon: str = DEFAULT_ICON
    badge: str = DEFAULT_ICON
    created_at: datetime.datetime = field(default_factory=datetime.datetime.now)


class Notifier:
    """Presents local notifications on the host platform.

    ``permission`` mirrors the platform's notification permission and is
    one of ``default``, ``granted`` or ``denied``.
    """

    def __init__(self, permission: str = PERMISSION_DEFAULT) -> None:
        self.permission = permission

    def request_permission(self) -> bool:
        if self.permission == PERMISSION_DEFAULT:
            self.permission = PERMISSION_GRANTED
        return self.permission == PERMISSION_GRANTED

    def show_notification(
        self,
        title: str,
        body: str,
        icon: str = DEFAULT_ICON,
        badge: str = DEFAULT_ICON,
    ) -> Optional[Notification]:
        """Present a notification; return ``None`` without permission."""
        if self.permission != PERMISSION_GRANTED:
            return None
        notification = Notification(title, body, icon, badge)
        self._present(notification)
        return notification

    def _present(self, notification: Notification) -> None:
        raise NotImplementedError


class ConsoleNotifier(Notifier):
    """Writes notifications to a text stream."""

    def __init__(
        self, permission: str = PERMISSION_GRANTED, stream: Optional[TextIO] = None
    ) -> None:
        super().__init__(permission)
        self.stream = stream or sys.stdout

    def _present(self, notification: Notification) -> None:
        self.stream.write(f"[{notification.title}] {notification.body}\n")
        self.stream.flush()


class MemoryNotifier(Notifier):
    """Keeps presented notifications in memory."""

    def __init__(self, permission: str = PERMISSION_GRANTED) -> None:
        super().__init__(permission)
        self.sent: List[Notification] = []

    def _present(self, notification: Notification) -> None:
        self.sent.append(notification)
