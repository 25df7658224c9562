import os
import sys
import io
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from notifications import (
    PERMISSION_DEFAULT,
    PERMISSION_DENIED,
    PERMISSION_GRANTED,
    ConsoleNotifier,
    MemoryNotifier,
)


class NotifierTest(unittest.TestCase):
    def test_request_permission(self) -> None:
        notifier = MemoryNotifier(permission=PERMISSION_DEFAULT)
        self.assertTrue(notifier.request_permission())
        self.assertEqual(notifier.permission, PERMISSION_GRANTED)

        denied = MemoryNotifier(permission=PERMISSION_DENIED)
        self.assertFalse(denied.request_permission())
        self.assertEqual(denied.permission, PERMISSION_DENIED)

    def test_no_notification_without_permission(self) -> None:
        notifier = MemoryNotifier(permission=PERMISSION_DEFAULT)
        self.assertIsNone(notifier.show_notification("Title", "Body"))
        self.assertEqual(notifier.sent, [])

    def test_memory_notifier(self) -> None:
        notifier = MemoryNotifier()
        shown = notifier.show_notification("Title", "Body", icon="/a.png")
        self.assertEqual(notifier.sent, [shown])
        self.assertEqual(shown.icon, "/a.png")
        self.assertEqual(shown.badge, "/icon-192x192.png")

    def test_console_notifier(self) -> None:
        stream = io.StringIO()
        ConsoleNotifier(stream=stream).show_notification("Protocol Reminder", "2 left")
        self.assertEqual(stream.getvalue(), "[Protocol Reminder] 2 left\n")


if __name__ == "__main__":
    unittest.main()
