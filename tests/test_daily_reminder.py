import os
import sys
import datetime
import unittest
import pytest
from unittest.mock import AsyncMock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import LocalStore, StoreError
from notifications import MemoryNotifier, PERMISSION_DENIED
from reminder_service import (
    LAST_REMINDER_KEY,
    DailyReminderService,
    decide_reminder,
    reminder_body,
    schedule_daily_reminder,
)
from schemas import DailyCompletion, Protocol, Settings
from settings_service import default_settings

# 1 January 2024 was a Monday.
MONDAY_MORNING = datetime.datetime(2024, 1, 1, 10, 0)


def _settings(**overrides) -> Settings:
    return default_settings().model_copy(update={"notifications_enabled": True, **overrides})


class DecideReminderTest(unittest.TestCase):
    def decide(self, settings=None, permission="granted", now=MONDAY_MORNING,
               last_shown=None, active=("p1",), completed=()):
        if settings is None:
            settings = _settings()
        return decide_reminder(settings, permission, now, last_shown, active, completed)

    def test_due(self) -> None:
        decision = self.decide(active=("p1", "p2"), completed=("p2",))
        self.assertTrue(decision.should_notify)
        self.assertEqual(decision.incomplete_count, 1)

    def test_disabled(self) -> None:
        decision = self.decide(settings=_settings(notifications_enabled=False))
        self.assertFalse(decision.should_notify)
        self.assertEqual(decision.reason, "notifications disabled")

    def test_missing_settings(self) -> None:
        decision = decide_reminder(None, "granted", MONDAY_MORNING, None, ["p1"], [])
        self.assertFalse(decision.should_notify)

    def test_permission(self) -> None:
        self.assertFalse(self.decide(permission="default").should_notify)

    def test_not_a_reminder_day(self) -> None:
        decision = self.decide(settings=_settings(reminder_days=["tue", "wed"]))
        self.assertEqual(decision.reason, "not a reminder day")

    def test_missing_days_means_every_day(self) -> None:
        self.assertTrue(self.decide(settings=_settings(reminder_days=None)).should_notify)

    def test_before_reminder_time(self) -> None:
        decision = self.decide(settings=_settings(reminder_time="10:01"))
        self.assertEqual(decision.reason, "before reminder time")
        self.assertTrue(self.decide(settings=_settings(reminder_time="10:00")).should_notify)

    def test_missing_time_defaults_to_nine(self) -> None:
        early = MONDAY_MORNING.replace(hour=8, minute=59)
        self.assertFalse(self.decide(settings=_settings(reminder_time=None), now=early).should_notify)
        self.assertTrue(self.decide(settings=_settings(reminder_time=None)).should_notify)

    def test_already_shown(self) -> None:
        decision = self.decide(last_shown="2024-01-01")
        self.assertEqual(decision.reason, "already shown today")
        self.assertTrue(self.decide(last_shown="2023-12-31").should_notify)

    def test_all_completed(self) -> None:
        decision = self.decide(active=("p1", "p2"), completed=("p1", "p2", "p2"))
        self.assertFalse(decision.should_notify)

    def test_no_active_protocols(self) -> None:
        self.assertFalse(self.decide(active=()).should_notify)

    def test_body(self) -> None:
        self.assertEqual(reminder_body(1), "1 protocol to complete today")
        self.assertEqual(reminder_body(3), "3 protocols to complete today")


async def _seed(store, settings=None, protocols=(("p1", "active"),), completed=()):
    await store.settings.put(settings or _settings())
    for pid, status in protocols:
        await store.protocols.add(
            Protocol(
                id=pid,
                name=pid,
                duration="daily",
                status=status,
                created_at=MONDAY_MORNING,
                updated_at=MONDAY_MORNING,
            )
        )
    for i, pid in enumerate(completed):
        await store.daily_completions.add(
            DailyCompletion(
                id=f"c{i}", protocol_id=pid, date="2024-01-01", completed_at=MONDAY_MORNING
            )
        )


def _service(store, notifier, now=MONDAY_MORNING):
    return DailyReminderService(store, notifier, delay=0, clock=lambda: now)


@pytest.mark.asyncio
async def test_reminder_shown_once_per_day(tmp_path):
    store = LocalStore(str(tmp_path / "reminder.db"))
    await _seed(store)
    notifier = MemoryNotifier()
    service = _service(store, notifier)

    decision = await service.run()
    assert decision.should_notify
    assert len(notifier.sent) == 1
    assert notifier.sent[0].title == "Protocol Reminder"
    assert notifier.sent[0].body == "1 protocol to complete today"
    assert notifier.sent[0].icon == "/icon-192x192.png"
    assert await store.app_state.get_text(LAST_REMINDER_KEY) == "2024-01-01"

    again = await service.run()
    assert not again.should_notify
    assert len(notifier.sent) == 1

    tomorrow = _service(store, notifier, MONDAY_MORNING + datetime.timedelta(days=1))
    await tomorrow.run()
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_no_reminder_when_disabled(tmp_path):
    store = LocalStore(str(tmp_path / "reminder.db"))
    await _seed(store, settings=_settings(notifications_enabled=False))
    notifier = MemoryNotifier()
    await _service(store, notifier).run()
    assert notifier.sent == []
    assert await store.app_state.get_text(LAST_REMINDER_KEY) is None


@pytest.mark.asyncio
async def test_no_reminder_without_permission(tmp_path):
    store = LocalStore(str(tmp_path / "reminder.db"))
    await _seed(store)
    notifier = MemoryNotifier(permission=PERMISSION_DENIED)
    await _service(store, notifier).run()
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_no_reminder_when_everything_completed(tmp_path):
    store = LocalStore(str(tmp_path / "reminder.db"))
    await _seed(
        store,
        protocols=(("p1", "active"), ("p2", "active"), ("p3", "paused")),
        completed=("p1", "p2", "p2"),
    )
    notifier = MemoryNotifier()
    await _service(store, notifier).run()
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_only_active_protocols_count(tmp_path):
    store = LocalStore(str(tmp_path / "reminder.db"))
    await _seed(
        store,
        protocols=(("p1", "active"), ("p2", "paused"), ("p3", "active")),
    )
    notifier = MemoryNotifier()
    decision = await _service(store, notifier).run()
    assert decision.incomplete_count == 2
    assert notifier.sent[0].body == "2 protocols to complete today"


@pytest.mark.asyncio
async def test_no_reminder_without_settings_record(tmp_path):
    store = LocalStore(str(tmp_path / "reminder.db"))
    notifier = MemoryNotifier()
    decision = await _service(store, notifier).run()
    assert not decision.should_notify
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_storage_failure_degrades_silently(tmp_path):
    store = LocalStore(str(tmp_path / "reminder.db"))
    await _seed(store)
    store.protocols.where = AsyncMock(side_effect=StoreError("locked"))
    notifier = MemoryNotifier()
    decision = await _service(store, notifier).run()
    assert not decision.should_notify
    assert decision.reason.startswith("error")
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_schedule_daily_reminder_runs_in_background(tmp_path):
    store = LocalStore(str(tmp_path / "reminder.db"))
    notifier = MemoryNotifier()
    task = schedule_daily_reminder(store, notifier, delay=0)
    decision = await task
    assert decision.reason == "notifications disabled"
