"""Once-a-day local reminder about protocols still open today.

The check runs once when the application starts. It never raises: any
failure to read the state it needs means no reminder is shown.
"""
import asyncio
import datetime
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from db import LocalStore
from notifications import DEFAULT_ICON, PERMISSION_GRANTED, Notifier
from schemas import WEEKDAYS, Settings
from settings_service import DEFAULT_USER_ID
from tools import ScheduleTools

logger = logging.getLogger(__name__)

LAST_REMINDER_KEY = "last_reminder_date"
REMINDER_TITLE = "Protocol Reminder"


@dataclass(frozen=True)
class ReminderDecision:
    should_notify: bool
    reason: str
    incomplete_count: int = 0


def reminder_body(incomplete_count: int) -> str:
    plural = "s" if incomplete_count > 1 else ""
    return f"{incomplete_count} protocol{plural} to complete today"


def decide_reminder(
    settings: Optional[Settings],
    permission: str,
    now: datetime.datetime,
    last_shown: Optional[str],
    active_protocol_ids: Iterable[str],
    completed_protocol_ids: Iterable[str],
) -> ReminderDecision:
    """Decide whether the daily reminder is due at ``now``.

    Any completion record for a protocol today counts, duplicates included.
    """
    if settings is None or not settings.notifications_enabled:
        return ReminderDecision(False, "notifications disabled")
    if permission != PERMISSION_GRANTED:
        return ReminderDecision(False, "permission not granted")

    reminder_days = settings.reminder_days
    if reminder_days is None:
        reminder_days = list(WEEKDAYS)
    if ScheduleTools.weekday_code(now.date()) not in reminder_days:
        return ReminderDecision(False, "not a reminder day")

    if now < ScheduleTools.reminder_instant(now, settings.reminder_time):
        return ReminderDecision(False, "before reminder time")

    if last_shown == ScheduleTools.date_string(now):
        return ReminderDecision(False, "already shown today")

    completed = set(completed_protocol_ids)
    incomplete = [pid for pid in active_protocol_ids if pid and pid not in completed]
    if not incomplete:
        return ReminderDecision(False, "nothing left today")
    return ReminderDecision(True, "protocols left today", len(incomplete))


class DailyReminderService:
    """Runs the reminder check against the local store."""

    def __init__(
        self,
        store: LocalStore,
        notifier: Notifier,
        delay: float = 1.0,
        clock=datetime.datetime.now,
        user_id: str = DEFAULT_USER_ID,
        icon: str = DEFAULT_ICON,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.delay = delay
        self.clock = clock
        self.user_id = user_id
        self.icon = icon

    async def _decide(self, now: datetime.datetime) -> ReminderDecision:
        settings = await self.store.settings.get(self.user_id)
        last_shown = await self.store.app_state.get_text(LAST_REMINDER_KEY)
        today = ScheduleTools.date_string(now)
        protocols = await self.store.protocols.where(status="active")
        completions = await self.store.daily_completions.where(date=today)
        return decide_reminder(
            settings,
            self.notifier.permission,
            now,
            last_shown,
            [p.id for p in protocols],
            [c.protocol_id for c in completions],
        )

    async def run(self) -> ReminderDecision:
        """Show at most one reminder per calendar day."""
        if self.delay:
            await asyncio.sleep(self.delay)
        try:
            now = self.clock()
            decision = await self._decide(now)
            if decision.should_notify:
                shown = self.notifier.show_notification(
                    REMINDER_TITLE,
                    reminder_body(decision.incomplete_count),
                    icon=self.icon,
                    badge=self.icon,
                )
                if shown is None:
                    return ReminderDecision(False, "permission not granted")
                await self.store.app_state.set_text(
                    LAST_REMINDER_KEY, ScheduleTools.date_string(now)
                )
        except Exception as e:
            logger.debug("Daily reminder skipped: %s", e)
            return ReminderDecision(False, f"error: {e}")
        logger.debug("Daily reminder: %s", decision.reason)
        return decision


def schedule_daily_reminder(
    store: LocalStore, notifier: Notifier, delay: float = 1.0
) -> "asyncio.Task[ReminderDecision]":
    """Start the reminder check in the background of the running loop."""
    service = DailyReminderService(store, notifier, delay=delay)
    return asyncio.ensure_future(service.run())
