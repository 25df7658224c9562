import datetime
import math
from typing import Iterable, Optional, Tuple

from schemas import WEEKDAYS


class ScheduleTools:
    """Calendar helpers shared by the daily views and the reminder."""

    DEFAULT_REMINDER_TIME: str = "09:00"

    @staticmethod
    def weekday_code(day: datetime.date) -> str:
        """Return the three letter weekday code (``mon`` .. ``sun``) of ``day``."""
        return WEEKDAYS[day.weekday()]

    @staticmethod
    def date_string(day: datetime.date) -> str:
        """Return ``day`` as ``YYYY-MM-DD`` in local time."""
        if isinstance(day, datetime.datetime):
            day = day.date()
        return day.isoformat()

    @staticmethod
    def week_of_month(day: datetime.date) -> int:
        return math.ceil(day.day / 7)

    @classmethod
    def parse_reminder_time(cls, value: Optional[str]) -> Tuple[int, int]:
        """Split an ``HH:MM`` string into hours and minutes.

        Missing parts fall back to 9 hours and 0 minutes.
        """
        parts = (value or cls.DEFAULT_REMINDER_TIME).split(":")
        hours = int(parts[0]) if parts and parts[0] else 9
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
        if not (0 <= hours <= 23 and 0 <= minutes <= 59):
            raise ValueError(f"invalid reminder time: {value}")
        return hours, minutes

    @classmethod
    def reminder_instant(
        cls, now: datetime.datetime, value: Optional[str]
    ) -> datetime.datetime:
        hours, minutes = cls.parse_reminder_time(value)
        return now.replace(hour=hours, minute=minutes, second=0, microsecond=0)

    @classmethod
    def is_scheduled_on_date(
        cls,
        duration: str,
        day: datetime.date,
        schedule_days: Optional[Iterable[str]] = None,
    ) -> bool:
        """Return whether a protocol with ``duration`` is due on ``day``.

        A non-empty ``schedule_days`` list overrides the duration rule.
        Weekly protocols fall on Mondays, monthly ones on the first Monday
        and yearly ones on 1 January.
        """
        days = list(schedule_days or [])
        if days:
            return cls.weekday_code(day) in days
        if duration == "daily":
            return True
        if duration == "weekly":
            return day.weekday() == 0
        if duration == "monthly":
            return day.weekday() == 0 and cls.week_of_month(day) == 1
        if duration == "yearly":
            return day.month == 1 and day.day == 1
        return False

    @staticmethod
    def rounded_percentage(part: float, whole: float) -> int:
        """Return ``part / whole`` as a percentage rounded half up."""
        if whole <= 0:
            return 0
        return int(math.floor(part / whole * 100 + 0.5))
