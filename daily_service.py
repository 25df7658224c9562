import datetime
from typing import Dict, Optional, Tuple

from base_service import BaseService, new_id
from schemas import DailyCompletion, Protocol, validate_daily_completion
from tools import ScheduleTools


class DailyService(BaseService):
    """Today's protocols and their completion markers.

    A protocol counts as done for a day when at least one completion
    record exists for it; ``complete_protocol`` never writes a second one.
    """

    def __init__(self, store, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self._todays_protocols: Tuple[Protocol, ...] = ()
        self._completions: Tuple[DailyCompletion, ...] = ()

    @property
    def todays_protocols(self) -> Tuple[Protocol, ...]:
        return self._todays_protocols

    @property
    def completions(self) -> Tuple[DailyCompletion, ...]:
        return self._completions

    @property
    def today(self) -> str:
        return ScheduleTools.date_string(self.clock())

    @property
    def progress(self) -> Dict[str, int]:
        total = len(self._todays_protocols)
        completed = sum(
            1 for p in self._todays_protocols if self.is_completed_today(p.id)
        )
        return {
            "total": total,
            "completed": completed,
            "percentage": ScheduleTools.rounded_percentage(completed, total),
        }

    def is_scheduled_today(self, protocol: Protocol) -> bool:
        return ScheduleTools.is_scheduled_on_date(
            protocol.duration, self.clock().date(), protocol.schedule_days
        )

    async def load_today(self) -> None:
        self._loading = True
        self._error = None
        try:
            active = await self.store.protocols.where(status="active")
            self._todays_protocols = tuple(p for p in active if self.is_scheduled_today(p))
            self._completions = tuple(
                await self.store.daily_completions.where(date=self.today)
            )
        except Exception as e:
            self._record_error("load daily data", e)
        finally:
            self._loading = False
            self._publish()

    def is_completed_today(self, protocol_id: str) -> bool:
        today = self.today
        return any(
            c.protocol_id == protocol_id and c.date == today for c in self._completions
        )

    async def complete_protocol(
        self, protocol_id: str, notes: Optional[str] = None
    ) -> Optional[DailyCompletion]:
        """Mark ``protocol_id`` done today; return ``None`` when it already was."""
        if self.is_completed_today(protocol_id):
            return None
        self._error = None
        try:
            today = self.today
            existing = await self.store.daily_completions.where(
                protocol_id=protocol_id, date=today
            )
            if existing:
                self._completions = self._completions + (existing[0],)
                self._publish()
                return None
            completion = validate_daily_completion(
                {
                    "id": new_id(),
                    "protocol_id": protocol_id,
                    "date": today,
                    "completed_at": self.clock(),
                    "notes": notes,
                }
            )
            await self.store.daily_completions.add(completion)
            self._completions = self._completions + (completion,)
            self._publish()
            return completion
        except Exception as e:
            self._record_error("complete protocol", e)
            raise

    async def uncomplete_protocol(self, protocol_id: str) -> None:
        today = self.today
        matching = [
            c for c in self._completions if c.protocol_id == protocol_id and c.date == today
        ]
        if not matching:
            return
        self._error = None
        try:
            for completion in matching:
                await self.store.daily_completions.delete(completion.id)
            removed = {c.id for c in matching}
            self._completions = tuple(c for c in self._completions if c.id not in removed)
            self._publish()
        except Exception as e:
            self._record_error("uncomplete protocol", e)
            raise

    async def toggle_completion(self, protocol_id: str) -> None:
        if self.is_completed_today(protocol_id):
            await self.uncomplete_protocol(protocol_id)
        else:
            await self.complete_protocol(protocol_id)

    async def _completion_dates(self, protocol_id: str):
        completions = await self.store.daily_completions.where(protocol_id=protocol_id)
        return sorted({c.date for c in completions}, reverse=True)

    async def get_streak(self, protocol_id: str) -> int:
        """Count consecutive completed days ending today for daily protocols.

        Other durations report their total number of completed days.
        """
        try:
            protocol = await self.store.protocols.get(protocol_id)
            if protocol is None:
                return 0
            dates = await self._completion_dates(protocol_id)
        except Exception as e:
            self._logger.error("Failed to compute streak for %s: %s", protocol_id, e)
            return 0
        if protocol.duration != "daily":
            return len(dates)

        streak = 0
        check_date = self.clock().date()
        for completed_on in dates:
            expected = ScheduleTools.date_string(check_date)
            if completed_on == expected:
                streak += 1
                check_date -= datetime.timedelta(days=1)
            elif completed_on < expected:
                break
        return streak

    async def get_completion_rate(self, protocol_id: str, days: int = 30) -> int:
        """Return the share of expected completions reached over ``days`` days."""
        try:
            protocol = await self.store.protocols.get(protocol_id)
            if protocol is None:
                return 0
            dates = await self._completion_dates(protocol_id)
        except Exception as e:
            self._logger.error("Failed to compute completion rate for %s: %s", protocol_id, e)
            return 0
        start = ScheduleTools.date_string(
            self.clock().date() - datetime.timedelta(days=days)
        )
        recent = sum(1 for d in dates if d >= start)
        if protocol.duration == "daily":
            return ScheduleTools.rounded_percentage(recent, days)
        if protocol.duration == "weekly":
            return ScheduleTools.rounded_percentage(recent, days / 7)
        return 100 if recent > 0 else 0
