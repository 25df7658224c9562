import datetime
from typing import Dict, List, Optional, Tuple

from base_service import BaseService, RecordNotFoundError, new_id
from schemas import TrackingLog, validate_tracking_log
from tools import ScheduleTools


class TrackingService(BaseService):
    """Per-exercise history, newest entries first."""

    RECENT_LIMIT = 10

    def __init__(self, store, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self._logs: Tuple[TrackingLog, ...] = ()

    @property
    def logs(self) -> Tuple[TrackingLog, ...]:
        return self._logs

    @property
    def completion_rate(self) -> int:
        completed = sum(1 for log in self._logs if log.completed)
        return ScheduleTools.rounded_percentage(completed, len(self._logs))

    @property
    def recent_logs(self) -> Tuple[TrackingLog, ...]:
        return self._logs[: self.RECENT_LIMIT]

    async def load_logs(self, exercise_id: Optional[str] = None) -> None:
        self._loading = True
        self._error = None
        try:
            if exercise_id:
                rows = await self.store.tracking_logs.where(exercise_id=exercise_id)
            else:
                rows = await self.store.tracking_logs.to_list()
            rows.sort(key=lambda log: log.date, reverse=True)
            self._logs = tuple(rows)
        except Exception as e:
            self._record_error("load tracking logs", e)
        finally:
            self._loading = False
            self._publish()

    async def log_exercise(
        self, exercise_id: str, date: datetime.datetime, **data
    ) -> TrackingLog:
        """Record how ``exercise_id`` went on ``date``.

        ``data`` may carry ``completed`` (default ``False``) and the
        optional performance fields of a tracking log.
        """
        self._error = None
        try:
            log = validate_tracking_log(
                {
                    "id": new_id(),
                    "exercise_id": exercise_id,
                    "date": date,
                    "completed": data.pop("completed", False),
                    **data,
                }
            )
            await self.store.tracking_logs.add(log)
            await self.load_logs(exercise_id)
            return log
        except Exception as e:
            self._record_error("log exercise", e)
            raise

    async def update_log(self, log_id: str, updates: Dict[str, object]) -> TrackingLog:
        self._error = None
        try:
            existing = await self.store.tracking_logs.get(log_id)
            if existing is None:
                raise RecordNotFoundError(f"Log {log_id} not found")
            updated = validate_tracking_log(
                {**existing.model_dump(), **updates, "id": existing.id}
            )
            await self.store.tracking_logs.update(log_id, updated.model_dump())
            await self.load_logs(existing.exercise_id)
            return updated
        except Exception as e:
            self._record_error("update log", e)
            raise

    async def delete_log(self, log_id: str) -> None:
        self._error = None
        try:
            log = await self.store.tracking_logs.get(log_id)
            await self.store.tracking_logs.delete(log_id)
            if log is not None:
                await self.load_logs(log.exercise_id)
        except Exception as e:
            self._record_error("delete log", e)
            raise

    async def logs_for_date(
        self, exercise_id: str, day: datetime.date
    ) -> List[TrackingLog]:
        if isinstance(day, datetime.datetime):
            day = day.date()
        try:
            rows = await self.store.tracking_logs.where(exercise_id=exercise_id)
        except Exception as e:
            self._logger.error("Failed to get logs for date: %s", e)
            return []
        return [log for log in rows if log.date.date() == day]

    async def progress_by_exercise(
        self, exercise_id: str, days: int = 30
    ) -> List[TrackingLog]:
        since = self.clock() - datetime.timedelta(days=days)
        try:
            rows = await self.store.tracking_logs.where(exercise_id=exercise_id)
        except Exception as e:
            self._logger.error("Failed to get progress: %s", e)
            return []
        return [log for log in rows if log.date >= since]
