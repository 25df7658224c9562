import asyncio
from typing import Dict, List, Optional, Sequence, Tuple, Union

from base_service import BaseService, RecordNotFoundError, new_id
from schemas import Routine, validate_routine


class RoutineService(BaseService):
    """Routines of the protocols, kept sorted by their ``order`` field."""

    def __init__(self, store, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self._routines: Tuple[Routine, ...] = ()

    @property
    def routines(self) -> Tuple[Routine, ...]:
        return self._routines

    async def load_routines(self, protocol_id: Optional[str] = None) -> None:
        self._loading = True
        self._error = None
        try:
            if protocol_id:
                rows = await self.store.routines.where(protocol_id=protocol_id)
            else:
                rows = await self.store.routines.to_list()
            rows.sort(key=lambda r: r.order)
            self._routines = tuple(rows)
        except Exception as e:
            self._record_error("load routines", e)
        finally:
            self._loading = False
            self._publish()

    async def create_routine(
        self,
        protocol_id: str,
        name: str,
        frequency: Union[str, List[str]] = "daily",
        order: int = 0,
    ) -> Routine:
        self._error = None
        try:
            routine = validate_routine(
                {
                    "id": new_id(),
                    "protocol_id": protocol_id,
                    "name": name,
                    "frequency": frequency,
                    "order": order,
                }
            )
            await self.store.routines.add(routine)
            await self.load_routines(protocol_id)
            return routine
        except Exception as e:
            self._record_error("create routine", e)
            raise

    async def update_routine(self, routine_id: str, updates: Dict[str, object]) -> Routine:
        """Merge ``updates`` into the stored routine and return the result.

        The list is reloaded for the protocol the routine belonged to before
        the update, even when ``updates`` moves it to another protocol.
        """
        self._error = None
        try:
            existing = await self.store.routines.get(routine_id)
            if existing is None:
                raise RecordNotFoundError(f"Routine {routine_id} not found")
            merged = {**existing.model_dump(), **updates, "id": existing.id}
            updated = validate_routine(merged)
            await self.store.routines.update(routine_id, updated.model_dump())
            await self.load_routines(existing.protocol_id)
            return updated
        except Exception as e:
            self._record_error("update routine", e)
            raise

    async def delete_routine(self, routine_id: str) -> None:
        """Delete a routine together with its exercises and their tracking logs."""
        self._error = None
        try:
            routine = await self.store.routines.get(routine_id)
            async with self.store.transaction() as conn:
                await self.store.routines.delete(routine_id, conn)
                if routine is not None:
                    exercises = await self.store.exercises.where(conn, routine_id=routine_id)
                    await self.store.tracking_logs.delete_where_in(
                        "exercise_id", [e.id for e in exercises], conn
                    )
                    await self.store.exercises.delete_where_in(
                        "routine_id", [routine_id], conn
                    )
            if routine is not None:
                await self.load_routines(routine.protocol_id)
        except Exception as e:
            self._record_error("delete routine", e)
            raise

    async def reorder_routines(self, protocol_id: str, ordered_ids: Sequence[str]) -> None:
        """Give each routine its position in ``ordered_ids`` as its ``order``.

        The updates run concurrently. When one fails the others may still
        have been applied.
        """
        self._error = None
        try:
            results = await asyncio.gather(
                *(
                    self.store.routines.update(routine_id, {"order": position})
                    for position, routine_id in enumerate(ordered_ids)
                ),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            await self.load_routines(protocol_id)
        except Exception as e:
            self._record_error("reorder routines", e)
            raise
