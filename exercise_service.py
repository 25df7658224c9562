from typing import Dict, Optional, Tuple

from base_service import BaseService, RecordNotFoundError, new_id
from schemas import Exercise, validate_exercise


class ExerciseService(BaseService):
    """Exercises belonging to routines."""

    def __init__(self, store, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self._exercises: Tuple[Exercise, ...] = ()

    @property
    def exercises(self) -> Tuple[Exercise, ...]:
        return self._exercises

    async def load_exercises(self, routine_id: Optional[str] = None) -> None:
        self._loading = True
        self._error = None
        try:
            if routine_id:
                rows = await self.store.exercises.where(routine_id=routine_id)
            else:
                rows = await self.store.exercises.to_list()
            self._exercises = tuple(rows)
        except Exception as e:
            self._record_error("load exercises", e)
        finally:
            self._loading = False
            self._publish()

    async def create_exercise(self, routine_id: str, name: str, **details) -> Exercise:
        """Add an exercise; ``details`` holds sets, reps, weight, equipment_type or notes."""
        self._error = None
        try:
            exercise = validate_exercise(
                {"id": new_id(), "routine_id": routine_id, "name": name, **details}
            )
            await self.store.exercises.add(exercise)
            await self.load_exercises(routine_id)
            return exercise
        except Exception as e:
            self._record_error("create exercise", e)
            raise

    async def update_exercise(self, exercise_id: str, updates: Dict[str, object]) -> Exercise:
        self._error = None
        try:
            existing = await self.store.exercises.get(exercise_id)
            if existing is None:
                raise RecordNotFoundError(f"Exercise {exercise_id} not found")
            updated = validate_exercise(
                {**existing.model_dump(), **updates, "id": existing.id}
            )
            await self.store.exercises.update(exercise_id, updated.model_dump())
            await self.load_exercises(existing.routine_id)
            return updated
        except Exception as e:
            self._record_error("update exercise", e)
            raise

    async def delete_exercise(self, exercise_id: str) -> None:
        """Delete an exercise and its tracking logs."""
        self._error = None
        try:
            exercise = await self.store.exercises.get(exercise_id)
            async with self.store.transaction() as conn:
                await self.store.tracking_logs.delete_where_in(
                    "exercise_id", [exercise_id], conn
                )
                await self.store.exercises.delete(exercise_id, conn)
            if exercise is not None:
                await self.load_exercises(exercise.routine_id)
        except Exception as e:
            self._record_error("delete exercise", e)
            raise
