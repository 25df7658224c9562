import datetime
from typing import List, Literal, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

WEEKDAYS: Tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

Weekday = Literal["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
Duration = Literal["daily", "weekly", "monthly", "yearly"]
Status = Literal["active", "paused", "completed"]
TimeOfDay = Literal["morning", "afternoon", "evening"]
Theme = Literal["light", "dark", "auto"]


class RecordValidationError(ValueError):
    """Raised when a candidate record does not match its schema."""


class RecordSchema(BaseModel):
    """Base for every record kind kept in the local store."""

    model_config = ConfigDict(extra="forbid")


def _local_naive(value: datetime.datetime) -> datetime.datetime:
    """Store timestamps as naive local time so they stay comparable."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class Protocol(RecordSchema):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: str = "general"
    duration: Duration
    status: Status
    target_metric: Optional[str] = None
    schedule_days: Optional[List[Weekday]] = None
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def local_timestamps(cls, value: datetime.datetime) -> datetime.datetime:
        return _local_naive(value)


class Routine(RecordSchema):
    id: str = Field(min_length=1)
    protocol_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    order: int = Field(ge=0, strict=True)
    frequency: Union[Literal["daily", "weekly"], List[Weekday]]
    time_of_day: Optional[TimeOfDay] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class Exercise(RecordSchema):
    id: str = Field(min_length=1)
    routine_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    sets: Optional[int] = Field(default=None, gt=0, strict=True)
    reps: Optional[int] = Field(default=None, gt=0, strict=True)
    weight: Optional[float] = Field(default=None, gt=0)
    equipment_type: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=500)


class TrackingLog(RecordSchema):
    id: str = Field(min_length=1)
    exercise_id: str = Field(min_length=1)
    date: datetime.datetime
    completed: bool = Field(strict=True)
    sets_done: Optional[int] = Field(default=None, ge=0, strict=True)
    reps_done: Optional[int] = Field(default=None, ge=0, strict=True)
    weight_used: Optional[float] = Field(default=None, gt=0)
    duration_taken: Optional[float] = Field(default=None, gt=0)
    energy_level: Optional[int] = Field(default=None, ge=1, le=10, strict=True)
    difficulty_felt: Optional[int] = Field(default=None, ge=1, le=10, strict=True)
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("date")
    @classmethod
    def local_date(cls, value: datetime.datetime) -> datetime.datetime:
        return _local_naive(value)


class Settings(RecordSchema):
    user_id: str = Field(min_length=1)
    theme: Theme = "auto"
    notifications_enabled: bool = Field(default=False, strict=True)
    reminder_time: Optional[str] = Field(
        default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$"
    )
    reminder_days: Optional[List[Weekday]] = None
    rest_day_schedule: Optional[List[Weekday]] = None


class DailyCompletion(RecordSchema):
    id: str = Field(min_length=1)
    protocol_id: str = Field(min_length=1)
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    completed_at: datetime.datetime
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("date")
    @classmethod
    def calendar_date(cls, value: str) -> str:
        datetime.date.fromisoformat(value)
        return value

    @field_validator("completed_at")
    @classmethod
    def local_completed_at(cls, value: datetime.datetime) -> datetime.datetime:
        return _local_naive(value)


class ExportTables(RecordSchema):
    protocols: List[Protocol]
    routines: List[Routine]
    exercises: List[Exercise]
    tracking_logs: List[TrackingLog]
    settings: List[Settings]
    daily_completions: List[DailyCompletion]


class ExportData(RecordSchema):
    """Backup document holding every record of the local store."""

    version: Literal[1]
    exported_at: datetime.datetime
    data: ExportTables

    @field_validator("exported_at")
    @classmethod
    def local_exported_at(cls, value: datetime.datetime) -> datetime.datetime:
        return _local_naive(value)


RecordT = TypeVar("RecordT", bound=RecordSchema)


def _validate(model: Type[RecordT], data: Mapping) -> RecordT:
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        raise RecordValidationError(str(e)) from e


def validate_protocol(data: Mapping) -> Protocol:
    return _validate(Protocol, data)


def validate_routine(data: Mapping) -> Routine:
    return _validate(Routine, data)


def validate_exercise(data: Mapping) -> Exercise:
    return _validate(Exercise, data)


def validate_tracking_log(data: Mapping) -> TrackingLog:
    return _validate(TrackingLog, data)


def validate_settings(data: Mapping) -> Settings:
    return _validate(Settings, data)


def validate_daily_completion(data: Mapping) -> DailyCompletion:
    return _validate(DailyCompletion, data)
