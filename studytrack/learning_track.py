"""Learning-track domain models shared by the scheduler and progress engine."""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime, timezone
from typing import Annotated, Dict, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
LATEST_TIME = "23:59"
MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: str) -> int:
    """Return the minute-of-day for an ``HH:MM`` string."""
    if not isinstance(value, str) or not HHMM_PATTERN.match(value):
        raise ValueError(f"Expected a time formatted as HH:MM, got {value!r}.")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_hhmm(minute_of_day: int) -> str:
    """Format a minute-of-day as ``HH:MM``, clamped to the same calendar day."""
    clamped = min(max(minute_of_day, 0), MINUTES_PER_DAY - 1)
    return f"{clamped // 60:02d}:{clamped % 60:02d}"


def weekday_index(day: date) -> int:
    """Weekday number with 0 = Sunday through 6 = Saturday."""
    return day.isoweekday() % 7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_hhmm(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    parse_hhmm(value)
    return value


class LessonUnit(BaseModel):
    """Atomic schedulable piece of learning content."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str = ""
    estimated_minutes: int = Field(ge=1)
    type: Literal["theory", "exercise"] = "theory"
    prerequisite_ids: List[str] = Field(default_factory=list)


class ScheduleConstraints(BaseModel):
    """Per-request availability window for the session packer."""

    allowed_weekdays: Set[int] = Field(default_factory=set)
    daily_capacity_minutes: int
    start_date: date
    deadline: Optional[date] = None
    exclusion_dates: Set[date] = Field(default_factory=set)
    daily_start_time: Optional[str] = None
    preferred_time_of_day: Optional[Literal["morning", "afternoon", "evening"]] = None

    @field_validator("allowed_weekdays")
    @classmethod
    def _check_weekdays(cls, value: Set[int]) -> Set[int]:
        invalid = sorted(day for day in value if day < 0 or day > 6)
        if invalid:
            raise ValueError(f"Weekdays must be within 0..6 (0 = Sunday); got {invalid}.")
        return value

    @field_validator("daily_start_time")
    @classmethod
    def _check_start_time(cls, value: Optional[str]) -> Optional[str]:
        return _validate_hhmm(value)


class ScheduleSession(BaseModel):
    """Calendar-dated block of lessons studied together."""

    session_id: str = ""
    date: date
    start_time: str
    end_time: str
    lesson_ids: List[str] = Field(default_factory=list)
    completed_lesson_ids: List[str] = Field(default_factory=list)
    is_completed: bool = False
    is_missed: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_times(cls, value: str) -> str:
        parse_hhmm(value)
        return value

    @model_validator(mode="after")
    def _default_session_id(self) -> "ScheduleSession":
        if not self.session_id:
            self.session_id = session_id_for(self.date)
        return self


def session_id_for(day: date) -> str:
    return f"session-{day.isoformat()}"


class Schedule(BaseModel):
    """Ordered sessions generated for a single learning track."""

    track_id: str = ""
    start_date: date
    end_date: date
    daily_start_time: str = "18:00"
    generated_at: datetime = Field(default_factory=_utcnow)
    sessions: List[ScheduleSession] = Field(default_factory=list)
    total_lessons: int = Field(default=0, ge=0)
    completed_lessons: int = Field(default=0, ge=0)
    lesson_minutes: Dict[str, int] = Field(default_factory=dict)


class ConstraintViolation(BaseModel):
    """Constraints make scheduling impossible; surfaced, never auto-corrected."""

    kind: Literal["constraint_violation"] = "constraint_violation"
    code: Literal[
        "no_allowed_days",
        "deadline_before_start",
        "invalid_capacity",
        "prerequisite_order",
        "duplicate_unit",
    ]
    message: str
    unit_ids: List[str] = Field(default_factory=list)


class CapacityExceeded(BaseModel):
    """Valid constraints that cannot fit every unit before the deadline."""

    kind: Literal["capacity_exceeded"] = "capacity_exceeded"
    message: str
    partial_schedule: Schedule
    unplaced_unit_ids: List[str] = Field(default_factory=list)


PackResult = Union[Schedule, ConstraintViolation, CapacityExceeded]


class InvariantViolation(RuntimeError):
    """Internal signal that a cached schedule value diverged from its source."""


class _EventBase(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = Field(default_factory=_utcnow)


class LessonCompletedEvent(_EventBase):
    kind: Literal["lesson_completed"] = "lesson_completed"
    lesson_id: str = Field(min_length=1)


class TestSubmittedEvent(_EventBase):
    __test__ = False

    kind: Literal["test_submitted"] = "test_submitted"
    test_id: str = Field(min_length=1)
    score: float = Field(ge=0, le=100, allow_inf_nan=False)


class TimeSpentEvent(_EventBase):
    kind: Literal["time_spent"] = "time_spent"
    lesson_id: str = ""
    minutes: float = Field(allow_inf_nan=False)


class StarAwardedEvent(_EventBase):
    kind: Literal["star_awarded"] = "star_awarded"
    source_id: str = Field(min_length=1)
    tier: Literal["bronze", "silver", "gold"]


ProgressEvent = Annotated[
    Union[LessonCompletedEvent, TestSubmittedEvent, TimeSpentEvent, StarAwardedEvent],
    Field(discriminator="kind"),
]


class StarsByTier(BaseModel):
    bronze: int = 0
    silver: int = 0
    gold: int = 0


class DailyMinutes(BaseModel):
    date: date
    minutes: int = 0


class ProgressSnapshot(BaseModel):
    """Aggregate learner progress; a pure function of the event log."""

    completed_lessons: int = 0
    total_lessons: int = 0
    completed_tests: int = 0
    total_tests: int = 0
    average_score: float = 0.0
    total_time_spent_minutes: int = 0
    stars_by_tier: StarsByTier = Field(default_factory=StarsByTier)
    current_streak_days: int = 0
    longest_streak_days: int = 0
    last_activity_date: Optional[date] = None
    completion_percent: int = 0
    total_stars: int = 0
    star_level: int = 1
    stars_to_next_level: int = 0
    active_days: int = 0
    daily_minutes: List[DailyMinutes] = Field(default_factory=list)
    average_daily_minutes: int = 0
    most_active_weekday: Optional[str] = None


class Achievement(BaseModel):
    """Threshold rule whose unlock is one-way."""

    achievement_id: str
    category: str
    required_value: float = Field(ge=0)
    current_value: float = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    title: str = ""
    description: str = ""


class AchievementReport(BaseModel):
    achievements: List[Achievement] = Field(default_factory=list)
    newly_unlocked: List[Achievement] = Field(default_factory=list)


__all__ = [
    "Achievement",
    "AchievementReport",
    "CapacityExceeded",
    "ConstraintViolation",
    "DailyMinutes",
    "InvariantViolation",
    "LessonCompletedEvent",
    "LessonUnit",
    "PackResult",
    "ProgressEvent",
    "ProgressSnapshot",
    "Schedule",
    "ScheduleConstraints",
    "ScheduleSession",
    "StarAwardedEvent",
    "StarsByTier",
    "TestSubmittedEvent",
    "TimeSpentEvent",
    "format_hhmm",
    "parse_hhmm",
    "session_id_for",
    "weekday_index",
]
