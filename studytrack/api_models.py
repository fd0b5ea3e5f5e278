"""Request and response payloads for the track HTTP surface."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, RootModel, field_validator

from .learning_track import LessonUnit, ProgressEvent, ScheduleSession, parse_hhmm


class RegisterTrackRequest(BaseModel):
    lessons: List[Dict[str, Any]] = Field(default_factory=list)
    total_tests: int = Field(default=0, ge=0)


class RegisterTrackResponse(BaseModel):
    track_id: str
    lessons: List[LessonUnit] = Field(default_factory=list)
    total_tests: int = 0


class RescheduleRequest(BaseModel):
    date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parse_hhmm(value)
        return value


class DaySchedulePayload(BaseModel):
    date: date
    lesson_ids: List[str] = Field(default_factory=list)
    sessions: List[ScheduleSession] = Field(default_factory=list)


class WeekSchedulePayload(BaseModel):
    week_start: date
    week_end: date
    sessions: List[ScheduleSession] = Field(default_factory=list)


class ProgressEventPayload(RootModel[ProgressEvent]):
    """Any progress event, selected by its `kind` field."""


class RecordEventResponse(BaseModel):
    event_id: str
    kind: str
    recorded: bool


__all__ = [
    "DaySchedulePayload",
    "ProgressEventPayload",
    "RecordEventResponse",
    "RegisterTrackRequest",
    "RegisterTrackResponse",
    "RescheduleRequest",
    "WeekSchedulePayload",
]
