"""Track persistence: lesson source, event log, schedules and achievements.

Both repositories expose the same API. ``InMemoryTrackRepository`` keeps deep
copies behind a lock and backs tests and single-process deployments;
``DatabaseTrackRepository`` maps the same records onto the SQLAlchemy models.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from pydantic import TypeAdapter
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..db.models import (
    AchievementModel,
    ProgressEventModel,
    ScheduleSessionModel,
    TrackModel,
    TrackScheduleModel,
)
from ..db.session import session_scope
from ..learning_track import Achievement, LessonUnit, ProgressEvent, Schedule, ScheduleSession

logger = logging.getLogger(__name__)

_event_adapter: TypeAdapter = TypeAdapter(ProgressEvent)


def _normalize_track_id(track_id: str) -> str:
    normalized = track_id.strip()
    if not normalized:
        raise ValueError("Track id cannot be empty.")
    return normalized


@dataclass
class _TrackRecord:
    lesson_units: List[LessonUnit] = field(default_factory=list)
    total_tests: int = 0
    registered: bool = False
    events: List[object] = field(default_factory=list)
    event_ids: set = field(default_factory=set)
    schedule: Optional[Schedule] = None
    achievements: List[Achievement] = field(default_factory=list)


class InMemoryTrackRepository:
    """Process-local persistence for tracks."""

    def __init__(self) -> None:
        self._records: Dict[str, _TrackRecord] = {}
        self._lock = threading.RLock()

    def _record(self, track_id: str) -> _TrackRecord:
        key = _normalize_track_id(track_id)
        record = self._records.get(key)
        if record is None:
            record = _TrackRecord()
            self._records[key] = record
        return record

    def save_lesson_units(self, track_id: str, units: Sequence[LessonUnit], total_tests: int = 0) -> None:
        with self._lock:
            record = self._record(track_id)
            record.lesson_units = list(units)
            record.total_tests = max(int(total_tests), 0)
            record.registered = True

    def get_lesson_units(self, track_id: str) -> List[LessonUnit]:
        with self._lock:
            record = self._records.get(_normalize_track_id(track_id))
            if record is None or not record.registered:
                raise LookupError(f"Learning track '{track_id}' was not found.")
            return list(record.lesson_units)

    def get_total_tests(self, track_id: str) -> int:
        with self._lock:
            record = self._records.get(_normalize_track_id(track_id))
            return record.total_tests if record else 0

    def append_event(self, track_id: str, event: object) -> bool:
        event_id = getattr(event, "event_id")
        with self._lock:
            record = self._record(track_id)
            if event_id in record.event_ids:
                return False
            record.event_ids.add(event_id)
            record.events.append(event.model_copy(deep=True))  # type: ignore[attr-defined]
            return True

    def read_events(self, track_id: str) -> List[object]:
        with self._lock:
            record = self._records.get(_normalize_track_id(track_id))
            if record is None:
                return []
            return [event.model_copy(deep=True) for event in record.events]  # type: ignore[attr-defined]

    def save_schedule(self, schedule: Schedule) -> None:
        with self._lock:
            record = self._record(schedule.track_id)
            record.schedule = schedule.model_copy(deep=True)

    def load_schedule(self, track_id: str) -> Optional[Schedule]:
        with self._lock:
            record = self._records.get(_normalize_track_id(track_id))
            if record is None or record.schedule is None:
                return None
            return record.schedule.model_copy(deep=True)

    def load_achievements(self, track_id: str) -> List[Achievement]:
        with self._lock:
            record = self._records.get(_normalize_track_id(track_id))
            if record is None:
                return []
            return [achievement.model_copy(deep=True) for achievement in record.achievements]

    def save_achievements(self, track_id: str, achievements: Sequence[Achievement]) -> None:
        with self._lock:
            record = self._record(track_id)
            record.achievements = [achievement.model_copy(deep=True) for achievement in achievements]

    def delete_track(self, track_id: str) -> bool:
        with self._lock:
            return self._records.pop(_normalize_track_id(track_id), None) is not None


class DatabaseTrackRepository:
    """SQLAlchemy-backed persistence mirroring the in-memory store API."""

    def _track(self, session: Session, track_id: str, *, create: bool) -> Optional[TrackModel]:
        key = _normalize_track_id(track_id)
        model = session.get(TrackModel, key)
        if model is None and create:
            model = TrackModel(track_id=key, lesson_units=[], total_tests=0)
            session.add(model)
            session.flush()
        return model

    def save_lesson_units(self, track_id: str, units: Sequence[LessonUnit], total_tests: int = 0) -> None:
        with session_scope() as session:
            model = self._track(session, track_id, create=True)
            assert model is not None
            model.lesson_units = [unit.model_dump(mode="json") for unit in units]
            model.total_tests = max(int(total_tests), 0)

    def get_lesson_units(self, track_id: str) -> List[LessonUnit]:
        with session_scope(commit=False) as session:
            model = self._track(session, track_id, create=False)
            if model is None:
                raise LookupError(f"Learning track '{track_id}' was not found.")
            return [LessonUnit.model_validate(payload) for payload in model.lesson_units or []]

    def get_total_tests(self, track_id: str) -> int:
        with session_scope(commit=False) as session:
            model = self._track(session, track_id, create=False)
            return model.total_tests if model else 0

    def append_event(self, track_id: str, event: object) -> bool:
        key = _normalize_track_id(track_id)
        payload = event.model_dump(mode="json")  # type: ignore[attr-defined]
        with session_scope() as session:
            stmt = select(ProgressEventModel.id).where(
                ProgressEventModel.track_id == key,
                ProgressEventModel.event_id == payload["event_id"],
            )
            if session.execute(stmt).first() is not None:
                return False
            session.add(
                ProgressEventModel(
                    track_id=key,
                    event_id=payload["event_id"],
                    kind=payload["kind"],
                    occurred_at=getattr(event, "occurred_at"),
                    payload=payload,
                )
            )
            return True

    def read_events(self, track_id: str) -> List[object]:
        key = _normalize_track_id(track_id)
        with session_scope(commit=False) as session:
            stmt = (
                select(ProgressEventModel)
                .where(ProgressEventModel.track_id == key)
                .order_by(ProgressEventModel.id)
            )
            events: List[object] = []
            for model in session.execute(stmt).scalars():
                try:
                    events.append(_event_adapter.validate_python(model.payload))
                except ValueError:
                    logger.exception("Skipping unreadable progress event %s for %s", model.event_id, key)
            return events

    def save_schedule(self, schedule: Schedule) -> None:
        with session_scope() as session:
            track = self._track(session, schedule.track_id, create=True)
            assert track is not None
            model = track.schedule
            if model is None:
                model = TrackScheduleModel(track_id=track.track_id)
                track.schedule = model
            else:
                # Old rows must be gone before new ones reuse (schedule_id, session_date).
                model.sessions.clear()
                session.flush()
            model.generated_at = schedule.generated_at
            model.start_date = schedule.start_date
            model.end_date = schedule.end_date
            model.daily_start_time = schedule.daily_start_time
            model.total_lessons = schedule.total_lessons
            model.completed_lessons = schedule.completed_lessons
            model.lesson_minutes = dict(schedule.lesson_minutes)
            model.sessions = [
                ScheduleSessionModel(
                    session_id=entry.session_id,
                    session_date=entry.date,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                    lesson_ids=list(entry.lesson_ids),
                    completed_lesson_ids=list(entry.completed_lesson_ids),
                    is_completed=entry.is_completed,
                    is_missed=entry.is_missed,
                )
                for entry in schedule.sessions
            ]

    def load_schedule(self, track_id: str) -> Optional[Schedule]:
        key = _normalize_track_id(track_id)
        with session_scope(commit=False) as session:
            stmt = select(TrackScheduleModel).where(TrackScheduleModel.track_id == key)
            model = session.execute(stmt).scalar_one_or_none()
            if model is None:
                return None
            return Schedule(
                track_id=key,
                start_date=model.start_date,
                end_date=model.end_date,
                daily_start_time=model.daily_start_time,
                generated_at=model.generated_at,
                total_lessons=model.total_lessons,
                completed_lessons=model.completed_lessons,
                lesson_minutes=dict(model.lesson_minutes or {}),
                sessions=[
                    ScheduleSession(
                        session_id=row.session_id,
                        date=row.session_date,
                        start_time=row.start_time,
                        end_time=row.end_time,
                        lesson_ids=list(row.lesson_ids or []),
                        completed_lesson_ids=list(row.completed_lesson_ids or []),
                        is_completed=row.is_completed,
                        is_missed=row.is_missed,
                    )
                    for row in sorted(model.sessions, key=lambda row: row.session_date)
                ],
            )

    def load_achievements(self, track_id: str) -> List[Achievement]:
        key = _normalize_track_id(track_id)
        with session_scope(commit=False) as session:
            stmt = select(AchievementModel).where(AchievementModel.track_id == key).order_by(AchievementModel.id)
            return [
                Achievement(
                    achievement_id=row.achievement_id,
                    category=row.category,
                    required_value=row.required_value,
                    current_value=row.current_value,
                    is_completed=row.is_completed,
                    completed_at=row.completed_at,
                    title=row.title,
                    description=row.description,
                )
                for row in session.execute(stmt).scalars()
            ]

    def save_achievements(self, track_id: str, achievements: Sequence[Achievement]) -> None:
        key = _normalize_track_id(track_id)
        with session_scope() as session:
            stmt = select(AchievementModel).where(AchievementModel.track_id == key)
            existing = {row.achievement_id: row for row in session.execute(stmt).scalars()}
            for achievement in achievements:
                row = existing.get(achievement.achievement_id)
                if row is None:
                    row = AchievementModel(track_id=key, achievement_id=achievement.achievement_id)
                    session.add(row)
                row.category = achievement.category
                row.required_value = achievement.required_value
                row.current_value = achievement.current_value
                row.is_completed = achievement.is_completed
                row.completed_at = achievement.completed_at
                row.title = achievement.title
                row.description = achievement.description

    def delete_track(self, track_id: str) -> bool:
        key = _normalize_track_id(track_id)
        with session_scope() as session:
            session.execute(delete(ProgressEventModel).where(ProgressEventModel.track_id == key))
            session.execute(delete(AchievementModel).where(AchievementModel.track_id == key))
            model = session.get(TrackModel, key)
            if model is None:
                return False
            session.delete(model)
            return True


TrackRepository = InMemoryTrackRepository | DatabaseTrackRepository


def create_track_repository(settings: Optional[Settings] = None) -> TrackRepository:
    settings = settings or get_settings()
    if settings.persistence_mode == "database":
        return DatabaseTrackRepository()
    return InMemoryTrackRepository()


__all__ = ["DatabaseTrackRepository", "InMemoryTrackRepository", "TrackRepository", "create_track_repository"]
