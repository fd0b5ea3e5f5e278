"""Track-level operations combining the packer, schedule store and progress engine.

Every mutation for a track runs inside that track's critical section so the
schedule, its cached completion count and the event log change together.
Reads load the latest committed state and do not take the lock unless the
lazy missed-session sweep has something to persist.
"""

from __future__ import annotations

import logging
import threading
import weakref
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence

from . import schedule_store
from .achievement_evaluator import evaluate, merge_catalog
from .config import Settings, get_settings
from .learning_track import (
    AchievementReport,
    LessonCompletedEvent,
    LessonUnit,
    PackResult,
    ProgressSnapshot,
    Schedule,
    ScheduleConstraints,
    ScheduleSession,
)
from .progress_aggregator import ProgressAggregator, resolve_zone
from .repositories.tracks import TrackRepository, create_track_repository
from .session_packer import SessionPacker
from .telemetry import emit_event

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackService:
    def __init__(
        self,
        repository: Optional[TrackRepository] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository if repository is not None else create_track_repository(self._settings)
        self._clock = clock or _utcnow
        self._packer = SessionPacker(self._settings)
        self._aggregator = ProgressAggregator(self._settings)
        # Entries vanish once no caller holds the lock.
        self._locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def repository(self) -> TrackRepository:
        return self._repository

    def _lock_for(self, track_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(track_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[track_id] = lock
            return lock

    def today(self) -> date:
        zone = resolve_zone(self._settings.timezone)
        moment = self._clock()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(zone).date()

    def _require_schedule(self, track_id: str) -> Schedule:
        schedule = self._repository.load_schedule(track_id)
        if schedule is None:
            raise LookupError(f"No schedule has been generated for track '{track_id}'.")
        return schedule

    # Lesson source

    def register_track(self, track_id: str, units: Sequence[LessonUnit], total_tests: int = 0) -> List[LessonUnit]:
        with self._lock_for(track_id):
            self._repository.save_lesson_units(track_id, units, total_tests)
        logger.info("Registered %d lesson units for track %s", len(units), track_id)
        return list(units)

    # Scheduling

    def generate_schedule(self, track_id: str, constraints: ScheduleConstraints) -> PackResult:
        """Pack the track's lessons; only a complete schedule replaces the stored one."""
        units = self._repository.get_lesson_units(track_id)
        with self._lock_for(track_id):
            result = self._packer.pack(units, constraints, track_id=track_id)
            if isinstance(result, Schedule):
                self._repository.save_schedule(result)
        return result

    def get_schedule(self, track_id: str) -> Schedule:
        schedule = self._require_schedule(track_id)
        today = self.today()
        if not any(
            session.date < today and not session.is_completed and not session.is_missed
            for session in schedule.sessions
        ):
            return schedule
        with self._lock_for(track_id):
            schedule = self._require_schedule(track_id)
            flagged = schedule_store.sweep_missed(schedule, today)
            if flagged:
                self._repository.save_schedule(schedule)
                logger.info("Flagged %d missed sessions for track %s", len(flagged), track_id)
        return schedule

    def mark_session_item_completed(self, track_id: str, item_id: str) -> Schedule:
        with self._lock_for(track_id):
            schedule = self._require_schedule(track_id)
            newly = schedule_store.mark_completed(schedule, item_id)
            if newly:
                self._commit_completion(track_id, schedule, newly)
        return schedule

    def mark_session_completed(self, track_id: str, session_id: str) -> Schedule:
        with self._lock_for(track_id):
            schedule = self._require_schedule(track_id)
            newly = schedule_store.mark_session_completed(schedule, session_id)
            if newly:
                self._commit_completion(track_id, schedule, newly)
        return schedule

    def _commit_completion(self, track_id: str, schedule: Schedule, lesson_ids: List[str]) -> None:
        self._repository.save_schedule(schedule)
        stamp = self._clock()
        for lesson_id in lesson_ids:
            self._repository.append_event(track_id, LessonCompletedEvent(lesson_id=lesson_id, occurred_at=stamp))
        emit_event(
            "schedule_item_completed",
            track_id=track_id,
            item_ids=list(lesson_ids),
            completed_lessons=schedule.completed_lessons,
            total_lessons=schedule.total_lessons,
        )

    def reschedule_item(
        self,
        track_id: str,
        item_id: str,
        new_date: date,
        new_start: Optional[str] = None,
        new_end: Optional[str] = None,
    ) -> Schedule:
        with self._lock_for(track_id):
            schedule = self._require_schedule(track_id)
            _, source = schedule_store.find_item(schedule, item_id)
            previous_date = source.date
            destination = schedule_store.reschedule(schedule, item_id, new_date, new_start, new_end)
            self._repository.save_schedule(schedule)
        emit_event(
            "schedule_item_rescheduled",
            track_id=track_id,
            item_id=item_id,
            previous_date=previous_date,
            new_date=new_date,
            session_id=destination.session_id,
        )
        return schedule

    def lessons_for_date(self, track_id: str, day: date) -> List[str]:
        return schedule_store.lessons_for_date(self.get_schedule(track_id), day)

    def sessions_for_week(self, track_id: str, reference_day: Optional[date] = None) -> List[ScheduleSession]:
        return schedule_store.sessions_for_week(self.get_schedule(track_id), reference_day or self.today())

    # Progress

    def record_event(self, track_id: str, event: object) -> bool:
        """Append to the event log; lesson completions also tick the schedule item."""
        with self._lock_for(track_id):
            appended = self._repository.append_event(track_id, event)
            if appended and isinstance(event, LessonCompletedEvent):
                schedule = self._repository.load_schedule(track_id)
                if schedule is not None:
                    try:
                        newly = schedule_store.mark_completed(schedule, event.lesson_id)
                    except LookupError:
                        newly = []
                    if newly:
                        self._repository.save_schedule(schedule)
        emit_event(
            "progress_event_recorded",
            track_id=track_id,
            kind=getattr(event, "kind", "unknown"),
            event_id=getattr(event, "event_id", None),
            duplicate=not appended,
        )
        return appended

    def get_progress(self, track_id: str) -> ProgressSnapshot:
        events = self._repository.read_events(track_id)
        try:
            total_lessons = len(self._repository.get_lesson_units(track_id))
        except LookupError:
            schedule = self._repository.load_schedule(track_id)
            total_lessons = schedule.total_lessons if schedule is not None else 0
        return self._aggregator.aggregate(
            events,
            total_lessons=total_lessons,
            total_tests=self._repository.get_total_tests(track_id),
            today=self.today(),
        )

    def get_achievements(self, track_id: str) -> AchievementReport:
        with self._lock_for(track_id):
            snapshot = self.get_progress(track_id)
            catalog = merge_catalog(self._repository.load_achievements(track_id))
            updated, newly_unlocked = evaluate(snapshot, catalog, now=self._clock())
            self._repository.save_achievements(track_id, updated)
        for achievement in newly_unlocked:
            emit_event(
                "achievement_unlocked",
                track_id=track_id,
                achievement_id=achievement.achievement_id,
                category=achievement.category,
                required_value=achievement.required_value,
                completed_at=achievement.completed_at,
            )
        return AchievementReport(achievements=updated, newly_unlocked=newly_unlocked)


__all__ = ["TrackService"]
