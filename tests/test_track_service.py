"""Track service flows over the in-memory repository with a fixed clock."""

from __future__ import annotations

import gc
from datetime import date, datetime, timedelta, timezone
from typing import List

import pytest

from studytrack.learning_track import (
    CapacityExceeded,
    ConstraintViolation,
    LessonCompletedEvent,
    LessonUnit,
    Schedule,
    ScheduleConstraints,
    StarAwardedEvent,
    TimeSpentEvent,
)
from studytrack.repositories.tracks import InMemoryTrackRepository
from studytrack.track_service import TrackService

MONDAY = date(2024, 1, 1)


class _Clock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, days: int) -> None:
        self.moment += timedelta(days=days)


def _units(count: int = 10) -> List[LessonUnit]:
    return [LessonUnit(id=f"u{index}", title=f"Unit {index}", estimated_minutes=30) for index in range(count)]


def _constraints(**overrides) -> ScheduleConstraints:
    values = {"allowed_weekdays": {1, 2, 3, 4, 5}, "daily_capacity_minutes": 60, "start_date": MONDAY}
    values.update(overrides)
    return ScheduleConstraints(**values)


@pytest.fixture
def clock() -> _Clock:
    return _Clock(datetime(2024, 1, 1, 9, tzinfo=timezone.utc))


@pytest.fixture
def service(clock: _Clock) -> TrackService:
    service = TrackService(repository=InMemoryTrackRepository(), clock=clock)
    service.register_track("python", _units(), total_tests=2)
    return service


def test_generate_schedule_persists_only_complete_schedules(service: TrackService) -> None:
    tight = service.generate_schedule("python", _constraints(deadline=date(2024, 1, 3)))
    assert isinstance(tight, CapacityExceeded)
    assert service.repository.load_schedule("python") is None

    invalid = service.generate_schedule("python", _constraints(allowed_weekdays=set()))
    assert isinstance(invalid, ConstraintViolation)

    schedule = service.generate_schedule("python", _constraints())
    assert isinstance(schedule, Schedule)
    assert service.get_schedule("python").total_lessons == 10


def test_unknown_track_raises_lookup_error(service: TrackService) -> None:
    with pytest.raises(LookupError):
        service.generate_schedule("rust", _constraints())
    with pytest.raises(LookupError):
        service.get_schedule("rust")


def test_item_completion_updates_schedule_and_event_log(service: TrackService, telemetry_events) -> None:
    service.generate_schedule("python", _constraints())

    service.mark_session_item_completed("python", "u0")
    schedule = service.mark_session_item_completed("python", "u1")
    service.mark_session_item_completed("python", "u1")

    assert schedule.completed_lessons == 2
    assert schedule.sessions[0].is_completed is True
    events = service.repository.read_events("python")
    assert [event.lesson_id for event in events] == ["u0", "u1"]
    completed = [event for event in telemetry_events if event.name == "schedule_item_completed"]
    assert [event.payload["item_ids"] for event in completed] == [["u0"], ["u1"]]


def test_session_completion_and_reschedule(service: TrackService, telemetry_events) -> None:
    service.generate_schedule("python", _constraints())

    schedule = service.mark_session_completed("python", "session-2024-01-02")
    assert schedule.completed_lessons == 2

    moved = service.reschedule_item("python", "u3", date(2024, 1, 8), "19:00", "19:30")
    assert moved.completed_lessons == 2
    assert moved.sessions[1].lesson_ids == ["u2"]
    assert moved.sessions[-1].session_id == "session-2024-01-08"
    assert moved.sessions[-1].start_time == "19:00"
    rescheduled = [event for event in telemetry_events if event.name == "schedule_item_rescheduled"]
    assert rescheduled[0].payload["previous_date"] == "2024-01-02"
    assert rescheduled[0].payload["new_date"] == "2024-01-08"

    with pytest.raises(ValueError):
        service.reschedule_item("python", "u4", date(2024, 1, 9), "19:00", "18:00")
    with pytest.raises(LookupError):
        service.reschedule_item("python", "missing", date(2024, 1, 9))


def test_reads_flag_missed_sessions(service: TrackService, clock: _Clock) -> None:
    service.generate_schedule("python", _constraints())
    clock.advance(2)

    schedule = service.get_schedule("python")

    assert [session.is_missed for session in schedule.sessions] == [True, True, False, False, False]
    assert service.repository.load_schedule("python").sessions[0].is_missed is True


def test_seven_of_ten_lessons_on_consecutive_days(service: TrackService, clock: _Clock) -> None:
    service.generate_schedule("python", _constraints())
    for offset in range(7):
        service.record_event(
            "python",
            LessonCompletedEvent(lesson_id=f"u{offset}", occurred_at=clock() + timedelta(days=offset)),
        )
    clock.advance(6)

    progress = service.get_progress("python")
    schedule = service.get_schedule("python")

    assert progress.completed_lessons == 7
    assert progress.total_lessons == 10
    assert progress.completion_percent == 70
    assert progress.current_streak_days == 7
    assert progress.longest_streak_days == 7
    assert schedule.completed_lessons == 6
    assert schedule.sessions[3].completed_lesson_ids == ["u6"]


def test_record_event_is_idempotent_per_event_id(service: TrackService, telemetry_events) -> None:
    event = TimeSpentEvent(minutes=25)

    assert service.record_event("python", event) is True
    assert service.record_event("python", event) is False
    assert service.get_progress("python").total_time_spent_minutes == 25
    recorded = [item for item in telemetry_events if item.name == "progress_event_recorded"]
    assert [item.payload["duplicate"] for item in recorded] == [False, True]


def test_lesson_event_for_unscheduled_lesson_is_still_recorded(service: TrackService) -> None:
    service.generate_schedule("python", _constraints())

    assert service.record_event("python", LessonCompletedEvent(lesson_id="bonus")) is True
    assert service.get_progress("python").completed_lessons == 1
    assert service.get_schedule("python").completed_lessons == 0


def test_achievements_unlock_once_and_emit_telemetry(service: TrackService, telemetry_events) -> None:
    service.record_event("python", LessonCompletedEvent(lesson_id="u0"))
    for index in range(10):
        service.record_event("python", StarAwardedEvent(source_id=f"u{index}", tier="bronze"))

    first = service.get_achievements("python")
    second = service.get_achievements("python")

    assert {item.achievement_id for item in first.newly_unlocked} == {"first-lesson", "stars-10"}
    assert second.newly_unlocked == []
    stored = {item.achievement_id: item for item in service.repository.load_achievements("python")}
    assert stored["first-lesson"].is_completed is True
    assert stored["lessons-10"].current_value == 1
    unlocked = [event for event in telemetry_events if event.name == "achievement_unlocked"]
    assert sorted(event.payload["achievement_id"] for event in unlocked) == ["first-lesson", "stars-10"]


def test_day_and_week_views(service: TrackService, clock: _Clock) -> None:
    service.generate_schedule("python", _constraints())

    assert service.lessons_for_date("python", date(2024, 1, 2)) == ["u2", "u3"]
    assert len(service.sessions_for_week("python")) == 5
    assert service.sessions_for_week("python", date(2024, 1, 8)) == []


def test_track_locks_are_released_when_unused(service: TrackService) -> None:
    service.get_achievements("ghost")
    gc.collect()
    assert "ghost" not in service._locks

    held = service._lock_for("python")
    assert service._lock_for("python") is held
    del held
    gc.collect()
    assert "python" not in service._locks
