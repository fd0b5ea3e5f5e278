"""Database repository round trips against an in-memory SQLite engine."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterator

import pytest

from studytrack.db.session import dispose_engine
from studytrack.learning_track import (
    Achievement,
    LessonCompletedEvent,
    LessonUnit,
    Schedule,
    ScheduleConstraints,
    StarAwardedEvent,
    TestSubmittedEvent,
)
from studytrack.repositories.tracks import DatabaseTrackRepository, InMemoryTrackRepository
from studytrack.session_packer import SessionPacker


@pytest.fixture
def repository(monkeypatch) -> Iterator[DatabaseTrackRepository]:
    monkeypatch.setenv("STUDYTRACK_DATABASE_URL", "sqlite://")
    dispose_engine()
    yield DatabaseTrackRepository()
    dispose_engine()


def _schedule(track_id: str) -> Schedule:
    units = [LessonUnit(id=f"u{index}", estimated_minutes=30) for index in range(4)]
    result = SessionPacker().pack(
        units,
        ScheduleConstraints(allowed_weekdays={1, 2, 3, 4, 5}, daily_capacity_minutes=60, start_date=date(2024, 1, 1)),
        track_id=track_id,
    )
    assert isinstance(result, Schedule)
    return result


def test_lesson_units_round_trip(repository: DatabaseTrackRepository) -> None:
    units = [
        LessonUnit(id="a", title="A", estimated_minutes=20, type="exercise"),
        LessonUnit(id="b", title="B", estimated_minutes=30, prerequisite_ids=["a"]),
    ]
    repository.save_lesson_units("db-track", units, total_tests=3)

    assert repository.get_lesson_units("db-track") == units
    assert repository.get_total_tests("db-track") == 3
    with pytest.raises(LookupError):
        repository.get_lesson_units("absent")


def test_schedule_is_replaced_on_save(repository: DatabaseTrackRepository) -> None:
    schedule = _schedule("db-track")
    repository.save_schedule(schedule)

    schedule.sessions[0].completed_lesson_ids = ["u0", "u1"]
    schedule.sessions[0].is_completed = True
    schedule.completed_lessons = 2
    repository.save_schedule(schedule)
    loaded = repository.load_schedule("db-track")

    assert loaded is not None
    assert [session.session_id for session in loaded.sessions] == ["session-2024-01-01", "session-2024-01-02"]
    assert loaded.sessions[0].is_completed is True
    assert loaded.completed_lessons == 2
    assert loaded.lesson_minutes == schedule.lesson_minutes
    assert repository.load_schedule("other") is None


def test_events_are_deduplicated_and_rebuilt_by_kind(repository: DatabaseTrackRepository) -> None:
    stamp = datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
    lesson = LessonCompletedEvent(lesson_id="u0", occurred_at=stamp)

    assert repository.append_event("db-track", lesson) is True
    assert repository.append_event("db-track", lesson) is False
    repository.append_event("db-track", TestSubmittedEvent(test_id="t1", score=75, occurred_at=stamp))
    repository.append_event("db-track", StarAwardedEvent(source_id="u0", tier="silver", occurred_at=stamp))

    events = repository.read_events("db-track")

    assert [type(event) for event in events] == [LessonCompletedEvent, TestSubmittedEvent, StarAwardedEvent]
    assert events[0].event_id == lesson.event_id
    assert events[1].score == 75
    assert repository.read_events("other") == []


def test_achievements_are_upserted(repository: DatabaseTrackRepository) -> None:
    achievement = Achievement(achievement_id="first-lesson", category="lessons", required_value=1, title="First")
    repository.save_achievements("db-track", [achievement])
    repository.save_achievements(
        "db-track",
        [achievement.model_copy(update={"current_value": 1, "is_completed": True})],
    )

    stored = repository.load_achievements("db-track")

    assert len(stored) == 1
    assert stored[0].is_completed is True
    assert stored[0].title == "First"


def test_delete_track_removes_everything(repository: DatabaseTrackRepository) -> None:
    repository.save_lesson_units("db-track", [LessonUnit(id="a", estimated_minutes=10)])
    repository.save_schedule(_schedule("db-track"))
    repository.append_event("db-track", LessonCompletedEvent(lesson_id="a"))

    assert repository.delete_track("db-track") is True
    assert repository.load_schedule("db-track") is None
    assert repository.read_events("db-track") == []
    assert repository.delete_track("db-track") is False


def test_in_memory_delete_track_matches_database_behaviour() -> None:
    repository = InMemoryTrackRepository()
    repository.save_lesson_units("mem-track", [LessonUnit(id="a", estimated_minutes=10)])
    repository.save_schedule(_schedule("mem-track"))
    repository.append_event("mem-track", LessonCompletedEvent(lesson_id="a"))

    assert repository.delete_track("mem-track") is True
    assert repository.load_schedule("mem-track") is None
    assert repository.read_events("mem-track") == []
    with pytest.raises(LookupError):
        repository.get_lesson_units("mem-track")
    assert repository.delete_track("mem-track") is False
