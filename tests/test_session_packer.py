"""Session packer behaviour: greedy packing, typed failures and start times."""

from __future__ import annotations

from datetime import date, timedelta
from typing import List

from studytrack.learning_track import (
    CapacityExceeded,
    ConstraintViolation,
    LessonUnit,
    Schedule,
    ScheduleConstraints,
    weekday_index,
)
from studytrack.session_packer import SessionPacker

MONDAY = date(2024, 1, 1)
WEEKDAYS = {1, 2, 3, 4, 5}


def _units(count: int, minutes: int = 30) -> List[LessonUnit]:
    return [LessonUnit(id=f"u{index}", title=f"Unit {index}", estimated_minutes=minutes) for index in range(count)]


def _constraints(**overrides) -> ScheduleConstraints:
    values = {
        "allowed_weekdays": WEEKDAYS,
        "daily_capacity_minutes": 60,
        "start_date": MONDAY,
    }
    values.update(overrides)
    return ScheduleConstraints(**values)


def test_weekday_numbering_starts_on_sunday() -> None:
    assert weekday_index(date(2024, 1, 7)) == 0
    assert weekday_index(MONDAY) == 1
    assert weekday_index(date(2024, 1, 6)) == 6


def test_ten_units_fill_one_work_week(telemetry_events) -> None:
    result = SessionPacker().pack(_units(10), _constraints(), track_id="week")

    assert isinstance(result, Schedule)
    assert [session.date for session in result.sessions] == [MONDAY + timedelta(days=offset) for offset in range(5)]
    assert all(len(session.lesson_ids) == 2 for session in result.sessions)
    assert result.sessions[0].start_time == "18:00"
    assert result.sessions[0].end_time == "19:00"
    assert result.end_date == date(2024, 1, 5)
    assert result.total_lessons == 10
    assert result.completed_lessons == 0
    assert [lesson for session in result.sessions for lesson in session.lesson_ids] == [f"u{i}" for i in range(10)]

    generation = [event for event in telemetry_events if event.name == "schedule_generation"]
    assert generation[-1].payload["status"] == "success"
    assert generation[-1].payload["sessions"] == 5


def test_deadline_reports_capacity_exceeded_with_partial_schedule(telemetry_events) -> None:
    result = SessionPacker().pack(_units(10), _constraints(deadline=date(2024, 1, 3)), track_id="tight")

    assert isinstance(result, CapacityExceeded)
    assert result.kind == "capacity_exceeded"
    assert result.unplaced_unit_ids == ["u6", "u7", "u8", "u9"]
    partial = result.partial_schedule
    assert len(partial.sessions) == 3
    assert partial.total_lessons == 6
    assert set(partial.lesson_minutes) == {f"u{i}" for i in range(6)}
    assert telemetry_events[-1].payload["status"] == "capacity_exceeded"


def test_deadline_is_inclusive() -> None:
    result = SessionPacker().pack(_units(10), _constraints(deadline=date(2024, 1, 5)))

    assert isinstance(result, Schedule)
    assert result.end_date == date(2024, 1, 5)


def test_empty_units_return_empty_schedule_even_with_bad_constraints() -> None:
    result = SessionPacker().pack([], _constraints(allowed_weekdays=set(), daily_capacity_minutes=0))

    assert isinstance(result, Schedule)
    assert result.sessions == []
    assert result.total_lessons == 0


def test_constraint_violations_are_returned_not_raised(telemetry_events) -> None:
    packer = SessionPacker()
    cases = [
        (_constraints(allowed_weekdays=set()), "no_allowed_days"),
        (_constraints(deadline=date(2023, 12, 31)), "deadline_before_start"),
        (_constraints(daily_capacity_minutes=0), "invalid_capacity"),
    ]
    for constraints, code in cases:
        result = packer.pack(_units(2), constraints)
        assert isinstance(result, ConstraintViolation)
        assert result.code == code

    assert [event.payload["code"] for event in telemetry_events] == [code for _, code in cases]


def test_duplicate_ids_and_prerequisite_order_are_rejected() -> None:
    packer = SessionPacker()
    duplicated = [LessonUnit(id="a", estimated_minutes=10), LessonUnit(id="a", estimated_minutes=10)]
    result = packer.pack(duplicated, _constraints())
    assert isinstance(result, ConstraintViolation)
    assert result.code == "duplicate_unit"
    assert result.unit_ids == ["a"]

    out_of_order = [
        LessonUnit(id="b", estimated_minutes=10, prerequisite_ids=["a"]),
        LessonUnit(id="a", estimated_minutes=10),
    ]
    result = packer.pack(out_of_order, _constraints())
    assert isinstance(result, ConstraintViolation)
    assert result.code == "prerequisite_order"
    assert result.unit_ids == ["b"]


def test_prerequisites_outside_the_batch_are_satisfied() -> None:
    units = [LessonUnit(id="b", estimated_minutes=10, prerequisite_ids=["already-done"])]

    assert isinstance(SessionPacker().pack(units, _constraints()), Schedule)


def test_exclusion_dates_and_disallowed_days_are_skipped() -> None:
    result = SessionPacker().pack(
        _units(4),
        _constraints(start_date=date(2024, 1, 5), exclusion_dates={date(2024, 1, 8)}),
    )

    assert isinstance(result, Schedule)
    assert [session.date for session in result.sessions] == [date(2024, 1, 5), date(2024, 1, 9)]


def test_oversized_unit_sits_alone_on_its_own_day() -> None:
    units = [
        LessonUnit(id="small", estimated_minutes=20),
        LessonUnit(id="huge", estimated_minutes=90),
        LessonUnit(id="after", estimated_minutes=20),
    ]
    result = SessionPacker().pack(units, _constraints())

    assert isinstance(result, Schedule)
    assert [session.lesson_ids for session in result.sessions] == [["small"], ["huge"], ["after"]]
    assert result.sessions[1].end_time == "19:30"


def test_start_time_follows_explicit_time_then_preference() -> None:
    packer = SessionPacker()

    morning = packer.pack(_units(1), _constraints(preferred_time_of_day="morning"))
    explicit = packer.pack(_units(1), _constraints(daily_start_time="07:15", preferred_time_of_day="evening"))

    assert isinstance(morning, Schedule) and morning.sessions[0].start_time == "09:00"
    assert isinstance(explicit, Schedule) and explicit.sessions[0].start_time == "07:15"
    assert explicit.daily_start_time == "07:15"


def test_end_time_is_clamped_to_the_same_day() -> None:
    result = SessionPacker().pack(
        _units(1, minutes=120),
        _constraints(daily_capacity_minutes=180, daily_start_time="23:00"),
    )

    assert isinstance(result, Schedule)
    assert result.sessions[0].end_time == "23:59"


def test_every_session_respects_capacity_unless_single_unit() -> None:
    minutes = [25, 40, 10, 55, 70, 5, 30, 30, 15]
    units = [LessonUnit(id=f"m{index}", estimated_minutes=value) for index, value in enumerate(minutes)]
    result = SessionPacker().pack(units, _constraints(allowed_weekdays={0, 1, 2, 3, 4, 5, 6}))

    assert isinstance(result, Schedule)
    lookup = {unit.id: unit.estimated_minutes for unit in units}
    for session in result.sessions:
        total = sum(lookup[lesson_id] for lesson_id in session.lesson_ids)
        assert total <= 60 or len(session.lesson_ids) == 1
        assert session.lesson_ids
    dates = [session.date for session in result.sessions]
    assert dates == sorted(set(dates))
