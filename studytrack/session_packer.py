"""Greedy day-by-day packing of lesson units into dated study sessions."""

from __future__ import annotations

import logging
from collections import deque
from datetime import date, timedelta
from typing import Deque, Dict, List, Optional, Sequence, Set

from .config import Settings, get_settings
from .learning_track import (
    CapacityExceeded,
    ConstraintViolation,
    LessonUnit,
    PackResult,
    Schedule,
    ScheduleConstraints,
    ScheduleSession,
    format_hhmm,
    parse_hhmm,
    weekday_index,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)


class SessionPacker:
    """Partitions ordered lesson units into calendar sessions."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    def pack(
        self,
        units: Sequence[LessonUnit],
        constraints: ScheduleConstraints,
        *,
        track_id: str = "",
    ) -> PackResult:
        start_time = self.resolve_start_time(constraints)
        if not units:
            return Schedule(
                track_id=track_id,
                start_date=constraints.start_date,
                end_date=constraints.start_date,
                daily_start_time=start_time,
            )

        violation = self._validate(units, constraints)
        if violation is not None:
            logger.info("Schedule constraints rejected for %s: %s", track_id or "<anonymous>", violation.message)
            emit_event(
                "schedule_generation",
                track_id=track_id,
                status="constraint_violation",
                code=violation.code,
            )
            return violation

        if constraints.deadline is not None:
            last_day = constraints.deadline
        else:
            last_day = constraints.start_date + timedelta(days=self._settings.max_horizon_days)

        pending: Deque[LessonUnit] = deque(units)
        sessions: List[ScheduleSession] = []
        start_minute = parse_hhmm(start_time)
        day = constraints.start_date
        while pending and day <= last_day:
            if self._is_eligible(day, constraints):
                bucket = self._fill_day(pending, constraints.daily_capacity_minutes)
                sessions.append(self._build_session(day, bucket, start_minute))
            day += timedelta(days=1)

        schedule = self._assemble(track_id, units, sessions, constraints, start_time)
        if pending:
            unplaced = [unit.id for unit in pending]
            placed_ids = {lesson_id for session in sessions for lesson_id in session.lesson_ids}
            schedule.total_lessons = len(placed_ids)
            schedule.lesson_minutes = {
                key: value for key, value in schedule.lesson_minutes.items() if key in placed_ids
            }
            reason = "deadline" if constraints.deadline is not None else "scheduling horizon"
            logger.warning(
                "Could not place %d of %d units for %s before the %s %s",
                len(unplaced),
                len(units),
                track_id or "<anonymous>",
                reason,
                last_day.isoformat(),
            )
            emit_event(
                "schedule_generation",
                track_id=track_id,
                status="capacity_exceeded",
                placed=len(placed_ids),
                unplaced=len(unplaced),
                sessions=len(sessions),
            )
            return CapacityExceeded(
                message=f"{len(unplaced)} lesson(s) do not fit before {last_day.isoformat()}.",
                partial_schedule=schedule,
                unplaced_unit_ids=unplaced,
            )

        emit_event(
            "schedule_generation",
            track_id=track_id,
            status="success",
            sessions=len(sessions),
            total_lessons=schedule.total_lessons,
            start_date=schedule.start_date,
            end_date=schedule.end_date,
        )
        return schedule

    def resolve_start_time(self, constraints: ScheduleConstraints) -> str:
        if constraints.daily_start_time:
            return constraints.daily_start_time
        return self._settings.start_time_for(constraints.preferred_time_of_day)

    def _validate(
        self,
        units: Sequence[LessonUnit],
        constraints: ScheduleConstraints,
    ) -> Optional[ConstraintViolation]:
        if not constraints.allowed_weekdays:
            return ConstraintViolation(
                code="no_allowed_days",
                message="At least one weekday must be allowed for study sessions.",
            )
        if constraints.deadline is not None and constraints.deadline < constraints.start_date:
            return ConstraintViolation(
                code="deadline_before_start",
                message=(
                    f"Deadline {constraints.deadline.isoformat()} is before the start date "
                    f"{constraints.start_date.isoformat()}."
                ),
            )
        if constraints.daily_capacity_minutes <= 0:
            return ConstraintViolation(
                code="invalid_capacity",
                message="Daily capacity must be a positive number of minutes.",
            )

        seen: Set[str] = set()
        duplicates: List[str] = []
        for unit in units:
            if unit.id in seen:
                duplicates.append(unit.id)
            seen.add(unit.id)
        if duplicates:
            return ConstraintViolation(
                code="duplicate_unit",
                message=f"Lesson units must have unique ids; duplicated: {', '.join(duplicates)}.",
                unit_ids=duplicates,
            )

        placed: Set[str] = set()
        out_of_order: List[str] = []
        for unit in units:
            for prerequisite in unit.prerequisite_ids:
                # Prerequisites outside this batch were satisfied earlier in the track.
                if prerequisite in seen and prerequisite not in placed:
                    out_of_order.append(unit.id)
                    break
            placed.add(unit.id)
        if out_of_order:
            return ConstraintViolation(
                code="prerequisite_order",
                message=(
                    "Lesson units must follow their prerequisites; out of order: "
                    f"{', '.join(out_of_order)}."
                ),
                unit_ids=out_of_order,
            )
        return None

    @staticmethod
    def _is_eligible(day: date, constraints: ScheduleConstraints) -> bool:
        if weekday_index(day) not in constraints.allowed_weekdays:
            return False
        return day not in constraints.exclusion_dates

    @staticmethod
    def _fill_day(pending: Deque[LessonUnit], capacity: int) -> List[LessonUnit]:
        bucket: List[LessonUnit] = []
        used = 0
        while pending:
            unit = pending[0]
            if not bucket:
                bucket.append(pending.popleft())
                used = unit.estimated_minutes
                if used > capacity:
                    # Oversized units sit alone on their own day.
                    break
                continue
            if used + unit.estimated_minutes > capacity:
                break
            bucket.append(pending.popleft())
            used += unit.estimated_minutes
        return bucket

    @staticmethod
    def _build_session(day: date, bucket: List[LessonUnit], start_minute: int) -> ScheduleSession:
        total = sum(unit.estimated_minutes for unit in bucket)
        end_minute = start_minute + total
        if end_minute >= 24 * 60:
            logger.info("Session on %s runs past midnight; clamping end time", day.isoformat())
        return ScheduleSession(
            date=day,
            start_time=format_hhmm(start_minute),
            end_time=format_hhmm(end_minute),
            lesson_ids=[unit.id for unit in bucket],
        )

    @staticmethod
    def _assemble(
        track_id: str,
        units: Sequence[LessonUnit],
        sessions: List[ScheduleSession],
        constraints: ScheduleConstraints,
        start_time: str,
    ) -> Schedule:
        minutes: Dict[str, int] = {unit.id: unit.estimated_minutes for unit in units}
        end_date = sessions[-1].date if sessions else constraints.start_date
        return Schedule(
            track_id=track_id,
            start_date=constraints.start_date,
            end_date=end_date,
            daily_start_time=start_time,
            sessions=sessions,
            total_lessons=sum(len(session.lesson_ids) for session in sessions),
            completed_lessons=0,
            lesson_minutes=minutes,
        )


def pack(units: Sequence[LessonUnit], constraints: ScheduleConstraints, *, track_id: str = "") -> PackResult:
    """Module-level convenience wrapper using the configured settings."""
    return SessionPacker().pack(units, constraints, track_id=track_id)


__all__ = ["SessionPacker", "pack"]
