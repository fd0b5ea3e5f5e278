"""Mutation and query helpers for generated schedules.

Every mutation keeps ``Schedule.completed_lessons`` equal to the number of
lesson ids inside completed sessions and never leaves a session without
lessons. Functions mutate the schedule passed in; callers own the copy and
the per-track critical section.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from .learning_track import (
    InvariantViolation,
    Schedule,
    ScheduleSession,
    format_hhmm,
    parse_hhmm,
    session_id_for,
)

logger = logging.getLogger(__name__)


def authoritative_completed_count(schedule: Schedule) -> int:
    return sum(len(session.lesson_ids) for session in schedule.sessions if session.is_completed)


def verify_invariants(schedule: Schedule) -> bool:
    """Repair cached values that diverge from the sessions; returns True when clean."""
    clean = True
    empty = [session.session_id for session in schedule.sessions if not session.lesson_ids]
    if empty:
        clean = False
        logger.error(
            "Schedule %s invariant broken",
            schedule.track_id or "<anonymous>",
            exc_info=InvariantViolation(f"Sessions without lessons: {', '.join(empty)}"),
        )
        schedule.sessions = [session for session in schedule.sessions if session.lesson_ids]

    for session in schedule.sessions:
        expected = _all_completed(session)
        if session.is_completed != expected:
            clean = False
            logger.error(
                "Schedule %s invariant broken",
                schedule.track_id or "<anonymous>",
                exc_info=InvariantViolation(
                    f"Session {session.session_id} completion flag disagrees with its lessons"
                ),
            )
            session.is_completed = expected

    expected_count = authoritative_completed_count(schedule)
    if schedule.completed_lessons != expected_count:
        clean = False
        logger.error(
            "Schedule %s invariant broken",
            schedule.track_id or "<anonymous>",
            exc_info=InvariantViolation(
                f"completed_lessons cache {schedule.completed_lessons} != authoritative {expected_count}"
            ),
        )
        schedule.completed_lessons = expected_count

    expected_total = sum(len(session.lesson_ids) for session in schedule.sessions)
    if schedule.total_lessons != expected_total:
        clean = False
        logger.warning(
            "Schedule %s total_lessons %d recomputed to %d",
            schedule.track_id or "<anonymous>",
            schedule.total_lessons,
            expected_total,
        )
        schedule.total_lessons = expected_total
    return clean


def _all_completed(session: ScheduleSession) -> bool:
    if not session.lesson_ids:
        return False
    done = set(session.completed_lesson_ids)
    return all(lesson_id in done for lesson_id in session.lesson_ids)


def _refresh_session(schedule: Schedule, session: ScheduleSession) -> None:
    was_completed = session.is_completed
    session.is_completed = _all_completed(session)
    if session.is_completed:
        session.is_missed = False
    if session.is_completed and not was_completed:
        schedule.completed_lessons += len(session.lesson_ids)
    elif was_completed and not session.is_completed:
        schedule.completed_lessons -= len(session.lesson_ids)


def find_item(schedule: Schedule, item_id: str) -> Tuple[int, ScheduleSession]:
    for index, session in enumerate(schedule.sessions):
        if item_id in session.lesson_ids:
            return index, session
    raise LookupError(f"Schedule item '{item_id}' was not found.")


def find_session(schedule: Schedule, session_id: str) -> ScheduleSession:
    for session in schedule.sessions:
        if session.session_id == session_id:
            return session
    raise LookupError(f"Schedule session '{session_id}' was not found.")


def mark_completed(schedule: Schedule, item_id: str) -> List[str]:
    """Mark a single lesson item complete. Returns the ids newly completed."""
    _, session = find_item(schedule, item_id)
    if item_id in session.completed_lesson_ids:
        return []
    session.completed_lesson_ids.append(item_id)
    _refresh_session(schedule, session)
    verify_invariants(schedule)
    return [item_id]


def mark_session_completed(schedule: Schedule, session_id: str) -> List[str]:
    """Mark every lesson of a session complete. Returns the ids newly completed."""
    session = find_session(schedule, session_id)
    newly = [lesson_id for lesson_id in session.lesson_ids if lesson_id not in session.completed_lesson_ids]
    if not newly:
        return []
    session.completed_lesson_ids.extend(newly)
    _refresh_session(schedule, session)
    verify_invariants(schedule)
    return newly


def _minutes_for(schedule: Schedule, lesson_ids: List[str]) -> int:
    return sum(schedule.lesson_minutes.get(lesson_id, 0) for lesson_id in lesson_ids)


def reschedule(
    schedule: Schedule,
    item_id: str,
    new_date: date,
    new_start: Optional[str] = None,
    new_end: Optional[str] = None,
) -> ScheduleSession:
    """Move an item to another day; capacity is not re-validated (user override)."""
    source_index, source = find_item(schedule, item_id)
    item_minutes = schedule.lesson_minutes.get(item_id, 0)
    start_minute = parse_hhmm(new_start) if new_start else None
    end_minute = parse_hhmm(new_end) if new_end else None

    if source.date == new_date:
        destination: Optional[ScheduleSession] = source
    else:
        destination = next((session for session in schedule.sessions if session.date == new_date), None)
    if destination is None:
        if start_minute is None:
            start_minute = parse_hhmm(schedule.daily_start_time)
        _check_window(start_minute, end_minute)
    else:
        _check_window(
            start_minute if start_minute is not None else parse_hhmm(destination.start_time),
            end_minute,
        )

    was_completed = item_id in source.completed_lesson_ids

    if destination is source:
        if start_minute is not None:
            destination.start_time = format_hhmm(min(parse_hhmm(destination.start_time), start_minute))
        if end_minute is not None:
            destination.end_time = format_hhmm(max(parse_hhmm(destination.end_time), end_minute))
        verify_invariants(schedule)
        return destination

    _detach(schedule, source_index, source, item_id)

    if destination is None:
        assert start_minute is not None
        if end_minute is None:
            end_minute = start_minute + item_minutes
        destination = ScheduleSession(
            session_id=session_id_for(new_date),
            date=new_date,
            start_time=format_hhmm(start_minute),
            end_time=format_hhmm(end_minute),
            lesson_ids=[item_id],
            completed_lesson_ids=[item_id] if was_completed else [],
        )
        schedule.sessions.append(destination)
        schedule.sessions.sort(key=lambda session: session.date)
        _recount_session(schedule, destination)
    else:
        if destination.is_completed:
            schedule.completed_lessons -= len(destination.lesson_ids)
            destination.is_completed = False
        destination.lesson_ids.append(item_id)
        if was_completed:
            destination.completed_lesson_ids.append(item_id)
        current_start = parse_hhmm(destination.start_time)
        current_end = parse_hhmm(destination.end_time)
        if start_minute is not None:
            current_start = min(current_start, start_minute)
        if end_minute is not None:
            current_end = max(current_end, end_minute)
        else:
            current_end += item_minutes
        destination.start_time = format_hhmm(current_start)
        destination.end_time = format_hhmm(max(current_end, current_start))
        _recount_session(schedule, destination)
        if destination.is_completed:
            destination.is_missed = False

    _refresh_bounds(schedule)
    verify_invariants(schedule)
    return destination


def _check_window(start_minute: int, end_minute: Optional[int]) -> None:
    if end_minute is not None and end_minute < start_minute:
        raise ValueError("Rescheduled end time must not be earlier than its start time.")


def _detach(schedule: Schedule, index: int, session: ScheduleSession, item_id: str) -> None:
    if session.is_completed:
        schedule.completed_lessons -= len(session.lesson_ids)
        session.is_completed = False
    session.lesson_ids.remove(item_id)
    if item_id in session.completed_lesson_ids:
        session.completed_lesson_ids.remove(item_id)
    if not session.lesson_ids:
        del schedule.sessions[index]
        return
    start = parse_hhmm(session.start_time)
    remaining = _minutes_for(schedule, session.lesson_ids)
    if remaining:
        session.end_time = format_hhmm(start + remaining)
    session.is_completed = _all_completed(session)
    if session.is_completed:
        session.is_missed = False
        schedule.completed_lessons += len(session.lesson_ids)


def _recount_session(schedule: Schedule, session: ScheduleSession) -> None:
    session.is_completed = _all_completed(session)
    if session.is_completed:
        schedule.completed_lessons += len(session.lesson_ids)


def _refresh_bounds(schedule: Schedule) -> None:
    if not schedule.sessions:
        return
    schedule.start_date = min(schedule.start_date, schedule.sessions[0].date)
    schedule.end_date = schedule.sessions[-1].date


def sweep_missed(schedule: Schedule, today: date) -> List[str]:
    """Flag past sessions that were never completed. Returns newly flagged session ids."""
    flagged: List[str] = []
    for session in schedule.sessions:
        if session.date < today and not session.is_completed and not session.is_missed:
            session.is_missed = True
            flagged.append(session.session_id)
    return flagged


def lessons_for_date(schedule: Schedule, day: date) -> List[str]:
    return [lesson_id for session in schedule.sessions if session.date == day for lesson_id in session.lesson_ids]


def sessions_for_week(schedule: Schedule, reference_day: date) -> List[ScheduleSession]:
    """Sessions in the Sunday-to-Saturday week containing ``reference_day``."""
    week_start = reference_day - timedelta(days=reference_day.isoweekday() % 7)
    week_end = week_start + timedelta(days=6)
    return [session for session in schedule.sessions if week_start <= session.date <= week_end]


__all__ = [
    "authoritative_completed_count",
    "find_item",
    "find_session",
    "lessons_for_date",
    "mark_completed",
    "mark_session_completed",
    "reschedule",
    "sessions_for_week",
    "sweep_missed",
    "verify_invariants",
]
