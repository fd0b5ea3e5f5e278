"""Learning-track REST endpoints: schedules, progress events and achievements."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .api_models import (
    DaySchedulePayload,
    ProgressEventPayload,
    RecordEventResponse,
    RegisterTrackRequest,
    RegisterTrackResponse,
    RescheduleRequest,
    WeekSchedulePayload,
)
from .duration_estimator import build_lesson_units
from .learning_track import (
    AchievementReport,
    CapacityExceeded,
    ConstraintViolation,
    ProgressSnapshot,
    Schedule,
    ScheduleConstraints,
)
from .track_service import TrackService

router = APIRouter(prefix="/api/tracks", tags=["tracks"])
logger = logging.getLogger(__name__)

_service: Optional[TrackService] = None


def get_track_service() -> TrackService:
    global _service
    if _service is None:
        _service = TrackService()
    return _service


def _not_found(exc: LookupError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc.args[0] if exc.args else exc))


def _clean_id(value: str, label: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{label} cannot be empty.",
        )
    return cleaned


@router.put("/{track_id}/lessons", response_model=RegisterTrackResponse)
def register_lessons(
    track_id: str,
    payload: RegisterTrackRequest,
    service: TrackService = Depends(get_track_service),
) -> RegisterTrackResponse:
    track_id = _clean_id(track_id, "Track id")
    try:
        units = build_lesson_units(payload.lessons)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    service.register_track(track_id, units, payload.total_tests)
    return RegisterTrackResponse(track_id=track_id, lessons=units, total_tests=payload.total_tests)


@router.post("/{track_id}/schedule", response_model=Schedule)
def generate_schedule(
    track_id: str,
    constraints: ScheduleConstraints,
    service: TrackService = Depends(get_track_service),
) -> Schedule:
    track_id = _clean_id(track_id, "Track id")
    try:
        result = service.generate_schedule(track_id, constraints)
    except LookupError as exc:
        raise _not_found(exc) from exc
    if isinstance(result, ConstraintViolation):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=result.model_dump(mode="json"),
        )
    if isinstance(result, CapacityExceeded):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=result.model_dump(mode="json"),
        )
    return result


@router.get("/{track_id}/schedule", response_model=Schedule)
def read_schedule(track_id: str, service: TrackService = Depends(get_track_service)) -> Schedule:
    try:
        return service.get_schedule(track_id)
    except LookupError as exc:
        raise _not_found(exc) from exc


@router.get("/{track_id}/schedule/day/{day}", response_model=DaySchedulePayload)
def read_day(track_id: str, day: date, service: TrackService = Depends(get_track_service)) -> DaySchedulePayload:
    try:
        schedule = service.get_schedule(track_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return DaySchedulePayload(
        date=day,
        lesson_ids=service.lessons_for_date(track_id, day),
        sessions=[session for session in schedule.sessions if session.date == day],
    )


@router.get("/{track_id}/schedule/week", response_model=WeekSchedulePayload)
def read_week(
    track_id: str,
    reference: Optional[date] = Query(default=None),
    service: TrackService = Depends(get_track_service),
) -> WeekSchedulePayload:
    reference_day = reference or service.today()
    try:
        sessions = service.sessions_for_week(track_id, reference_day)
    except LookupError as exc:
        raise _not_found(exc) from exc
    week_start = reference_day - timedelta(days=reference_day.isoweekday() % 7)
    return WeekSchedulePayload(
        week_start=week_start,
        week_end=week_start + timedelta(days=6),
        sessions=sessions,
    )


@router.post("/{track_id}/schedule/items/{item_id}/complete", response_model=Schedule)
def complete_item(track_id: str, item_id: str, service: TrackService = Depends(get_track_service)) -> Schedule:
    item_id = _clean_id(item_id, "Schedule item id")
    try:
        return service.mark_session_item_completed(track_id, item_id)
    except LookupError as exc:
        raise _not_found(exc) from exc


@router.post("/{track_id}/schedule/sessions/{session_id}/complete", response_model=Schedule)
def complete_session(track_id: str, session_id: str, service: TrackService = Depends(get_track_service)) -> Schedule:
    session_id = _clean_id(session_id, "Session id")
    try:
        return service.mark_session_completed(track_id, session_id)
    except LookupError as exc:
        raise _not_found(exc) from exc


@router.post("/{track_id}/schedule/items/{item_id}/reschedule", response_model=Schedule)
def reschedule_item(
    track_id: str,
    item_id: str,
    payload: RescheduleRequest,
    service: TrackService = Depends(get_track_service),
) -> Schedule:
    item_id = _clean_id(item_id, "Schedule item id")
    try:
        return service.reschedule_item(track_id, item_id, payload.date, payload.start_time, payload.end_time)
    except LookupError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/{track_id}/events", response_model=RecordEventResponse)
def record_event(
    track_id: str,
    payload: ProgressEventPayload,
    service: TrackService = Depends(get_track_service),
) -> RecordEventResponse:
    track_id = _clean_id(track_id, "Track id")
    event = payload.root
    recorded = service.record_event(track_id, event)
    return RecordEventResponse(event_id=event.event_id, kind=event.kind, recorded=recorded)


@router.get("/{track_id}/progress", response_model=ProgressSnapshot)
def read_progress(track_id: str, service: TrackService = Depends(get_track_service)) -> ProgressSnapshot:
    return service.get_progress(_clean_id(track_id, "Track id"))


@router.get("/{track_id}/achievements", response_model=AchievementReport)
def read_achievements(track_id: str, service: TrackService = Depends(get_track_service)) -> AchievementReport:
    return service.get_achievements(_clean_id(track_id, "Track id"))


__all__ = ["get_track_service", "router"]
