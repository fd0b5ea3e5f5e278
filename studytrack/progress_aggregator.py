"""Pure recomputation of learner progress from the append-only event log."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import Settings, get_settings
from .learning_track import (
    DailyMinutes,
    LessonCompletedEvent,
    ProgressSnapshot,
    StarAwardedEvent,
    StarsByTier,
    TestSubmittedEvent,
    TimeSpentEvent,
)

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
ACTIVITY_WINDOW_DAYS = 7


def resolve_zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except ZoneInfoNotFoundError:
        logger.warning("Unknown timezone %s; falling back to UTC", name)
        return ZoneInfo("UTC")


def _local_day(moment: datetime, zone: ZoneInfo) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone).date()


def streaks(days: Iterable[date], today: date) -> Tuple[int, int]:
    """Return ``(current, longest)`` runs of consecutive calendar days.

    The current streak is the run ending on the most recent active day, but
    only while that day is today or yesterday. A day without activity yet
    does not break the streak until it has fully elapsed.
    """
    ordered = sorted(set(days))
    if not ordered:
        return 0, 0
    longest = 1
    run = 1
    for previous, current in zip(ordered, ordered[1:]):
        if current - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)

    if ordered[-1] < today - timedelta(days=1):
        return 0, longest
    return run, longest


class ProgressAggregator:
    """Derives a ProgressSnapshot from the event log on demand."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    def aggregate(
        self,
        events: Sequence[object],
        *,
        total_lessons: int = 0,
        total_tests: int = 0,
        today: Optional[date] = None,
        tz: Optional[str] = None,
    ) -> ProgressSnapshot:
        zone = resolve_zone(tz or self._settings.timezone)
        if today is None:
            today = datetime.now(timezone.utc).astimezone(zone).date()
        cap = self._settings.max_minutes_per_event

        lessons: Set[str] = set()
        latest_scores: Dict[str, Tuple[datetime, int, float]] = {}
        stars: Set[Tuple[str, str]] = set()
        activity_days: Set[date] = set()
        minutes_by_day: Dict[date, float] = defaultdict(float)
        total_minutes = 0.0

        for position, event in enumerate(events or []):
            if isinstance(event, LessonCompletedEvent):
                lessons.add(event.lesson_id)
                activity_days.add(_local_day(event.occurred_at, zone))
            elif isinstance(event, TestSubmittedEvent):
                stamp = _aware(event.occurred_at)
                current = latest_scores.get(event.test_id)
                if current is None or (stamp, position) >= (current[0], current[1]):
                    latest_scores[event.test_id] = (stamp, position, float(event.score))
                activity_days.add(_local_day(event.occurred_at, zone))
            elif isinstance(event, TimeSpentEvent):
                if not math.isfinite(event.minutes):
                    logger.debug("Dropped time-spent event %s with non-finite minutes", event.event_id)
                    continue
                minutes = min(max(float(event.minutes), 0.0), float(cap))
                if minutes != event.minutes:
                    logger.debug("Clamped time-spent event %s from %s to %s", event.event_id, event.minutes, minutes)
                if minutes <= 0:
                    continue
                total_minutes += minutes
                day = _local_day(event.occurred_at, zone)
                minutes_by_day[day] += minutes
                activity_days.add(day)
            elif isinstance(event, StarAwardedEvent):
                stars.add((event.source_id, event.tier))

        completed_tests = len(latest_scores)
        if completed_tests:
            average = sum(entry[2] for entry in latest_scores.values()) / completed_tests
        else:
            average = 0.0

        tiers = StarsByTier()
        for _, tier in stars:
            setattr(tiers, tier, getattr(tiers, tier) + 1)
        total_stars = tiers.bronze + tiers.silver + tiers.gold
        per_level = self._settings.stars_per_level
        star_level = total_stars // per_level + 1
        stars_to_next = star_level * per_level - total_stars

        current_streak, longest_streak = streaks(activity_days, today)
        completed_lessons = len(lessons)
        total_lessons = max(int(total_lessons or 0), completed_lessons)
        total_tests = max(int(total_tests or 0), completed_tests)
        completion_percent = round(completed_lessons / total_lessons * 100) if total_lessons else 0

        window = self._daily_window(minutes_by_day, today)
        active_window = [entry.minutes for entry in window if entry.minutes > 0]
        average_daily = round(sum(active_window) / len(active_window)) if active_window else 0

        return ProgressSnapshot(
            completed_lessons=completed_lessons,
            total_lessons=total_lessons,
            completed_tests=completed_tests,
            total_tests=total_tests,
            average_score=average,
            total_time_spent_minutes=round(total_minutes),
            stars_by_tier=tiers,
            current_streak_days=current_streak,
            longest_streak_days=longest_streak,
            last_activity_date=max(activity_days) if activity_days else None,
            completion_percent=completion_percent,
            total_stars=total_stars,
            star_level=star_level,
            stars_to_next_level=stars_to_next,
            active_days=len(activity_days),
            daily_minutes=window,
            average_daily_minutes=average_daily,
            most_active_weekday=self._most_active_weekday(minutes_by_day),
        )

    @staticmethod
    def _daily_window(minutes_by_day: Dict[date, float], today: date) -> List[DailyMinutes]:
        first = today - timedelta(days=ACTIVITY_WINDOW_DAYS - 1)
        return [
            DailyMinutes(date=day, minutes=round(minutes_by_day.get(day, 0.0)))
            for day in (first + timedelta(days=offset) for offset in range(ACTIVITY_WINDOW_DAYS))
        ]

    @staticmethod
    def _most_active_weekday(minutes_by_day: Dict[date, float]) -> Optional[str]:
        if not minutes_by_day:
            return None
        totals: Dict[int, float] = defaultdict(float)
        for day, minutes in minutes_by_day.items():
            totals[day.weekday()] += minutes
        # Ties resolve to the earliest weekday, Monday first.
        best = max(sorted(totals), key=lambda weekday: totals[weekday])
        return WEEKDAY_NAMES[best]


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def aggregate(
    events: Sequence[object],
    *,
    total_lessons: int = 0,
    total_tests: int = 0,
    today: Optional[date] = None,
    tz: Optional[str] = None,
) -> ProgressSnapshot:
    return ProgressAggregator().aggregate(
        events,
        total_lessons=total_lessons,
        total_tests=total_tests,
        today=today,
        tz=tz,
    )


__all__ = ["ProgressAggregator", "aggregate", "resolve_zone", "streaks"]
