"""Deterministic achievement rules evaluated against progress snapshots."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .learning_track import Achievement, ProgressSnapshot

logger = logging.getLogger(__name__)

SnapshotReader = Callable[[ProgressSnapshot], float]

RULES: Dict[str, SnapshotReader] = {
    "lessons": lambda snapshot: snapshot.completed_lessons,
    "chapter": lambda snapshot: snapshot.completed_lessons,
    "tests": lambda snapshot: snapshot.completed_tests,
    "average_score": lambda snapshot: snapshot.average_score,
    "streak": lambda snapshot: snapshot.longest_streak_days,
    "session": lambda snapshot: snapshot.active_days,
    "stars": lambda snapshot: snapshot.total_stars,
    "time_spent": lambda snapshot: snapshot.total_time_spent_minutes,
}

DEFAULT_ACHIEVEMENTS: Tuple[Achievement, ...] = (
    Achievement(
        achievement_id="first-lesson",
        category="lessons",
        required_value=1,
        title="First steps",
        description="Complete your first lesson.",
    ),
    Achievement(
        achievement_id="lessons-10",
        category="lessons",
        required_value=10,
        title="Bookworm",
        description="Complete 10 lessons.",
    ),
    Achievement(
        achievement_id="first-test",
        category="tests",
        required_value=1,
        title="Tested",
        description="Submit your first test.",
    ),
    Achievement(
        achievement_id="streak-3",
        category="streak",
        required_value=3,
        title="On a roll",
        description="Study three days in a row.",
    ),
    Achievement(
        achievement_id="streak-7",
        category="streak",
        required_value=7,
        title="Week of focus",
        description="Study seven days in a row.",
    ),
    Achievement(
        achievement_id="sessions-5",
        category="session",
        required_value=5,
        title="Regular",
        description="Study on five different days.",
    ),
    Achievement(
        achievement_id="stars-10",
        category="stars",
        required_value=10,
        title="Star collector",
        description="Earn 10 stars.",
    ),
    Achievement(
        achievement_id="time-600",
        category="time_spent",
        required_value=600,
        title="Ten hours in",
        description="Spend 600 minutes studying.",
    ),
)


def merge_catalog(existing: Sequence[Achievement], catalog: Optional[Sequence[Achievement]] = None) -> List[Achievement]:
    """Add catalog entries missing from ``existing``; stored records always win."""
    merged = [achievement.model_copy(deep=True) for achievement in existing]
    known = {achievement.achievement_id for achievement in merged}
    for entry in catalog if catalog is not None else DEFAULT_ACHIEVEMENTS:
        if entry.achievement_id not in known:
            merged.append(entry.model_copy(deep=True))
            known.add(entry.achievement_id)
    return merged


def evaluate(
    snapshot: ProgressSnapshot,
    achievements: Sequence[Achievement],
    *,
    now: Optional[datetime] = None,
) -> Tuple[List[Achievement], List[Achievement]]:
    """Return ``(updated, newly_unlocked)``; inputs are not mutated."""
    stamp = now or datetime.now(timezone.utc)
    updated: List[Achievement] = []
    newly_unlocked: List[Achievement] = []
    for achievement in achievements:
        record = achievement.model_copy(deep=True)
        reader = RULES.get(record.category)
        if reader is None:
            logger.debug("Skipping achievement %s with unknown category %s", record.achievement_id, record.category)
            updated.append(record)
            continue
        value = float(reader(snapshot))
        if record.is_completed:
            record.current_value = max(value, record.required_value)
        else:
            record.current_value = value
            if value >= record.required_value:
                record.is_completed = True
                record.completed_at = stamp
                newly_unlocked.append(record)
        updated.append(record)
    return updated, newly_unlocked


__all__ = ["DEFAULT_ACHIEVEMENTS", "RULES", "evaluate", "merge_catalog"]
