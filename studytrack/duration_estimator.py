"""Estimated time cost for lesson units."""

from __future__ import annotations

import logging
import math
import uuid
from typing import Any, Iterable, List, Mapping, Optional

from .learning_track import LessonUnit

logger = logging.getLogger(__name__)

DEFAULT_MINUTES_BY_TYPE = {
    "theory": 30,
    "exercise": 20,
}
FALLBACK_MINUTES = 15


def estimate_minutes(lesson_type: Optional[str], declared_minutes: Any = None) -> int:
    """A positive declared duration wins; otherwise fall back to the per-type default."""
    if isinstance(declared_minutes, (int, float)) and not isinstance(declared_minutes, bool):
        if math.isfinite(declared_minutes) and declared_minutes > 0:
            return max(1, round(declared_minutes))
    key = lesson_type.strip().lower() if isinstance(lesson_type, str) else ""
    return DEFAULT_MINUTES_BY_TYPE.get(key, FALLBACK_MINUTES)


def _normalise_type(raw: Any) -> str:
    if isinstance(raw, str) and raw.strip().lower() == "exercise":
        return "exercise"
    return "theory"


def build_lesson_units(raw_lessons: Iterable[Mapping[str, Any]]) -> List[LessonUnit]:
    """Convert generated lesson structures into immutable lesson units."""
    units: List[LessonUnit] = []
    for index, raw in enumerate(raw_lessons):
        lesson_id = raw.get("id")
        if not isinstance(lesson_id, str) or not lesson_id.strip():
            lesson_id = uuid.uuid4().hex
            logger.debug("Generated id %s for lesson at position %d", lesson_id, index)
        raw_type = raw.get("type")
        prerequisites = raw.get("prerequisite_ids") or []
        units.append(
            LessonUnit(
                id=lesson_id.strip(),
                title=str(raw.get("title") or f"Lesson {index + 1}"),
                estimated_minutes=estimate_minutes(
                    raw_type if isinstance(raw_type, str) else None,
                    raw.get("duration"),
                ),
                type=_normalise_type(raw_type),
                prerequisite_ids=[str(item) for item in prerequisites if item],
            )
        )
    return units


__all__ = ["DEFAULT_MINUTES_BY_TYPE", "FALLBACK_MINUTES", "build_lesson_units", "estimate_minutes"]
