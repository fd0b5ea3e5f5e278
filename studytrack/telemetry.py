"""In-process telemetry for scheduling and progress events.

Each event is fanned out to registered listeners and written as a single
``TELEMETRY {json}`` line on the ``studytrack.telemetry`` logger.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from pydantic import BaseModel

logger = logging.getLogger("studytrack.telemetry")

TRACK_EVENTS: FrozenSet[str] = frozenset(
    {
        "schedule_generation",
        "schedule_item_completed",
        "schedule_item_rescheduled",
        "achievement_unlocked",
        "progress_event_recorded",
    }
)

Listener = Callable[["TelemetryEvent"], None]


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]

    @property
    def track_id(self) -> Optional[str]:
        value = self.payload.get("track_id")
        return value or None


_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> Callable[[], None]:
    """Subscribe ``listener``; the returned callable unsubscribes it."""
    with _lock:
        _listeners.append(listener)

    def _unsubscribe() -> None:
        with _lock:
            if listener in _listeners:
                _listeners.remove(listener)

    return _unsubscribe


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def emit_event(name: str, **fields: Any) -> TelemetryEvent:
    if name not in TRACK_EVENTS:
        logger.warning("Emitting unregistered telemetry event %s", name)
    event = TelemetryEvent(name=name, payload=_sanitize(fields))

    with _lock:
        listeners = list(_listeners)
    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("TELEMETRY %s", json.dumps({"event": name, **event.payload}, sort_keys=True, default=str))
    return event


def _sanitize(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(_sanitize(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return value


__all__ = [
    "TRACK_EVENTS",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
]
