from __future__ import annotations

import os
from typing import Iterator, List

import pytest

os.environ.setdefault("STUDYTRACK_DATABASE_URL", "sqlite://")
os.environ.setdefault("STUDYTRACK_PERSISTENCE_MODE", "memory")
os.environ.setdefault("STUDYTRACK_TIMEZONE", "UTC")

from studytrack.config import get_settings  # noqa: E402
from studytrack.telemetry import TelemetryEvent, clear_listeners, register_listener  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_state() -> Iterator[None]:
    get_settings.cache_clear()
    clear_listeners()
    yield
    clear_listeners()
    get_settings.cache_clear()


@pytest.fixture
def telemetry_events() -> Iterator[List[TelemetryEvent]]:
    events: List[TelemetryEvent] = []
    unsubscribe = register_listener(events.append)
    yield events
    unsubscribe()
