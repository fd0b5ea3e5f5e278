"""Persistence backends for learning tracks."""

from .tracks import (
    DatabaseTrackRepository,
    InMemoryTrackRepository,
    TrackRepository,
    create_track_repository,
)

__all__ = [
    "DatabaseTrackRepository",
    "InMemoryTrackRepository",
    "TrackRepository",
    "create_track_repository",
]
