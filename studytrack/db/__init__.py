"""Database utilities for studytrack."""

from .session import (
    dispose_engine,
    get_engine,
    get_session_factory,
    session_scope,
)

__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
