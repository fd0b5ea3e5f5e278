"""ORM models backing the track persistence layer."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class TrackModel(TimestampMixin, Base):
    __tablename__ = "learning_tracks"

    track_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    lesson_units: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    total_tests: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    schedule: Mapped[Optional["TrackScheduleModel"]] = relationship(
        back_populates="track", cascade="all, delete-orphan", uselist=False
    )


class TrackScheduleModel(Base):
    __tablename__ = "track_schedules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    track_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("learning_tracks.track_id", ondelete="CASCADE"), nullable=False, unique=True
    )
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    daily_start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    total_lessons: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_lessons: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lesson_minutes: Mapped[dict[str, int]] = mapped_column(JSONType, default=dict, nullable=False)

    track: Mapped[TrackModel] = relationship(back_populates="schedule")
    sessions: Mapped[list["ScheduleSessionModel"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="ScheduleSessionModel.session_date",
    )


class ScheduleSessionModel(Base):
    __tablename__ = "schedule_sessions"
    __table_args__ = (
        UniqueConstraint("schedule_id", "session_date", name="uq_schedule_session_day"),
        Index("ix_schedule_sessions_date", "session_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("track_schedules.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    lesson_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    completed_lesson_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_missed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    schedule: Mapped[TrackScheduleModel] = relationship(back_populates="sessions")


class ProgressEventModel(Base):
    __tablename__ = "progress_events"
    __table_args__ = (
        UniqueConstraint("track_id", "event_id", name="uq_progress_event_id"),
        Index("ix_progress_events_track", "track_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    track_id: Mapped[str] = mapped_column(String(128), nullable=False)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )


class AchievementModel(TimestampMixin, Base):
    __tablename__ = "track_achievements"
    __table_args__ = (UniqueConstraint("track_id", "achievement_id", name="uq_track_achievement"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    track_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    required_value: Mapped[float] = mapped_column(Float, nullable=False)
    current_value: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    title: Mapped[str] = mapped_column(Text, default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)


__all__ = [
    "AchievementModel",
    "ProgressEventModel",
    "ScheduleSessionModel",
    "TrackModel",
    "TrackScheduleModel",
]
