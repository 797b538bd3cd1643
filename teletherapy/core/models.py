"""SQLAlchemy 2.0 async models for the therapist scheduling tables."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.types import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


PRIMARY_TEMPLATE_NAME = "primary"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class Base(DeclarativeBase):
    pass


class AvailabilityTemplate(Base):
    """Legacy recurring slot: one row per (therapist, weekday, time range)."""

    __tablename__ = "availability_templates"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    therapist_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Sun..6=Sat
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    session_duration: Mapped[int | None] = mapped_column(Integer, default=60)
    session_type: Mapped[str | None] = mapped_column(String(20), default="individual")
    max_sessions: Mapped[int | None] = mapped_column(Integer, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_availability_templates_therapist", "therapist_id"),
        Index("ix_availability_templates_day", "therapist_id", "day_of_week"),
    )


class AvailabilityWeeklySchedule(Base):
    """Structured weekly schedule document; one 'primary' row per therapist."""

    __tablename__ = "availability_weekly_schedules"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    therapist_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    template_name: Mapped[str] = mapped_column(String(100), default=PRIMARY_TEMPLATE_NAME, nullable=False)
    weekly_availability: Mapped[dict] = mapped_column(JSON, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("therapist_id", "template_name", name="uq_weekly_schedule_therapist_template"),
        Index("ix_weekly_schedules_therapist_active", "therapist_id", "is_active"),
    )


class AvailabilityOverrideDB(Base):
    """Date-specific exception to a therapist's standard hours."""

    __tablename__ = "availability_overrides"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    therapist_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    override_date: Mapped[date] = mapped_column(Date, nullable=False)
    override_type: Mapped[str | None] = mapped_column(String(20))
    is_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(5))
    end_time: Mapped[str | None] = mapped_column(String(5))
    session_duration: Mapped[int | None] = mapped_column(Integer, default=60)
    session_type: Mapped[str | None] = mapped_column(String(20), default="individual")
    max_sessions: Mapped[int | None] = mapped_column(Integer, default=1)
    time_slots: Mapped[list | None] = mapped_column(JSON)
    reason: Mapped[str | None] = mapped_column(String(200))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("therapist_id", "override_date", name="uq_override_therapist_date"),
        Index("ix_availability_overrides_therapist_date", "therapist_id", "override_date"),
    )


class TherapySession(Base):
    """A booked session; only consulted to hide taken start times."""

    __tablename__ = "therapy_sessions"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    therapist_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    patient_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    session_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60)
    status: Mapped[str] = mapped_column(String(20), default="scheduled")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_therapy_sessions_therapist_date", "therapist_id", "session_date"),
        Index("ix_therapy_sessions_status", "status"),
    )
