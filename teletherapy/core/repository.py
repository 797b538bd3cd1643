"""Repositories for the availability tables."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from teletherapy.availability.models import LegacyTemplateRow, OverrideRow
from teletherapy.core.models import (
    PRIMARY_TEMPLATE_NAME,
    AvailabilityOverrideDB,
    AvailabilityTemplate,
    AvailabilityWeeklySchedule,
    TherapySession,
)

BOOKED_STATUSES = ("scheduled", "confirmed")


class ScheduleVersionConflict(Exception):
    """Raised when a document upsert carries a stale version token."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected schedule version {expected}, found {actual}")
        self.expected = expected
        self.actual = actual


class LegacyScheduleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def read_rows(self, therapist_id: uuid.UUID) -> Sequence[AvailabilityTemplate]:
        stmt = (
            select(AvailabilityTemplate)
            .where(
                AvailabilityTemplate.therapist_id == therapist_id,
                AvailabilityTemplate.is_active.is_(True),
            )
            .order_by(AvailabilityTemplate.day_of_week, AvailabilityTemplate.start_time)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def replace_rows(
        self, therapist_id: uuid.UUID, rows: Sequence[LegacyTemplateRow]
    ) -> list[AvailabilityTemplate]:
        """Delete every row for the therapist, then insert *rows*."""
        await self.session.execute(
            delete(AvailabilityTemplate).where(AvailabilityTemplate.therapist_id == therapist_id)
        )
        created = [
            AvailabilityTemplate(**row.model_dump(exclude={"id"}))
            for row in rows
        ]
        self.session.add_all(created)
        await self.session.flush()
        return created


class WeeklyScheduleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def read_document(self, therapist_id: uuid.UUID) -> Optional[AvailabilityWeeklySchedule]:
        stmt = (
            select(AvailabilityWeeklySchedule)
            .where(
                AvailabilityWeeklySchedule.therapist_id == therapist_id,
                AvailabilityWeeklySchedule.is_active.is_(True),
            )
            .order_by(AvailabilityWeeklySchedule.updated_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def upsert_document(
        self,
        therapist_id: uuid.UUID,
        document: dict,
        expected_version: Optional[int] = None,
    ) -> AvailabilityWeeklySchedule:
        """Insert or replace the therapist's primary schedule document.

        When *expected_version* is given it must match the stored version
        (0 meaning "no document yet"), otherwise ``ScheduleVersionConflict``.
        """
        stmt = select(AvailabilityWeeklySchedule).where(
            AvailabilityWeeklySchedule.therapist_id == therapist_id,
            AvailabilityWeeklySchedule.template_name == PRIMARY_TEMPLATE_NAME,
        )
        existing = (await self.session.execute(stmt)).scalar_one_or_none()
        current_version = existing.version if existing else 0
        if expected_version is not None and expected_version != current_version:
            raise ScheduleVersionConflict(expected_version, current_version)

        await self.session.execute(
            update(AvailabilityWeeklySchedule)
            .where(
                AvailabilityWeeklySchedule.therapist_id == therapist_id,
                AvailabilityWeeklySchedule.template_name != PRIMARY_TEMPLATE_NAME,
            )
            .values(is_active=False)
        )

        if existing:
            existing.weekly_availability = document
            existing.is_active = True
            existing.version = current_version + 1
            existing.updated_at = datetime.now(timezone.utc)
            record = existing
        else:
            record = AvailabilityWeeklySchedule(
                therapist_id=therapist_id,
                template_name=PRIMARY_TEMPLATE_NAME,
                weekly_availability=document,
                is_active=True,
                version=1,
            )
            self.session.add(record)
        await self.session.flush()
        return record

    async def deactivate(self, therapist_id: uuid.UUID) -> None:
        await self.session.execute(
            update(AvailabilityWeeklySchedule)
            .where(AvailabilityWeeklySchedule.therapist_id == therapist_id)
            .values(is_active=False)
        )
        await self.session.flush()


class OverrideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list(
        self,
        therapist_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Sequence[AvailabilityOverrideDB]:
        stmt = select(AvailabilityOverrideDB).where(AvailabilityOverrideDB.therapist_id == therapist_id)
        if start_date:
            stmt = stmt.where(AvailabilityOverrideDB.override_date >= start_date)
        if end_date:
            stmt = stmt.where(AvailabilityOverrideDB.override_date <= end_date)
        stmt = stmt.order_by(AvailabilityOverrideDB.override_date)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_by_id(self, override_id: uuid.UUID) -> Optional[AvailabilityOverrideDB]:
        return await self.session.get(AvailabilityOverrideDB, override_id)

    async def get_for_date(self, therapist_id: uuid.UUID, day: date) -> Optional[AvailabilityOverrideDB]:
        stmt = select(AvailabilityOverrideDB).where(
            AvailabilityOverrideDB.therapist_id == therapist_id,
            AvailabilityOverrideDB.override_date == day,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, therapist_id: uuid.UUID, row: OverrideRow) -> AvailabilityOverrideDB:
        """Create the override for ``row.override_date`` or replace the existing one."""
        values = row.model_dump(exclude={"id", "therapist_id", "created_at", "updated_at"})
        existing = await self.get_for_date(therapist_id, row.override_date)
        if existing:
            for k, v in values.items():
                setattr(existing, k, v)
            existing.updated_at = datetime.now(timezone.utc)
            record = existing
        else:
            record = AvailabilityOverrideDB(therapist_id=therapist_id, **values)
            self.session.add(record)
        await self.session.flush()
        return record

    async def delete(self, override_id: uuid.UUID) -> bool:
        record = await self.get_by_id(override_id)
        if not record:
            return False
        await self.session.delete(record)
        await self.session.flush()
        return True


class TherapySessionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> TherapySession:
        record = TherapySession(**kwargs)
        self.session.add(record)
        await self.session.flush()
        return record

    async def booked_times(self, therapist_id: uuid.UUID, day: date) -> set[str]:
        """Start times (``HH:MM``) already taken on *day*."""
        stmt = select(TherapySession.session_time).where(
            TherapySession.therapist_id == therapist_id,
            TherapySession.session_date == day,
            TherapySession.status.in_(BOOKED_STATUSES),
        )
        result = await self.session.execute(stmt)
        return {t[:5] for t in result.scalars().all()}
