"""Pytest configuration and fixtures."""

import uuid
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from teletherapy.availability.models import (
    DayAvailability,
    SessionSettings,
    StandardHours,
    TimeSlot,
    WeeklyAvailability,
)
from teletherapy.core.database import enable_sqlite_savepoints
from teletherapy.core.models import Base

THERAPIST_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
OTHER_THERAPIST_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")

# A week in March 2025, Sunday to Saturday.
SUNDAY = date(2025, 3, 9)
MONDAY = date(2025, 3, 10)
TUESDAY = date(2025, 3, 11)
WEDNESDAY = date(2025, 3, 12)


# ---------------------------------------------------------------------------
# Fixtures: in-memory SQLite engine with working SAVEPOINTs
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    enable_sqlite_savepoints(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as sess:
        yield sess
        await sess.rollback()


# ---------------------------------------------------------------------------
# Schedule builders
# ---------------------------------------------------------------------------

def make_slot(start: str, end: str, duration: int = 60, **kwargs) -> TimeSlot:
    return TimeSlot(start=start, end=end, duration=duration, **kwargs)


def make_availability(
    buffer_time: int = 0,
    **days: list[TimeSlot],
) -> WeeklyAvailability:
    """Weekly schedule with the named days enabled, e.g. ``monday=[slot]``."""
    standard = StandardHours(
        **{name: DayAvailability(enabled=True, time_slots=slots) for name, slots in days.items()}
    )
    return WeeklyAvailability(
        standard_hours=standard,
        session_settings=SessionSettings(buffer_time=buffer_time),
    )


@pytest.fixture
def monday_morning() -> WeeklyAvailability:
    """Monday 08:00-09:00, one individual session."""
    return make_availability(monday=[make_slot("08:00", "09:00")])
