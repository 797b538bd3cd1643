"""DB-backed tests for AvailabilityService."""

import uuid
from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from teletherapy.availability.models import (
    AvailabilityOverride,
    CustomHours,
    GeneralHours,
    OverrideType,
    SessionSettings,
    SessionType,
)
from teletherapy.availability.service import (
    AvailabilityService,
    expand_bookable_slots,
    resolve_effective_day,
)
from teletherapy.availability.transformer import to_legacy_rows
from teletherapy.core.models import AvailabilityOverrideDB, AvailabilityTemplate
from teletherapy.core.repository import (
    LegacyScheduleRepository,
    TherapySessionRepository,
    WeeklyScheduleRepository,
)
from tests.conftest import (
    MONDAY,
    OTHER_THERAPIST_ID,
    SUNDAY,
    THERAPIST_ID,
    TUESDAY,
    WEDNESDAY,
    make_availability,
    make_slot,
)


@pytest.fixture
def service(session: AsyncSession) -> AvailabilityService:
    return AvailabilityService(session)


def _closed(day: date, reason: str = "") -> AvailabilityOverride:
    return AvailabilityOverride(date=day, type=OverrideType.UNAVAILABLE, is_available=False, reason=reason)


def _custom(day: date, start: str, end: str, *slots) -> AvailabilityOverride:
    return AvailabilityOverride(
        date=day,
        type=OverrideType.CUSTOM_HOURS,
        is_available=True,
        custom_hours=CustomHours(start=start, end=end, time_slots=list(slots)),
    )


# ---------------------------------------------------------------------------
# Weekly schedule
# ---------------------------------------------------------------------------

class TestSaveAndRead:
    async def test_save_then_read_back(self, service, monday_morning):
        result = await service.save_therapist_availability(THERAPIST_ID, monday_morning)

        assert result.success
        assert result.message == "Availability saved successfully"
        assert result.version == 1
        assert result.template_id is not None

        availability = await service.get_therapist_availability(THERAPIST_ID)
        (slot,) = availability.standard_hours.monday.time_slots
        assert availability.standard_hours.monday.enabled
        assert (slot.start, slot.end) == ("08:00", "09:00")
        assert availability.last_updated is not None

    async def test_both_projections_written(self, service, session, monday_morning):
        await service.save_therapist_availability(THERAPIST_ID, monday_morning)

        rows = await LegacyScheduleRepository(session).read_rows(THERAPIST_ID)
        assert [(r.day_of_week, r.start_time, r.end_time) for r in rows] == [(1, "08:00", "09:00")]

        record = await WeeklyScheduleRepository(session).read_document(THERAPIST_ID)
        assert record.weekly_availability["standard_hours"]["monday"]["enabled"] is True

    async def test_save_replaces_previous_rows(self, service, session, monday_morning):
        await service.save_therapist_availability(THERAPIST_ID, monday_morning)
        result = await service.save_therapist_availability(
            THERAPIST_ID, make_availability(friday=[make_slot("13:00", "14:00")])
        )

        assert result.version == 2
        rows = await LegacyScheduleRepository(session).read_rows(THERAPIST_ID)
        assert [(r.day_of_week, r.start_time) for r in rows] == [(5, "13:00")]

    async def test_default_when_nothing_stored(self, service):
        availability = await service.get_therapist_availability(THERAPIST_ID)

        assert not any(day.enabled for _, day in availability.standard_hours.days())
        assert availability.session_settings.session_duration == 60
        assert await service.get_availability_version(THERAPIST_ID) == 0

    async def test_default_uses_configured_settings(self, session):
        service = AvailabilityService(session, default_settings=SessionSettings(session_duration=50))
        availability = await service.get_therapist_availability(THERAPIST_ID)
        assert availability.session_settings.session_duration == 50

    async def test_legacy_rows_used_without_document(self, service, session):
        legacy = make_availability(tuesday=[make_slot("09:00", "10:00", type=SessionType.GROUP)])
        await LegacyScheduleRepository(session).replace_rows(THERAPIST_ID, to_legacy_rows(legacy, THERAPIST_ID))

        availability = await service.get_therapist_availability(THERAPIST_ID)
        (slot,) = availability.standard_hours.tuesday.time_slots
        assert slot.type == SessionType.GROUP
        assert slot.title == "Group Session"

    async def test_therapists_are_isolated(self, service, monday_morning):
        await service.save_therapist_availability(THERAPIST_ID, monday_morning)
        other = await service.get_therapist_availability(OTHER_THERAPIST_ID)
        assert not other.standard_hours.monday.enabled

    async def test_document_read_failure_falls_back_to_legacy_rows(self, service, session):
        legacy = make_availability(tuesday=[make_slot("09:00", "10:00")])
        await LegacyScheduleRepository(session).replace_rows(THERAPIST_ID, to_legacy_rows(legacy, THERAPIST_ID))

        with patch.object(
            service._weekly, "read_document", new=AsyncMock(side_effect=SQLAlchemyError("no such table"))
        ):
            availability = await service.get_therapist_availability(THERAPIST_ID)
            version = await service.get_availability_version(THERAPIST_ID)

        assert availability.standard_hours.tuesday.enabled
        assert [s.start for s in availability.standard_hours.tuesday.time_slots] == ["09:00"]
        assert version == 0

    async def test_malformed_legacy_row_skipped(self, service, session):
        session.add_all([
            AvailabilityTemplate(therapist_id=THERAPIST_ID, day_of_week=7, start_time="09:00", end_time="10:00"),
            AvailabilityTemplate(therapist_id=THERAPIST_ID, day_of_week=1, start_time="11:00", end_time="12:00"),
        ])
        await session.flush()

        availability = await service.get_therapist_availability(THERAPIST_ID)

        assert [s.start for s in availability.standard_hours.monday.time_slots] == ["11:00"]
        assert [name for name, day in availability.standard_hours.days() if day.enabled] == ["monday"]

    async def test_only_malformed_legacy_rows_gives_default(self, service, session):
        session.add(
            AvailabilityTemplate(therapist_id=THERAPIST_ID, day_of_week=9, start_time="09:00", end_time="10:00")
        )
        await session.flush()

        availability = await service.get_therapist_availability(THERAPIST_ID)
        assert not any(day.enabled for _, day in availability.standard_hours.days())


class TestSaveFailures:
    async def test_validation_failure_writes_nothing(self, service):
        invalid = make_availability(monday=[make_slot("09:00", "10:00", duration=0)])

        with (
            patch.object(service._legacy, "replace_rows", new=AsyncMock()) as replace_rows,
            patch.object(service._weekly, "upsert_document", new=AsyncMock()) as upsert_document,
        ):
            result = await service.save_therapist_availability(THERAPIST_ID, invalid)

        assert not result.success
        assert result.message == "Validation failed: monday slot 1 has invalid duration"
        assert result.errors == ["monday slot 1 has invalid duration"]
        replace_rows.assert_not_awaited()
        upsert_document.assert_not_awaited()

    async def test_legacy_failure_is_fatal(self, service, session, monday_morning):
        with patch.object(
            service._legacy, "replace_rows", new=AsyncMock(side_effect=SQLAlchemyError("disk full"))
        ):
            result = await service.save_therapist_availability(THERAPIST_ID, monday_morning)

        assert not result.success
        assert result.message == "Failed to save availability templates"
        assert await WeeklyScheduleRepository(session).read_document(THERAPIST_ID) is None

    async def test_document_failure_is_not_fatal(self, service, session, monday_morning):
        await service.save_therapist_availability(THERAPIST_ID, monday_morning)

        friday = make_availability(friday=[make_slot("13:00", "14:00")])
        with patch.object(
            service._weekly, "upsert_document", new=AsyncMock(side_effect=SQLAlchemyError("json column"))
        ):
            result = await service.save_therapist_availability(THERAPIST_ID, friday)

        assert result.success
        assert result.version is None

        # The stale document is retired so the fresh legacy rows win.
        assert await WeeklyScheduleRepository(session).read_document(THERAPIST_ID) is None
        availability = await service.get_therapist_availability(THERAPIST_ID)
        assert availability.standard_hours.friday.enabled
        assert not availability.standard_hours.monday.enabled

    async def test_stale_version_rejected(self, service, session, monday_morning):
        first = await service.save_therapist_availability(THERAPIST_ID, monday_morning, expected_version=0)
        assert first.version == 1

        friday = make_availability(friday=[make_slot("13:00", "14:00")])
        result = await service.save_therapist_availability(THERAPIST_ID, friday, expected_version=0)

        assert not result.success
        assert result.conflict
        assert result.version == 1

        rows = await LegacyScheduleRepository(session).read_rows(THERAPIST_ID)
        assert [r.day_of_week for r in rows] == [1]
        assert await service.get_availability_version(THERAPIST_ID) == 1

    async def test_current_version_accepted(self, service, monday_morning):
        await service.save_therapist_availability(THERAPIST_ID, monday_morning)
        result = await service.save_therapist_availability(THERAPIST_ID, monday_morning, expected_version=1)
        assert result.success
        assert result.version == 2

    async def test_strict_service_rejects_overlap(self, session):
        service = AvailabilityService(session, strict_validation=True)
        overlapping = make_availability(monday=[make_slot("09:00", "11:00"), make_slot("10:00", "12:00")])

        result = await service.save_therapist_availability(THERAPIST_ID, overlapping)
        assert not result.success
        assert result.errors == ["monday slot 1 overlaps slot 2"]


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------

class TestOverrides:
    async def test_save_and_list(self, service):
        result = await service.save_availability_override(THERAPIST_ID, _closed(MONDAY, "Conference"))

        assert result.success
        assert result.message == "Override saved successfully"
        assert result.override.id is not None

        overrides = await service.get_availability_overrides(THERAPIST_ID)
        assert [(o.date, o.type, o.reason) for o in overrides] == [
            (MONDAY, OverrideType.UNAVAILABLE, "Conference")
        ]

    async def test_range_is_inclusive_and_ordered(self, service):
        for day in (WEDNESDAY, MONDAY, TUESDAY, WEDNESDAY + timedelta(days=1)):
            await service.save_availability_override(THERAPIST_ID, _closed(day))

        overrides = await service.get_availability_overrides(THERAPIST_ID, MONDAY, WEDNESDAY)
        assert [o.date for o in overrides] == [MONDAY, TUESDAY, WEDNESDAY]

    async def test_one_override_per_date(self, service):
        await service.save_availability_override(THERAPIST_ID, _closed(MONDAY))
        result = await service.save_availability_override(
            THERAPIST_ID, _custom(MONDAY, "10:00", "12:00", make_slot("10:00", "12:00", duration=120))
        )
        assert result.success

        overrides = await service.get_availability_overrides(THERAPIST_ID)
        assert len(overrides) == 1
        assert overrides[0].is_available

    async def test_multi_slot_custom_hours_survive_storage(self, service):
        await service.save_availability_override(
            THERAPIST_ID,
            _custom(WEDNESDAY, "09:00", "17:00", make_slot("09:00", "10:00"), make_slot("16:00", "17:00")),
        )
        (override,) = await service.get_availability_overrides(THERAPIST_ID)
        assert [s.start for s in override.custom_hours.time_slots] == ["09:00", "16:00"]

    async def test_invalid_override_rejected(self, service):
        bad = AvailabilityOverride(date=MONDAY, type=OverrideType.UNAVAILABLE, is_available=True,
                                   custom_hours=CustomHours(start="09:00", end="10:00"))
        result = await service.save_availability_override(THERAPIST_ID, bad)

        assert not result.success
        assert result.errors
        assert await service.get_availability_overrides(THERAPIST_ID) == []

    async def test_delete_override(self, service):
        saved = await service.save_availability_override(THERAPIST_ID, _closed(MONDAY))
        override_id = uuid.UUID(saved.override.id)

        result = await service.delete_availability_override(THERAPIST_ID, override_id)
        assert result.success
        assert result.message == "Override deleted successfully"
        assert await service.get_availability_overrides(THERAPIST_ID) == []

        again = await service.delete_availability_override(THERAPIST_ID, override_id)
        assert not again.success
        assert again.message == "Override not found"

    async def test_cannot_delete_another_therapists_override(self, service):
        saved = await service.save_availability_override(THERAPIST_ID, _closed(MONDAY))
        result = await service.delete_availability_override(OTHER_THERAPIST_ID, uuid.UUID(saved.override.id))

        assert result.message == "Override not found"
        assert len(await service.get_availability_overrides(THERAPIST_ID)) == 1

    async def test_store_unavailable_returns_empty(self, service):
        with patch.object(service._overrides, "list", new=AsyncMock(side_effect=SQLAlchemyError("down"))):
            assert await service.get_availability_overrides(THERAPIST_ID) == []

    async def test_malformed_override_row_skipped(self, service, session):
        session.add(
            AvailabilityOverrideDB(
                therapist_id=THERAPIST_ID, override_date=MONDAY, override_type="holiday", is_available=False
            )
        )
        await session.flush()
        await service.save_availability_override(THERAPIST_ID, _closed(TUESDAY))

        overrides = await service.get_availability_overrides(THERAPIST_ID)
        assert [o.date for o in overrides] == [TUESDAY]

        resolved = await service.resolve_day(THERAPIST_ID, MONDAY)
        assert resolved.source == "standard"


# ---------------------------------------------------------------------------
# Resolution and bookable slots
# ---------------------------------------------------------------------------

class TestResolution:
    async def test_unavailable_override_closes_enabled_day(self, service):
        await service.save_therapist_availability(
            THERAPIST_ID, make_availability(tuesday=[make_slot("09:00", "12:00")])
        )
        await service.save_availability_override(THERAPIST_ID, _closed(TUESDAY, "Sick"))

        resolved = await service.resolve_day(THERAPIST_ID, TUESDAY)
        assert resolved.source == "override"
        assert not resolved.is_available
        assert await service.get_bookable_slots(THERAPIST_ID, TUESDAY) == []

        next_tuesday = await service.get_bookable_slots(THERAPIST_ID, TUESDAY + timedelta(days=7))
        assert [s.start_time for s in next_tuesday] == ["09:00", "10:00", "11:00"]

    async def test_custom_hours_replace_weekday_slots(self, service):
        await service.save_therapist_availability(
            THERAPIST_ID, make_availability(wednesday=[make_slot("09:00", "17:00")])
        )
        await service.save_availability_override(
            THERAPIST_ID, _custom(WEDNESDAY, "13:00", "15:00", make_slot("13:00", "15:00"))
        )

        slots = await service.get_bookable_slots(THERAPIST_ID, WEDNESDAY)
        assert [(s.start_time, s.end_time) for s in slots] == [("13:00", "14:00"), ("14:00", "15:00")]
        assert all(s.is_override and s.day_of_week == 3 for s in slots)

    async def test_custom_hours_open_a_disabled_day(self, service):
        await service.save_availability_override(
            THERAPIST_ID, _custom(SUNDAY, "10:00", "11:00", make_slot("10:00", "11:00"))
        )
        slots = await service.get_bookable_slots(THERAPIST_ID, SUNDAY)
        assert [s.start_time for s in slots] == ["10:00"]

    async def test_disabled_day_has_no_slots(self, service, monday_morning):
        await service.save_therapist_availability(THERAPIST_ID, monday_morning)
        resolved = await service.resolve_day(THERAPIST_ID, TUESDAY)

        assert resolved.source == "standard"
        assert not resolved.is_available

    async def test_buffer_from_session_settings(self, service):
        await service.save_therapist_availability(
            THERAPIST_ID, make_availability(buffer_time=15, monday=[make_slot("09:00", "17:00")])
        )
        slots = await service.get_bookable_slots(THERAPIST_ID, MONDAY)
        assert [s.start_time for s in slots] == ["09:00", "10:15", "11:30", "12:45", "14:00", "15:15"]

    async def test_booked_start_times_removed(self, service, session):
        await service.save_therapist_availability(
            THERAPIST_ID, make_availability(monday=[make_slot("09:00", "12:00")])
        )
        sessions = TherapySessionRepository(session)
        await sessions.create(therapist_id=THERAPIST_ID, session_date=MONDAY, session_time="10:00:00")
        await sessions.create(
            therapist_id=THERAPIST_ID, session_date=MONDAY, session_time="11:00", status="cancelled"
        )

        resolved, slots = await service.get_day_slots(THERAPIST_ID, MONDAY)
        assert resolved.is_available
        assert [s.start_time for s in slots] == ["09:00", "11:00"]

    async def test_booked_lookup_failure_keeps_slots(self, service, monday_morning):
        await service.save_therapist_availability(THERAPIST_ID, monday_morning)

        with patch.object(
            service._sessions, "booked_times", new=AsyncMock(side_effect=SQLAlchemyError("relation missing"))
        ):
            resolved, slots = await service.get_day_slots(THERAPIST_ID, MONDAY)

        assert resolved.is_available
        assert [s.start_time for s in slots] == ["08:00"]
        assert await service.get_availability_version(THERAPIST_ID) == 1

    async def test_resolve_range(self, service, monday_morning):
        await service.save_therapist_availability(THERAPIST_ID, monday_morning)
        await service.save_availability_override(THERAPIST_ID, _closed(MONDAY + timedelta(days=7)))

        days = await service.resolve_range(THERAPIST_ID, SUNDAY, SUNDAY + timedelta(days=13))

        assert len(days) == 14
        assert [d.date for d in days if d.is_available] == [MONDAY]
        assert days[8].source == "override"

    async def test_resolve_range_bounds(self, service):
        with pytest.raises(ValueError):
            await service.resolve_range(THERAPIST_ID, TUESDAY, MONDAY)
        with pytest.raises(ValueError):
            await service.resolve_range(THERAPIST_ID, MONDAY, MONDAY + timedelta(days=400))


class TestExpansion:
    def test_general_hours_preferred_over_time_slots(self):
        availability = make_availability(monday=[make_slot("09:00", "10:00")])
        availability.standard_hours.monday.general_hours = GeneralHours(
            start="13:00", end="15:00", session_duration=30, buffer_time=0
        )
        resolved = resolve_effective_day(MONDAY, availability)
        slots = expand_bookable_slots(resolved, availability.session_settings)

        assert [s.start_time for s in slots] == ["13:00", "13:30", "14:00", "14:30"]
        assert all(s.session_duration == 30 for s in slots)

    def test_unavailable_slots_ignored(self):
        availability = make_availability(
            monday=[make_slot("09:00", "10:00", is_available=False), make_slot("11:00", "12:00")]
        )
        slots = expand_bookable_slots(resolve_effective_day(MONDAY, availability), availability.session_settings)
        assert [s.start_time for s in slots] == ["11:00"]

    def test_duplicate_starts_collapsed(self):
        availability = make_availability(monday=[make_slot("09:00", "10:00"), make_slot("09:00", "11:00")])
        slots = expand_bookable_slots(resolve_effective_day(MONDAY, availability), availability.session_settings)
        assert [s.start_time for s in slots] == ["09:00", "10:00"]
