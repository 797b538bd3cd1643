"""Availability resolution service.

Keeps the two stored projections of a therapist's weekly schedule (legacy
template rows and the structured document) in step, layers date overrides
on top, and expands the result into bookable slots.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from teletherapy.availability.models import (
    AvailabilityOverride,
    BookableSlot,
    DeleteOverrideResult,
    LegacyTemplateRow,
    OverrideRow,
    ResolvedDay,
    SaveAvailabilityResult,
    SaveOverrideResult,
    SessionSettings,
    StandardHours,
    TimeSlot,
    ValidationResult,
    WeeklyAvailability,
    day_name_for,
    day_of_week_index,
)
from teletherapy.availability.slots import generate_time_slots, is_valid_time
from teletherapy.availability.transformer import (
    default_weekly_availability,
    from_legacy_rows,
    override_from_row,
    override_to_row,
    to_legacy_rows,
)
from teletherapy.availability.validator import validate_override, validate_weekly_availability
from teletherapy.core.repository import (
    LegacyScheduleRepository,
    OverrideRepository,
    ScheduleVersionConflict,
    TherapySessionRepository,
    WeeklyScheduleRepository,
)

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 366


# ---------------------------------------------------------------------------
# Pure resolution helpers
# ---------------------------------------------------------------------------

def resolve_effective_day(
    day: date,
    availability: WeeklyAvailability,
    override: Optional[AvailabilityOverride] = None,
) -> ResolvedDay:
    """Combine the weekly pattern and an optional override for *day*.

    An unavailable override closes the day. An available override's custom
    hours replace the weekday's slots outright; they are never merged.
    """
    name = day_name_for(day)

    if override is not None:
        if not override.is_available:
            return ResolvedDay(
                date=day, day_name=name, source="override",
                is_available=False, override_id=override.id,
            )
        hours = override.custom_hours
        slots: list[TimeSlot] = []
        if hours is not None:
            slots = [s for s in hours.time_slots if s.is_available]
            if not hours.time_slots and hours.start and hours.end:
                slots = [TimeSlot(start=hours.start, end=hours.end, title="Override Session")]
        return ResolvedDay(
            date=day, day_name=name, source="override",
            is_available=bool(slots), time_slots=slots, override_id=override.id,
        )

    standard = availability.standard_hours or StandardHours()
    day_availability = standard.day(name)
    if not day_availability.enabled:
        return ResolvedDay(date=day, day_name=name, source="standard", is_available=False)

    time_slots = [s for s in day_availability.time_slots if s.is_available]
    custom_slots = [s for s in day_availability.custom_slots if s.is_available]
    return ResolvedDay(
        date=day,
        day_name=name,
        source="standard",
        is_available=bool(time_slots or custom_slots or day_availability.general_hours),
        time_slots=time_slots,
        custom_slots=custom_slots,
        general_hours=day_availability.general_hours,
    )


def expand_bookable_slots(
    resolved: ResolvedDay,
    settings: Optional[SessionSettings] = None,
) -> list[BookableSlot]:
    """Expand a resolved day into concrete, bookable session slots.

    Standard days prefer ``custom_slots``, then ``general_hours``, then
    ``time_slots``. Each window is cut into sessions of the window's own
    duration separated by the configured buffer.
    """
    if not resolved.is_available:
        return []
    settings = settings or SessionSettings()
    buffer_time = settings.buffer_time

    if resolved.custom_slots:
        generated = _expand_windows(resolved.custom_slots, settings, buffer_time)
    elif resolved.general_hours is not None:
        hours = resolved.general_hours
        generated = []
        if is_valid_time(hours.start) and is_valid_time(hours.end):
            generated = generate_time_slots(
                hours.start,
                hours.end,
                hours.session_duration or settings.session_duration,
                hours.buffer_time if hours.buffer_time is not None else buffer_time,
            )
    else:
        generated = _expand_windows(resolved.time_slots, settings, buffer_time)

    is_override = resolved.source == "override"
    seen: set[str] = set()
    bookable: list[BookableSlot] = []
    for slot in sorted(generated, key=lambda s: s.start):
        if slot.start in seen:
            continue
        seen.add(slot.start)
        bookable.append(
            BookableSlot(
                date=resolved.date,
                day_of_week=day_of_week_index(resolved.date),
                start_time=slot.start,
                end_time=slot.end,
                session_duration=slot.duration,
                session_type=slot.type,
                max_sessions=slot.max_sessions,
                is_override=is_override,
            )
        )
    return bookable


def _expand_windows(
    windows: list[TimeSlot], settings: SessionSettings, buffer_time: int
) -> list[TimeSlot]:
    generated: list[TimeSlot] = []
    for window in windows:
        if not (is_valid_time(window.start) and is_valid_time(window.end)):
            logger.warning("Skipping slot %s with invalid times %r-%r", window.id, window.start, window.end)
            continue
        duration = window.duration if window.duration > 0 else settings.session_duration
        generated.extend(
            generate_time_slots(
                window.start,
                window.end,
                duration,
                buffer_time,
                session_type=window.type,
                max_sessions=window.max_sessions,
            )
        )
    return generated


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class AvailabilityService:
    """Public API over a therapist's weekly schedule and date overrides.

    Every operation reports failure through its result object or a safe
    default; store errors are logged and never raised to the caller.
    """

    def __init__(
        self,
        session: AsyncSession,
        strict_validation: bool = False,
        default_settings: Optional[SessionSettings] = None,
    ) -> None:
        self.session = session
        self.strict_validation = strict_validation
        self.default_settings = default_settings or SessionSettings()
        self._legacy = LegacyScheduleRepository(session)
        self._weekly = WeeklyScheduleRepository(session)
        self._overrides = OverrideRepository(session)
        self._sessions = TherapySessionRepository(session)

    # ------------------------------------------------------------------
    # Weekly schedule
    # ------------------------------------------------------------------

    def validate(self, availability: WeeklyAvailability) -> ValidationResult:
        return validate_weekly_availability(availability, strict=self.strict_validation)

    def get_default_availability(self) -> WeeklyAvailability:
        return default_weekly_availability(self.default_settings.model_copy())

    async def save_therapist_availability(
        self,
        therapist_id: uuid.UUID,
        availability: WeeklyAvailability,
        expected_version: Optional[int] = None,
    ) -> SaveAvailabilityResult:
        """Validate, then write the legacy rows and the schedule document.

        The legacy rows are authoritative: if they cannot be written nothing
        is kept. A failed document write is logged and the save still
        succeeds. A stale *expected_version* aborts both writes.
        """
        validation = self.validate(availability)
        if not validation.is_valid:
            return SaveAvailabilityResult(
                success=False,
                message=f"Validation failed: {', '.join(validation.errors)}",
                errors=validation.errors,
                warnings=validation.warnings,
            )

        stamped = availability.model_copy(update={"last_updated": datetime.now(timezone.utc)})
        legacy_rows = to_legacy_rows(stamped, therapist_id)
        document = stamped.model_dump(mode="json")

        try:
            async with self.session.begin_nested():
                inserted = await self._legacy.replace_rows(therapist_id, legacy_rows)
                version = await self._store_document(therapist_id, document, expected_version)
        except ScheduleVersionConflict as exc:
            logger.info("Availability save for %s rejected: %s", therapist_id, exc)
            return SaveAvailabilityResult(
                success=False,
                message="Availability was changed by another editor; reload and try again",
                conflict=True,
                version=exc.actual,
                warnings=validation.warnings,
            )
        except SQLAlchemyError:
            logger.exception("Error saving availability templates for %s", therapist_id)
            return SaveAvailabilityResult(
                success=False,
                message="Failed to save availability templates",
                warnings=validation.warnings,
            )

        logger.info(
            "Saved availability for %s: %d template rows, version=%s",
            therapist_id, len(inserted), version,
        )
        return SaveAvailabilityResult(
            success=True,
            message="Availability saved successfully",
            template_id=str(inserted[0].id) if inserted else None,
            version=version,
            warnings=validation.warnings,
        )

    async def _store_document(
        self,
        therapist_id: uuid.UUID,
        document: dict,
        expected_version: Optional[int],
    ) -> Optional[int]:
        try:
            async with self.session.begin_nested():
                record = await self._weekly.upsert_document(therapist_id, document, expected_version)
            return record.version
        except SQLAlchemyError as exc:
            logger.warning(
                "Failed to store weekly schedule document for %s, legacy rows saved: %s",
                therapist_id, exc,
            )

        # A stale document would shadow the fresh legacy rows on read.
        try:
            async with self.session.begin_nested():
                await self._weekly.deactivate(therapist_id)
        except SQLAlchemyError as exc:
            logger.warning("Could not retire stale schedule document for %s: %s", therapist_id, exc)
        return None

    async def get_therapist_availability(self, therapist_id: uuid.UUID) -> WeeklyAvailability:
        """Return the schedule document, else the legacy rows, else the default."""
        try:
            async with self.session.begin_nested():
                record = await self._weekly.read_document(therapist_id)
        except SQLAlchemyError as exc:
            logger.warning("Could not read schedule document for %s: %s", therapist_id, exc)
            record = None

        if record is not None and record.weekly_availability:
            try:
                return WeeklyAvailability.model_validate(record.weekly_availability)
            except ValidationError as exc:
                logger.warning("Stored schedule document for %s is malformed: %s", therapist_id, exc)

        try:
            async with self.session.begin_nested():
                rows = await self._legacy.read_rows(therapist_id)
        except SQLAlchemyError:
            logger.exception("Error fetching availability templates for %s", therapist_id)
            return self.get_default_availability()

        legacy_rows: list[LegacyTemplateRow] = []
        for row in rows:
            try:
                legacy_rows.append(LegacyTemplateRow.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping malformed availability template %s: %s", row.id, exc)

        if not legacy_rows:
            logger.info("No availability configured for %s, returning default", therapist_id)
            return self.get_default_availability()

        return from_legacy_rows(legacy_rows, self.default_settings.model_copy())

    async def get_availability_version(self, therapist_id: uuid.UUID) -> int:
        """Current document version; 0 when no document is stored."""
        try:
            async with self.session.begin_nested():
                record = await self._weekly.read_document(therapist_id)
        except SQLAlchemyError as exc:
            logger.warning("Could not read schedule version for %s: %s", therapist_id, exc)
            return 0
        return record.version if record else 0

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    async def get_availability_overrides(
        self,
        therapist_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[AvailabilityOverride]:
        try:
            async with self.session.begin_nested():
                rows = await self._overrides.list(therapist_id, start_date, end_date)
        except SQLAlchemyError:
            logger.exception("Error fetching availability overrides for %s", therapist_id)
            return []

        overrides: list[AvailabilityOverride] = []
        for row in rows:
            try:
                overrides.append(override_from_row(OverrideRow.model_validate(row)))
            except (ValidationError, ValueError) as exc:
                logger.warning("Skipping malformed override %s: %s", row.id, exc)
        return overrides

    async def save_availability_override(
        self,
        therapist_id: uuid.UUID,
        override: AvailabilityOverride,
    ) -> SaveOverrideResult:
        validation = validate_override(override)
        if not validation.is_valid:
            return SaveOverrideResult(
                success=False,
                message=f"Validation failed: {', '.join(validation.errors)}",
                errors=validation.errors,
            )

        row = override_to_row(override, therapist_id)
        try:
            async with self.session.begin_nested():
                record = await self._overrides.upsert(therapist_id, row)
        except SQLAlchemyError:
            logger.exception("Error saving override for %s on %s", therapist_id, override.date)
            return SaveOverrideResult(success=False, message="Failed to save availability override")

        logger.info("Saved %s override for %s on %s", override.type.value, therapist_id, override.date)
        return SaveOverrideResult(
            success=True,
            message="Override saved successfully",
            override=override_from_row(OverrideRow.model_validate(record)),
        )

    async def delete_availability_override(
        self,
        therapist_id: uuid.UUID,
        override_id: uuid.UUID,
    ) -> DeleteOverrideResult:
        try:
            async with self.session.begin_nested():
                record = await self._overrides.get_by_id(override_id)
                if record is None or record.therapist_id != therapist_id:
                    return DeleteOverrideResult(success=False, message="Override not found")
                await self._overrides.delete(override_id)
        except SQLAlchemyError:
            logger.exception("Error deleting override %s", override_id)
            return DeleteOverrideResult(success=False, message="Failed to delete availability override")

        logger.info("Deleted override %s for %s", override_id, therapist_id)
        return DeleteOverrideResult(success=True, message="Override deleted successfully")

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve_day(self, therapist_id: uuid.UUID, day: date) -> ResolvedDay:
        availability = await self.get_therapist_availability(therapist_id)
        overrides = await self.get_availability_overrides(therapist_id, day, day)
        override = next((o for o in overrides if o.date == day), None)
        return resolve_effective_day(day, availability, override)

    async def resolve_range(
        self,
        therapist_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> list[ResolvedDay]:
        """Resolve every date from *start_date* to *end_date* inclusive."""
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")
        span = (end_date - start_date).days + 1
        if span > MAX_RANGE_DAYS:
            raise ValueError(f"Date range cannot exceed {MAX_RANGE_DAYS} days")

        availability = await self.get_therapist_availability(therapist_id)
        overrides = {
            o.date: o
            for o in await self.get_availability_overrides(therapist_id, start_date, end_date)
        }
        return [
            resolve_effective_day(day, availability, overrides.get(day))
            for day in (start_date + timedelta(days=n) for n in range(span))
        ]

    async def get_day_slots(
        self, therapist_id: uuid.UUID, day: date
    ) -> tuple[ResolvedDay, list[BookableSlot]]:
        """Resolve *day* and expand it, dropping start times already booked."""
        availability = await self.get_therapist_availability(therapist_id)
        overrides = await self.get_availability_overrides(therapist_id, day, day)
        override = next((o for o in overrides if o.date == day), None)
        resolved = resolve_effective_day(day, availability, override)
        slots = expand_bookable_slots(resolved, availability.session_settings or self.default_settings)
        if not slots:
            return resolved, slots

        try:
            async with self.session.begin_nested():
                booked = await self._sessions.booked_times(therapist_id, day)
        except SQLAlchemyError as exc:
            logger.warning("Could not load booked sessions for %s on %s: %s", therapist_id, day, exc)
            booked = set()
        return resolved, [s for s in slots if s.start_time not in booked]

    async def get_bookable_slots(self, therapist_id: uuid.UUID, day: date) -> list[BookableSlot]:
        _, slots = await self.get_day_slots(therapist_id, day)
        return slots
