"""Conversion between the weekly document and its relational projections."""

import logging
import uuid
from typing import Iterable

from pydantic import ValidationError

from teletherapy.availability.models import (
    DAYS_OF_WEEK,
    AvailabilityOverride,
    CustomHours,
    DayAvailability,
    LegacyTemplateRow,
    OverrideRow,
    OverrideType,
    SessionSettings,
    SessionType,
    StandardHours,
    TimeSlot,
    WeeklyAvailability,
    new_slot_id,
)
from teletherapy.availability.slots import format_minutes, is_valid_time, time_to_minutes

logger = logging.getLogger(__name__)

DEFAULT_SESSION_DURATION = 60
DEFAULT_SESSION_TYPE = SessionType.INDIVIDUAL
DEFAULT_MAX_SESSIONS = 1


def _session_type(value: str | None) -> SessionType:
    if value is None:
        return DEFAULT_SESSION_TYPE
    try:
        return SessionType(value)
    except ValueError:
        logger.warning("Unknown session type %r, treating as individual", value)
        return DEFAULT_SESSION_TYPE


def _or_default(value: int | None, default: int) -> int:
    return default if value is None else value


def _column_time(value: str | None) -> str | None:
    """Normalise to the five-character ``HH:MM`` the legacy columns hold."""
    if is_valid_time(value):
        return format_minutes(time_to_minutes(value))
    return value


def default_weekly_availability(
    session_settings: SessionSettings | None = None,
) -> WeeklyAvailability:
    """Schedule returned when a therapist has configured nothing: all days off."""
    return WeeklyAvailability(
        standard_hours=StandardHours(),
        session_settings=session_settings or SessionSettings(),
    )


# ---------------------------------------------------------------------------
# Weekly document <-> legacy template rows
# ---------------------------------------------------------------------------

def to_legacy_rows(availability: WeeklyAvailability, therapist_id: uuid.UUID) -> list[LegacyTemplateRow]:
    """Flatten the document to one row per slot of every enabled day.

    Disabled days and enabled days without slots produce no rows.
    """
    rows: list[LegacyTemplateRow] = []
    if availability.standard_hours is None:
        return rows

    for index, (_, day) in enumerate(availability.standard_hours.days()):
        if not (day.enabled and day.time_slots):
            continue
        for slot in day.time_slots:
            rows.append(
                LegacyTemplateRow(
                    therapist_id=therapist_id,
                    day_of_week=index,
                    start_time=_column_time(slot.start),
                    end_time=_column_time(slot.end),
                    session_duration=slot.duration,
                    session_type=slot.type.value,
                    max_sessions=slot.max_sessions,
                    is_active=True,
                )
            )
    return rows


def from_legacy_rows(
    rows: Iterable[LegacyTemplateRow],
    session_settings: SessionSettings | None = None,
) -> WeeklyAvailability:
    """Rebuild a seven-day document from legacy rows."""
    by_day: dict[str, list[LegacyTemplateRow]] = {}
    for row in rows:
        by_day.setdefault(DAYS_OF_WEEK[row.day_of_week], []).append(row)

    days: dict[str, DayAvailability] = {}
    for name in DAYS_OF_WEEK:
        day_rows = by_day.get(name, [])
        days[name] = DayAvailability(
            enabled=bool(day_rows),
            time_slots=[_slot_from_legacy_row(r) for r in day_rows],
        )

    return WeeklyAvailability(
        standard_hours=StandardHours(**days),
        session_settings=session_settings or SessionSettings(),
    )


def _slot_from_legacy_row(row: LegacyTemplateRow) -> TimeSlot:
    session_type = _session_type(row.session_type)
    return TimeSlot(
        id=str(row.id) if row.id else new_slot_id(),
        start=row.start_time,
        end=row.end_time,
        duration=_or_default(row.session_duration, DEFAULT_SESSION_DURATION),
        type=session_type,
        max_sessions=_or_default(row.max_sessions, DEFAULT_MAX_SESSIONS),
        title=f"{session_type.value.capitalize()} Session",
        is_available=row.is_active is not False,
    )


# ---------------------------------------------------------------------------
# Override document <-> override row
# ---------------------------------------------------------------------------

def override_from_row(row: OverrideRow) -> AvailabilityOverride:
    """Build the override document from its stored row.

    Rows written before ``time_slots`` existed get a single slot synthesized
    from the flat start/end columns.
    """
    if row.override_type:
        override_type = OverrideType(row.override_type)
    else:
        override_type = OverrideType.CUSTOM_HOURS if row.is_available else OverrideType.UNAVAILABLE

    custom_hours = None
    if row.is_available:
        custom_hours = CustomHours(
            start=row.start_time,
            end=row.end_time,
            time_slots=_override_slots(row),
        )

    return AvailabilityOverride(
        id=str(row.id) if row.id else None,
        therapist_id=row.therapist_id,
        date=row.override_date,
        type=override_type,
        is_available=row.is_available,
        custom_hours=custom_hours,
        reason=row.reason or "",
        notes=row.notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _override_slots(row: OverrideRow) -> list[TimeSlot]:
    if row.time_slots:
        try:
            return [TimeSlot.model_validate(s) for s in row.time_slots]
        except ValidationError:
            logger.warning("Override %s has malformed time_slots, using flat columns", row.id)

    return [
        TimeSlot(
            id=f"override-{row.id}" if row.id else new_slot_id("override"),
            start=row.start_time,
            end=row.end_time,
            duration=_or_default(row.session_duration, DEFAULT_SESSION_DURATION),
            type=_session_type(row.session_type),
            max_sessions=_or_default(row.max_sessions, DEFAULT_MAX_SESSIONS),
            title="Override Session",
            is_available=True,
        )
    ]


def override_to_row(override: AvailabilityOverride, therapist_id: uuid.UUID) -> OverrideRow:
    """Flatten an override; the first custom slot fills the single-slot columns."""
    custom = override.custom_hours if override.is_available else None
    slots = custom.time_slots if custom else []
    first = slots[0] if slots else None

    return OverrideRow(
        therapist_id=therapist_id,
        override_date=override.date,
        override_type=override.type.value,
        is_available=override.is_available,
        start_time=_column_time(custom.start) if custom else None,
        end_time=_column_time(custom.end) if custom else None,
        session_duration=first.duration if first else DEFAULT_SESSION_DURATION,
        session_type=first.type.value if first else DEFAULT_SESSION_TYPE.value,
        max_sessions=first.max_sessions if first else DEFAULT_MAX_SESSIONS,
        time_slots=[s.model_dump(mode="json") for s in slots] or None,
        reason=override.reason,
        notes=override.notes,
    )
