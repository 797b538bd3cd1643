"""Integrity checks run before availability is persisted."""

from teletherapy.availability.models import (
    AvailabilityOverride,
    OverrideType,
    TimeSlot,
    ValidationResult,
    WeeklyAvailability,
)
from teletherapy.availability.slots import (
    find_overlapping_slots,
    is_valid_time,
    time_to_minutes,
)


def _check_slot(label: str, slot: TimeSlot, errors: list[str], strict: bool) -> None:
    if not slot.start or not slot.end:
        errors.append(f"{label} is missing start or end time")
    elif strict:
        if not (is_valid_time(slot.start) and is_valid_time(slot.end)):
            errors.append(f"{label} has an invalid time format (use HH:MM)")
        elif time_to_minutes(slot.start) >= time_to_minutes(slot.end):
            errors.append(f"{label} must start before it ends")

    if slot.duration <= 0:
        errors.append(f"{label} has invalid duration")

    if slot.max_sessions <= 0:
        errors.append(f"{label} has invalid max sessions")


def validate_weekly_availability(
    availability: WeeklyAvailability,
    strict: bool = False,
) -> ValidationResult:
    """Validate a weekly schedule document.

    Errors block a save; warnings are informational. An enabled day with no
    slots only warns so a schedule can be saved while still being built.
    With ``strict`` set, inverted, malformed and overlapping slots on the
    same day are errors too.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if availability.standard_hours is None:
        errors.append("Standard hours are required")
    if availability.session_settings is None:
        errors.append("Session settings are required")

    if availability.standard_hours is not None:
        for day_name, day in availability.standard_hours.days():
            if day.enabled and not day.time_slots:
                warnings.append(f"{day_name} is enabled but has no time slots")

            for index, slot in enumerate(day.time_slots):
                _check_slot(f"{day_name} slot {index + 1}", slot, errors, strict)

            if strict:
                for i, j in find_overlapping_slots(day.time_slots):
                    errors.append(f"{day_name} slot {i + 1} overlaps slot {j + 1}")

    settings = availability.session_settings
    if settings is not None:
        if settings.session_duration <= 0:
            errors.append("Session duration must be greater than 0")
        if settings.buffer_time < 0:
            errors.append("Buffer time cannot be negative")
        if settings.max_sessions_per_day <= 0:
            errors.append("Max sessions per day must be greater than 0")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_override(override: AvailabilityOverride) -> ValidationResult:
    """Validate a date override, including agreement of ``type`` and ``is_available``."""
    errors: list[str] = []
    warnings: list[str] = []

    if override.type == OverrideType.UNAVAILABLE and override.is_available:
        errors.append("An 'unavailable' override cannot be marked available")
    if override.type != OverrideType.UNAVAILABLE and not override.is_available:
        errors.append(f"A '{override.type.value}' override must be marked available")

    if override.is_available:
        hours = override.custom_hours
        if hours is None:
            errors.append("Custom hours are required when the override is available")
        elif not hours.start or not hours.end:
            errors.append("Custom hours require a start and end time")
        elif not (is_valid_time(hours.start) and is_valid_time(hours.end)):
            errors.append("Invalid time format. Use HH:MM format.")
        elif time_to_minutes(hours.start) >= time_to_minutes(hours.end):
            errors.append("Start time must be before end time.")

        if hours is not None:
            for index, slot in enumerate(hours.time_slots):
                _check_slot(f"Override slot {index + 1}", slot, errors, strict=True)
            for i, j in find_overlapping_slots(hours.time_slots):
                errors.append(f"Override slot {i + 1} overlaps slot {j + 1}")
    elif override.custom_hours is not None:
        warnings.append("Custom hours are ignored for an unavailable date")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
