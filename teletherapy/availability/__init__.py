"""Therapist availability: weekly schedules, date overrides and bookable slots."""

from teletherapy.availability.models import (
    AvailabilityOverride,
    BookableSlot,
    CustomHours,
    DayAvailability,
    OverrideType,
    ResolvedDay,
    SessionSettings,
    SessionType,
    StandardHours,
    TimeSlot,
    ValidationResult,
    WeeklyAvailability,
)
from teletherapy.availability.service import AvailabilityService
from teletherapy.availability.slots import (
    calculate_end_time,
    do_time_slots_overlap,
    generate_time_slots,
)

__all__ = [
    "AvailabilityOverride",
    "AvailabilityService",
    "BookableSlot",
    "CustomHours",
    "DayAvailability",
    "OverrideType",
    "ResolvedDay",
    "SessionSettings",
    "SessionType",
    "StandardHours",
    "TimeSlot",
    "ValidationResult",
    "WeeklyAvailability",
    "calculate_end_time",
    "do_time_slots_overlap",
    "generate_time_slots",
]
