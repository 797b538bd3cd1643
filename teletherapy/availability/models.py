"""Pydantic models for weekly availability, overrides and resolved slots."""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

# Index order matches the legacy ``day_of_week`` column (0=Sunday).
DAYS_OF_WEEK: tuple[str, ...] = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)


def day_of_week_index(day: date) -> int:
    """Return the Sunday-based weekday index used by the legacy rows."""
    return (day.weekday() + 1) % 7


def day_name_for(day: date) -> str:
    return DAYS_OF_WEEK[day_of_week_index(day)]


def new_slot_id(prefix: str = "slot") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class SessionType(str, Enum):
    """Session categories a slot can be booked for."""

    INDIVIDUAL = "individual"
    GROUP = "group"
    CONSULTATION = "consultation"


class OverrideType(str, Enum):
    """Kinds of date-specific override."""

    UNAVAILABLE = "unavailable"
    CUSTOM_HOURS = "custom_hours"
    REDUCED_HOURS = "reduced_hours"


class TimeRangeType(str, Enum):
    AVAILABLE = "available"
    BREAK = "break"
    UNAVAILABLE = "unavailable"


class TimeSlot(BaseModel):
    """A recurring or date-specific block of bookable time."""

    id: str = Field(default_factory=new_slot_id)
    start: Optional[str] = Field(default=None, description="HH:MM, 24-hour")
    end: Optional[str] = Field(default=None, description="HH:MM, 24-hour")
    duration: int = Field(default=60, description="Session length in minutes")
    type: SessionType = SessionType.INDIVIDUAL
    max_sessions: int = 1
    title: str = "Individual Therapy Session"
    description: Optional[str] = None
    is_available: bool = True


class TimeRange(BaseModel):
    start: str
    end: str
    type: TimeRangeType = TimeRangeType.BREAK


class GeneralHours(BaseModel):
    """Working window for a day, expanded into slots at booking time."""

    start: str
    end: str
    session_duration: Optional[int] = None
    buffer_time: Optional[int] = None


class DayAvailability(BaseModel):
    enabled: bool = False
    time_slots: list[TimeSlot] = []
    custom_slots: list[TimeSlot] = []
    breaks: list[TimeRange] = []
    notes: str = ""
    general_hours: Optional[GeneralHours] = None


class StandardHours(BaseModel):
    """Recurring weekly pattern; all seven days are always present."""

    sunday: DayAvailability = Field(default_factory=DayAvailability)
    monday: DayAvailability = Field(default_factory=DayAvailability)
    tuesday: DayAvailability = Field(default_factory=DayAvailability)
    wednesday: DayAvailability = Field(default_factory=DayAvailability)
    thursday: DayAvailability = Field(default_factory=DayAvailability)
    friday: DayAvailability = Field(default_factory=DayAvailability)
    saturday: DayAvailability = Field(default_factory=DayAvailability)

    def day(self, name: str) -> DayAvailability:
        return getattr(self, name)

    def days(self) -> Iterator[tuple[str, DayAvailability]]:
        """Yield ``(day_name, availability)`` from Sunday to Saturday."""
        for name in DAYS_OF_WEEK:
            yield name, getattr(self, name)


class SessionSettings(BaseModel):
    session_duration: int = 60
    buffer_time: int = 15
    max_sessions_per_day: int = 8
    advance_booking_days: int = 30
    cancellation_hours: int = 24


class WeeklyAvailability(BaseModel):
    """A therapist's full recurring schedule document."""

    standard_hours: Optional[StandardHours] = None
    session_settings: Optional[SessionSettings] = None
    timezone: str = "UTC"
    last_updated: Optional[datetime] = None


class CustomHours(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None
    time_slots: list[TimeSlot] = []


class AvailabilityOverride(BaseModel):
    """Exception to the standard hours for exactly one calendar date."""

    id: Optional[str] = None
    therapist_id: Optional[uuid.UUID] = None
    date: date
    type: OverrideType
    is_available: bool
    custom_hours: Optional[CustomHours] = None
    reason: str = ""
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Relational row shapes
# ---------------------------------------------------------------------------

class LegacyTemplateRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[uuid.UUID] = None
    therapist_id: uuid.UUID
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    session_duration: Optional[int] = None
    session_type: Optional[str] = None
    max_sessions: Optional[int] = None
    is_active: bool = True


class OverrideRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[uuid.UUID] = None
    therapist_id: uuid.UUID
    override_date: date
    override_type: Optional[str] = None
    is_available: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    session_duration: Optional[int] = None
    session_type: Optional[str] = None
    max_sessions: Optional[int] = None
    time_slots: Optional[list[dict]] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = []
    warnings: list[str] = []


class SaveAvailabilityResult(BaseModel):
    success: bool
    message: str
    template_id: Optional[str] = None
    version: Optional[int] = None
    errors: list[str] = []
    warnings: list[str] = []
    conflict: bool = False


class SaveOverrideResult(BaseModel):
    success: bool
    message: str
    override: Optional[AvailabilityOverride] = None
    errors: list[str] = []


class DeleteOverrideResult(BaseModel):
    success: bool
    message: str


class ResolvedDay(BaseModel):
    """Effective availability for one calendar date."""

    date: date
    day_name: str
    source: str = Field(description="'override' or 'standard'")
    is_available: bool
    time_slots: list[TimeSlot] = []
    custom_slots: list[TimeSlot] = []
    general_hours: Optional[GeneralHours] = None
    override_id: Optional[str] = None


class BookableSlot(BaseModel):
    """A concrete slot a client can book on a given date."""

    date: date
    day_of_week: int
    start_time: str
    end_time: str
    session_duration: int
    session_type: SessionType = SessionType.INDIVIDUAL
    max_sessions: int = 1
    is_available: bool = True
    is_override: bool = False
