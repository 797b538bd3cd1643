"""Availability API endpoints: weekly schedule, date overrides, bookable slots."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from teletherapy.api.dependencies import get_availability_service, parse_uuid
from teletherapy.availability.models import (
    AvailabilityOverride,
    BookableSlot,
    CustomHours,
    DeleteOverrideResult,
    OverrideType,
    ResolvedDay,
    SaveAvailabilityResult,
    SaveOverrideResult,
    SessionType,
    TimeSlot,
    ValidationResult,
    WeeklyAvailability,
)
from teletherapy.availability.service import AvailabilityService
from teletherapy.availability.slots import generate_time_slots, is_valid_time

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


# ---------------------------------------------------------------------------
# Request/response schemas
# ---------------------------------------------------------------------------

class AvailabilityResponse(BaseModel):
    success: bool = True
    therapist_id: str
    availability: WeeklyAvailability
    version: int = 0


class SaveAvailabilityRequest(BaseModel):
    availability: WeeklyAvailability
    expected_version: Optional[int] = Field(
        default=None,
        description="Version read by the editor; omit to overwrite unconditionally",
    )


class OverrideIn(BaseModel):
    date: date
    type: OverrideType
    is_available: bool
    custom_hours: Optional[CustomHours] = None
    reason: str = ""
    notes: Optional[str] = None


class OverrideListResponse(BaseModel):
    success: bool = True
    overrides: list[AvailabilityOverride] = []


class ResolvedDaysResponse(BaseModel):
    therapist_id: str
    days: list[ResolvedDay] = []


class SlotsResponse(BaseModel):
    success: bool = True
    date: date
    therapist_id: str
    slots: list[BookableSlot] = []
    total_slots: int = 0
    source: str
    message: str


class GenerateSlotsRequest(BaseModel):
    start_time: str
    end_time: str
    session_duration: int = Field(gt=0, default=60)
    buffer_time: int = Field(ge=0, default=0)
    session_type: SessionType = SessionType.INDIVIDUAL
    max_sessions: int = Field(gt=0, default=1)


def _save_status(result: SaveAvailabilityResult) -> int:
    if result.success:
        return 200
    if result.conflict:
        return 409
    if result.errors:
        return 422
    return 500


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD format.")


# ---------------------------------------------------------------------------
# Weekly schedule
# ---------------------------------------------------------------------------

@router.get("/therapists/{therapist_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    therapist_id: str,
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Return the therapist's weekly schedule (default schedule if none)."""
    tid = parse_uuid(therapist_id, "therapist_id")
    availability = await service.get_therapist_availability(tid)
    version = await service.get_availability_version(tid)
    return AvailabilityResponse(therapist_id=therapist_id, availability=availability, version=version)


@router.put("/therapists/{therapist_id}/availability", response_model=SaveAvailabilityResult)
async def save_availability(
    therapist_id: str,
    body: SaveAvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> JSONResponse:
    """Save the full weekly schedule."""
    tid = parse_uuid(therapist_id, "therapist_id")
    result = await service.save_therapist_availability(tid, body.availability, body.expected_version)
    return JSONResponse(status_code=_save_status(result), content=result.model_dump(mode="json"))


@router.post("/therapists/{therapist_id}/availability/validate", response_model=ValidationResult)
async def validate_availability(
    therapist_id: str,
    availability: WeeklyAvailability,
    service: AvailabilityService = Depends(get_availability_service),
) -> ValidationResult:
    """Dry-run validation of a schedule without saving it."""
    parse_uuid(therapist_id, "therapist_id")
    return service.validate(availability)


@router.get("/therapists/{therapist_id}/availability/days", response_model=ResolvedDaysResponse)
async def get_resolved_days(
    therapist_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: AvailabilityService = Depends(get_availability_service),
) -> ResolvedDaysResponse:
    """Effective availability for each date in a range, overrides applied."""
    tid = parse_uuid(therapist_id, "therapist_id")
    try:
        days = await service.resolve_range(tid, start_date, end_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ResolvedDaysResponse(therapist_id=therapist_id, days=days)


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------

@router.get("/therapists/{therapist_id}/overrides", response_model=OverrideListResponse)
async def list_overrides(
    therapist_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
) -> OverrideListResponse:
    tid = parse_uuid(therapist_id, "therapist_id")
    overrides = await service.get_availability_overrides(tid, start_date, end_date)
    return OverrideListResponse(overrides=overrides)


@router.put("/therapists/{therapist_id}/overrides", response_model=SaveOverrideResult)
async def save_override(
    therapist_id: str,
    body: OverrideIn,
    service: AvailabilityService = Depends(get_availability_service),
) -> JSONResponse:
    """Create or replace the override for ``body.date``."""
    tid = parse_uuid(therapist_id, "therapist_id")
    override = AvailabilityOverride(**body.model_dump())
    result = await service.save_availability_override(tid, override)
    if result.success:
        status_code = 200
    else:
        status_code = 422 if result.errors else 500
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.delete("/therapists/{therapist_id}/overrides/{override_id}", response_model=DeleteOverrideResult)
async def delete_override(
    therapist_id: str,
    override_id: str,
    service: AvailabilityService = Depends(get_availability_service),
) -> JSONResponse:
    tid = parse_uuid(therapist_id, "therapist_id")
    oid = parse_uuid(override_id, "override_id")
    result = await service.delete_availability_override(tid, oid)
    if result.success:
        status_code = 200
    else:
        status_code = 404 if result.message == "Override not found" else 500
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Bookable slots
# ---------------------------------------------------------------------------

@router.get("/availability/slots", response_model=SlotsResponse)
async def get_available_slots(
    response: Response,
    therapist_id: Optional[str] = Query(None),
    date: Optional[str] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
) -> SlotsResponse:
    """Bookable slots for one date. Never cached: every call reads the store."""
    if not therapist_id or not date:
        raise HTTPException(status_code=400, detail="Therapist ID and date are required")
    tid = parse_uuid(therapist_id, "therapist_id")
    day = _parse_date(date)

    resolved, slots = await service.get_day_slots(tid, day)

    response.headers.update(NO_CACHE_HEADERS)
    return SlotsResponse(
        date=day,
        therapist_id=therapist_id,
        slots=slots,
        total_slots=len(slots),
        source=resolved.source,
        message="Available slots found" if slots else "No available slots for this date",
    )


@router.post("/availability/generate", response_model=list[TimeSlot])
async def generate_slots(body: GenerateSlotsRequest) -> list[TimeSlot]:
    """Cut a working window into sessions without saving anything."""
    if not (is_valid_time(body.start_time) and is_valid_time(body.end_time)):
        raise HTTPException(status_code=400, detail="Invalid time format. Use HH:MM format.")
    return generate_time_slots(
        body.start_time,
        body.end_time,
        body.session_duration,
        body.buffer_time,
        session_type=body.session_type,
        max_sessions=body.max_sessions,
    )
