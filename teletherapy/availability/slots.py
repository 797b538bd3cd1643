"""Time arithmetic and slot generation for availability windows.

Everything here is pure: times are ``"HH:MM"`` strings on a 24-hour clock and
are converted to minutes since midnight for arithmetic.
"""

import re
from typing import Optional

from teletherapy.availability.models import SessionType, TimeSlot, new_slot_id

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def time_to_minutes(value: str) -> int:
    """Convert ``"HH:MM"`` (or ``"HH:MM:SS"``) to minutes since midnight."""
    m = _TIME_RE.match(value.strip()) if value else None
    if not m:
        raise ValueError(f"Invalid time: {value!r}")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 24 or minutes > 59 or (hours == 24 and minutes):
        raise ValueError(f"Invalid time: {value!r}")
    return hours * 60 + minutes


def is_valid_time(value: Optional[str]) -> bool:
    try:
        time_to_minutes(value or "")
    except ValueError:
        return False
    return True


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as ``"HH:MM"``."""
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def calculate_end_time(start_time: str, duration_minutes: int) -> str:
    """Add *duration_minutes* to *start_time*, wrapping past midnight."""
    total = (time_to_minutes(start_time) + duration_minutes) % MINUTES_PER_DAY
    return format_minutes(total)


def generate_time_slots(
    start_time: str,
    end_time: str,
    session_duration: int,
    buffer_time: int = 0,
    session_type: SessionType = SessionType.INDIVIDUAL,
    max_sessions: int = 1,
) -> list[TimeSlot]:
    """Expand a working window into back-to-back sessions.

    The cursor advances by ``session_duration + buffer_time``. A trailing
    session that would run past *end_time* is dropped, never shortened.
    """
    if session_duration <= 0:
        return []

    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)
    step = session_duration + max(buffer_time, 0)

    slots: list[TimeSlot] = []
    current = start
    index = 1
    while current + session_duration <= end:
        slots.append(
            TimeSlot(
                id=new_slot_id(),
                start=format_minutes(current),
                end=format_minutes(current + session_duration),
                duration=session_duration,
                type=session_type,
                max_sessions=max_sessions,
                title=f"Session {index}",
            )
        )
        current += step
        index += 1
    return slots


def do_time_slots_overlap(slot1: TimeSlot, slot2: TimeSlot) -> bool:
    """Half-open interval test: touching endpoints do not overlap."""
    start1, end1 = time_to_minutes(slot1.start), time_to_minutes(slot1.end)
    start2, end2 = time_to_minutes(slot2.start), time_to_minutes(slot2.end)
    return start1 < end2 and start2 < end1


def find_overlapping_slots(slots: list[TimeSlot]) -> list[tuple[int, int]]:
    """Return index pairs ``(i, j)``, ``i < j``, of overlapping slots.

    Slots with missing or malformed times are skipped.
    """
    timed = [
        (i, s) for i, s in enumerate(slots)
        if is_valid_time(s.start) and is_valid_time(s.end)
    ]
    pairs: list[tuple[int, int]] = []
    for pos, (i, a) in enumerate(timed):
        for j, b in timed[pos + 1:]:
            if do_time_slots_overlap(a, b):
                pairs.append((i, j))
    return pairs
