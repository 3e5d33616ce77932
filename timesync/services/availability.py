"""
Availability queries over a room's unavailable slots.

All functions are pure: they read the ``YYYYMMDD -> intervals`` mapping and
never mutate it. Calendar views call them once per cell, so any caching
belongs at the call site.
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from pydantic import BaseModel

from timesync.models.interval import UnavailableInterval, date_key, to_minutes


SlotLike = Union[UnavailableInterval, Mapping[str, Any]]

# Bands shown as bars in the month view
DAY_PARTS: Dict[str, range] = {
    "morning": range(6, 12),
    "afternoon": range(12, 18),
    "evening": range(18, 24),
}


class GridCell(BaseModel):
    """One half-hour cell of a day grid"""
    time: str
    available: bool
    past: bool = False


def _bounds(slot: SlotLike):
    if isinstance(slot, UnavailableInterval):
        return slot.start_minutes, slot.end_minutes
    return to_minutes(slot["start"]), to_minutes(slot["end"])


def is_available(day: date, time: str, slots_by_date: Optional[Mapping[str, Iterable[SlotLike]]]) -> bool:
    """
    Check whether ``time`` on ``day`` is free.

    A date without an entry is free all day. Otherwise the time is blocked
    when it lies in ``[start, end)`` of any stored interval; overlapping
    intervals behave as their union.
    """
    if not slots_by_date:
        return True
    slots = slots_by_date.get(date_key(day))
    if not slots:
        return True

    minutes = to_minutes(time)
    for slot in slots:
        start, end = _bounds(slot)
        if start <= minutes < end:
            return False
    return True


def available_hours(
    day: date,
    slots_by_date: Optional[Mapping[str, Iterable[SlotLike]]],
    now: Optional[datetime] = None,
) -> Set[int]:
    """
    Hours of ``day`` (0-23) that are free at the top of the hour.

    For today, hours up to and including the current hour are never
    returned since they cannot be booked anymore.
    """
    now = now or datetime.now()
    is_today = day == now.date()
    hours = set()
    for hour in range(24):
        if is_today and hour <= now.hour:
            continue
        if is_available(day, f"{hour}:00", slots_by_date):
            hours.add(hour)
    return hours


def day_part_coverage(hours: Set[int]) -> Dict[str, float]:
    """Fraction of free hours in each band of the day."""
    return {
        part: sum(1 for hour in band if hour in hours) / len(band)
        for part, band in DAY_PARTS.items()
    }


def half_hour_grid(
    day: date,
    slots_by_date: Optional[Mapping[str, Iterable[SlotLike]]],
    now: Optional[datetime] = None,
) -> List[GridCell]:
    now = now or datetime.now()
    cutoff = now.hour * 60 + now.minute if day == now.date() else -1
    if day < now.date():
        cutoff = 24 * 60

    cells = []
    for minutes in range(0, 24 * 60, 30):
        time = f"{minutes // 60:02d}:{minutes % 60:02d}"
        cells.append(
            GridCell(
                time=time,
                available=is_available(day, time, slots_by_date),
                past=minutes <= cutoff,
            )
        )
    return cells
