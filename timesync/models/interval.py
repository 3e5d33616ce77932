import re
from datetime import date, datetime
from typing import Dict, List, Tuple

from pydantic import BaseModel, model_validator

from timesync.core.errors import InvalidInterval


END_OF_DAY = "24:00"
LAST_MINUTE = "23:59"

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")
_DATE_KEY_PATTERN = re.compile(r"^\d{8}$")


def to_minutes(time_str: str) -> int:
    """Convert an ``H:MM``/``HH:MM`` clock time to minutes since midnight."""
    match = _TIME_PATTERN.match(time_str.strip()) if isinstance(time_str, str) else None
    if not match:
        raise InvalidInterval(f"Not a HH:MM time: {time_str!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidInterval(f"Time out of range: {time_str!r}")
    return hours * 60 + minutes


def _canonical(time_str: str) -> str:
    if isinstance(time_str, str) and time_str.strip() == END_OF_DAY:
        return LAST_MINUTE
    minutes = to_minutes(time_str)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize(start: str, end: str) -> Tuple[str, str]:
    """
    Validate a clock-time range and return it in canonical ``HH:MM`` form.

    ``24:00`` is rewritten to ``23:59``; after that ``start`` must be strictly
    earlier than ``end``.

    Raises:
        InvalidInterval: if either value is not a 24-hour time or the range is empty
    """
    start, end = _canonical(start), _canonical(end)
    if to_minutes(start) >= to_minutes(end):
        raise InvalidInterval(f"Start {start} is not before end {end}")
    return start, end


def date_key(day: date) -> str:
    """Key used for one calendar date in the room store (``YYYYMMDD``)."""
    return day.strftime("%Y%m%d")


def parse_date_key(key: str) -> date:
    if not isinstance(key, str) or not _DATE_KEY_PATTERN.match(key):
        raise InvalidInterval(f"Not a YYYYMMDD date key: {key!r}")
    try:
        return datetime.strptime(key, "%Y%m%d").date()
    except ValueError as e:
        raise InvalidInterval(f"Not a calendar date: {key!r}") from e


class UnavailableInterval(BaseModel):
    """A ``[start, end)`` range on one date during which someone cannot meet."""
    start: str
    end: str

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data):
        if isinstance(data, dict) and "start" in data and "end" in data:
            start, end = normalize(data["start"], data["end"])
            data = {**data, "start": start, "end": end}
        return data

    @classmethod
    def of(cls, start: str, end: str) -> "UnavailableInterval":
        """Build an interval, raising ``InvalidInterval`` rather than a ValidationError."""
        start, end = normalize(start, end)
        return cls(start=start, end=end)

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end)

    def covers(self, minutes: int) -> bool:
        return self.start_minutes <= minutes < self.end_minutes


UnavailableSlotsByDate = Dict[str, List[UnavailableInterval]]


def slots_to_wire(slots: List[UnavailableInterval]) -> List[Dict[str, str]]:
    return [slot.model_dump() for slot in slots]
