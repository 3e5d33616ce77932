from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from timesync.models.interval import UnavailableInterval


class TimeFrame(str, Enum):
    """Granularity the organizer commits to when creating a room"""
    MONTH = "month"
    WEEK = "week"


class WeekOfMonth(str, Enum):
    FIRST = "첫째 주"
    SECOND = "둘째 주"
    THIRD = "셋째 주"
    FOURTH = "넷째 주"
    LAST = "마지막 주"


# Ordinal position of each label; LAST is resolved against the month length.
WEEK_ORDER: List[WeekOfMonth] = [
    WeekOfMonth.FIRST,
    WeekOfMonth.SECOND,
    WeekOfMonth.THIRD,
    WeekOfMonth.FOURTH,
    WeekOfMonth.LAST,
]


class RoomPeriod(BaseModel):
    """The committed month, or week within a month, a room is scheduling for."""
    model_config = ConfigDict(populate_by_name=True)

    time_frame: TimeFrame = Field(TimeFrame.MONTH, alias="timeFrame")
    specific_month: Optional[int] = Field(None, alias="specificMonth", ge=1, le=12)
    specific_week: Optional[WeekOfMonth] = Field(None, alias="specificWeek")

    @model_validator(mode="after")
    def _check_fields_for_time_frame(self):
        if self.specific_month is None:
            raise ValueError("specificMonth is required")
        if self.time_frame == TimeFrame.WEEK and self.specific_week is None:
            raise ValueError("specificWeek is required when timeFrame is 'week'")
        return self


class Room(RoomPeriod):
    """
    A scheduling session as it is persisted in the room store.

    Field aliases match the store/wire layout so a snapshot can be validated
    directly with ``Room.model_validate``.
    """
    id: str
    title: str = Field(..., min_length=1)
    member_count: int = Field(..., alias="memberCount", ge=1, le=100)
    unavailable_slots_by_date: Dict[str, List[UnavailableInterval]] = Field(
        default_factory=dict, alias="unavailableSlotsByDate"
    )
    is_password_protected: bool = Field(False, alias="isPasswordProtected")
    password_hash: Optional[str] = Field(None, alias="passwordHash")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def to_public(self) -> Dict[str, Any]:
        """Snapshot safe to send to viewers (no password material)."""
        return self.model_dump(by_alias=True, mode="json", exclude={"password_hash"})

    @property
    def period(self) -> RoomPeriod:
        return RoomPeriod(
            time_frame=self.time_frame,
            specific_month=self.specific_month,
            specific_week=self.specific_week,
        )
