"""Shared fakes and utilities for unit tests."""

from __future__ import annotations

import asyncio
import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from timesync.models.room import Room, TimeFrame, WeekOfMonth
from timesync.services.agents.slot_extractor import SlotExtractor
from timesync.services.rooms.room_service import RoomService
from timesync.services.rooms.room_store import InMemoryRoomStore
from timesync.services.rooms.rate_limiter import SubmissionGuard


class StubCompletionClient:
    """Completion client that replays canned answers and records prompts."""

    def __init__(self, responses: List[Union[str, Dict[str, Any], Exception]], delay: float = 0.0) -> None:
        self.responses = list(responses)
        self.delay = delay
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response


class FailingRoomStore(InMemoryRoomStore):
    """In-memory store whose slot writes fail while ``failing`` is set."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.failing = True
        self.update_calls = 0

    async def update_room(self, room_id: str, updates: Dict[str, Any]) -> None:
        self.update_calls += 1
        if self.failing:
            raise ConnectionError("store unreachable")
        await super().update_room(room_id, updates)


class FakeClock:
    """Monotonic clock driven by the test."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def slots_response(slots_by_date: Dict[str, List[Dict[str, str]]]) -> Dict[str, Any]:
    return {"unavailableSlotsByDate": slots_by_date}


def make_room(
    room_id: str = "room-1",
    month: int = 6,
    week: Optional[WeekOfMonth] = None,
    slots: Optional[Dict[str, List[Dict[str, str]]]] = None,
) -> Room:
    return Room.model_validate({
        "id": room_id,
        "title": "Team dinner",
        "timeFrame": TimeFrame.WEEK.value if week else TimeFrame.MONTH.value,
        "specificMonth": month,
        "specificWeek": week.value if week else None,
        "memberCount": 4,
        "unavailableSlotsByDate": slots or {},
    })


def make_service(
    responses: List[Union[str, Dict[str, Any], Exception]],
    now: datetime = datetime(2024, 6, 10, 9, 30),
    store: Optional[InMemoryRoomStore] = None,
    filter_to_period: bool = True,
    guard: Optional[SubmissionGuard] = None,
) -> RoomService:
    client = StubCompletionClient(responses)
    return RoomService(
        store=store or InMemoryRoomStore(),
        extractor=SlotExtractor(client=client, timeout=1.0),
        guard=guard or SubmissionGuard(clock=FakeClock()),
        filter_to_period=filter_to_period,
        clock=lambda: now,
    )


async def create_month_room(service: RoomService, month: int = 6) -> Room:
    return await service.create_room(
        title="Team dinner",
        time_frame=TimeFrame.MONTH,
        specific_month=month,
        member_count=4,
    )


def day(key: str) -> date:
    return datetime.strptime(key, "%Y%m%d").date()
