from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from timesync.core.config import settings
from timesync.core.errors import InvalidMessage, RoomNotFound
from timesync.models.interval import UnavailableInterval, parse_date_key
from timesync.models.room import Room, TimeFrame, WeekOfMonth
from timesync.services.agents.slot_extractor import DroppedEntry, SlotExtractor
from timesync.services.auth.password import verify_password
from timesync.services.availability import available_hours, day_part_coverage, half_hour_grid, GridCell
from timesync.services.rooms.creation import RoomCreationFlow
from timesync.services.rooms.events import RoomEventChannel
from timesync.services.rooms.merge_engine import MergeEngine
from timesync.services.rooms.rate_limiter import SubmissionGuard
from timesync.services.rooms.room_store import InMemoryRoomStore, RoomStore
from timesync.services.rooms.state import RoomState
from timesync.utils.audit_logger import audit_logger


class SubmissionOutcome(BaseModel):
    """What a participant's message changed in the room"""
    applied_dates: List[str]
    dropped: List[DroppedEntry] = Field(default_factory=list)


class DayAvailability(BaseModel):
    date_key: str
    available_hours: List[int]
    coverage: Dict[str, float]
    grid: List[GridCell]


class RoomService:
    """
    Entry point the HTTP layer (or any other presentation layer) talks to.

    Holds the collaborators explicitly; nothing here reaches for module-level
    room state.
    """

    def __init__(
        self,
        store: RoomStore,
        extractor: SlotExtractor,
        state: Optional[RoomState] = None,
        events: Optional[RoomEventChannel] = None,
        guard: Optional[SubmissionGuard] = None,
        filter_to_period: Optional[bool] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.extractor = extractor
        self.state = state or RoomState()
        self.events = events or RoomEventChannel()
        self.guard = guard or SubmissionGuard()
        self.merge_engine = MergeEngine(store, self.state, self.events, filter_to_period=filter_to_period)
        self.clock = clock
        self._unsubscribers: Dict[str, Callable[[], None]] = {}
        self._watchers: Dict[str, int] = {}

    @classmethod
    def default(cls) -> "RoomService":
        store = InMemoryRoomStore(retention=timedelta(days=settings.ROOM_RETENTION_DAYS))
        return cls(store=store, extractor=SlotExtractor())

    async def create_room(
        self,
        title: str,
        time_frame: TimeFrame,
        specific_month: int,
        member_count: int,
        specific_week: Optional[WeekOfMonth] = None,
        password: Optional[str] = None,
    ) -> Room:
        """Run the creation flow end to end; raises ``InvalidRoom`` at the first failing step."""
        flow = RoomCreationFlow(today=self.clock().date())
        flow.set_title(title)
        flow.next()
        flow.set_time_frame(time_frame)
        flow.set_period(specific_month, specific_week)
        flow.next()
        flow.set_member_count(member_count)
        flow.set_password(password)
        room = await flow.create(self.store)
        return self.state.mirror(room)

    async def get_room(self, room_id: str) -> Room:
        snapshot = await self.store.get_room(room_id)
        if snapshot is None:
            self.state.forget(room_id)
            raise RoomNotFound(room_id)
        return self.state.sync_from_snapshot(snapshot)

    def watch(self, room_id: str) -> None:
        """
        Keep the local mirror of ``room_id`` in sync with pushed snapshots.

        Calls are counted; the store subscription is dropped once every
        ``watch`` has been matched by an ``unwatch``.
        """
        self._watchers[room_id] = self._watchers.get(room_id, 0) + 1
        if room_id not in self._unsubscribers:
            self._unsubscribers[room_id] = self.store.subscribe_to_room(room_id, self.state.sync_from_snapshot)

    def unwatch(self, room_id: str) -> None:
        remaining = self._watchers.get(room_id, 0) - 1
        if remaining > 0:
            self._watchers[room_id] = remaining
            return
        self._watchers.pop(room_id, None)
        unsubscribe = self._unsubscribers.pop(room_id, None)
        if unsubscribe:
            unsubscribe()

    def is_watched(self, room_id: str) -> bool:
        return room_id in self._unsubscribers

    async def verify_password(self, room_id: str, password: str) -> bool:
        room = await self.get_room(room_id)
        if not room.is_password_protected:
            return True
        valid = verify_password(password, room.password_hash)
        audit_logger.log(
            action="room_password_verified",
            resource_type="room",
            resource_id=room_id,
            status="success" if valid else "rejected",
        )
        return valid

    async def submit_message(
        self,
        room_id: str,
        sender_id: str,
        message: str,
        target_date: Optional[date] = None,
    ) -> SubmissionOutcome:
        """
        Extract unavailable times from ``message`` and write them to the room.

        Raises:
            SubmissionRejected: the sender is in flight, too fast, or locked out
            InvalidMessage: the message is empty or too long
            ExtractionFailed: the language model call failed
            NoDatesInScope: nothing extracted could be applied
            PersistFailed: a store write failed
        """
        message = (message or "").strip()
        if not message:
            raise InvalidMessage("Message is empty")
        if len(message) > settings.MAX_MESSAGE_LENGTH:
            raise InvalidMessage(f"Message exceeds {settings.MAX_MESSAGE_LENGTH} characters")

        with self.guard.submission(sender_id):
            room = await self.get_room(room_id)
            now = self.clock()
            result = await self.extractor.extract(
                message,
                current_datetime=now,
                target_date=target_date or now.date(),
                existing_slots_by_date=room.unavailable_slots_by_date,
                session_id=sender_id,
                room_id=room_id,
            )
            applied = await self.merge_engine.apply_extraction(
                room, result.slots_by_date, session_id=sender_id, today=now.date()
            )

        return SubmissionOutcome(applied_dates=applied, dropped=result.dropped)

    async def replace_slots(self, room_id: str, key: str, intervals: List[UnavailableInterval]) -> str:
        await self.get_room(room_id)
        return await self.merge_engine.apply(room_id, parse_date_key(key), intervals)

    async def day_availability(self, room_id: str, key: str) -> DayAvailability:
        room = await self.get_room(room_id)
        day = parse_date_key(key)
        now = self.clock()
        hours = available_hours(day, room.unavailable_slots_by_date, now=now)
        return DayAvailability(
            date_key=key,
            available_hours=sorted(hours),
            coverage=day_part_coverage(hours),
            grid=half_hour_grid(day, room.unavailable_slots_by_date, now=now),
        )
