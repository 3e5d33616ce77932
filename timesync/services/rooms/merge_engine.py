from datetime import date
from typing import Dict, List, Optional

from timesync.core.config import settings
from timesync.core.errors import InvalidInterval, NoDatesInScope, PersistFailed, RoomNotFound
from timesync.models.interval import UnavailableInterval, date_key, parse_date_key, slots_to_wire
from timesync.models.room import Room
from timesync.services.rooms.events import RoomEventChannel, RoomUpdateEvent
from timesync.services.rooms.period import is_date_in_period, period_description
from timesync.services.rooms.room_store import RoomStore, slots_path
from timesync.services.rooms.state import RoomState
from timesync.utils.audit_logger import audit_logger


class MergeEngine:
    """
    Folds extracted intervals into a room.

    Each date is written as one store update that replaces the whole list for
    that date key. Concurrent writes to the same key are last-write-wins: the
    store keeps whichever write arrives last and nothing is merged.
    """

    def __init__(
        self,
        store: RoomStore,
        state: RoomState,
        events: RoomEventChannel,
        filter_to_period: Optional[bool] = None,
    ):
        self.store = store
        self.state = state
        self.events = events
        self.filter_to_period = settings.FILTER_TO_ROOM_PERIOD if filter_to_period is None else filter_to_period

    async def apply(
        self,
        room_id: str,
        day: date,
        intervals: List[UnavailableInterval],
        session_id: Optional[str] = None,
    ) -> str:
        """
        Replace the unavailable intervals of ``day`` in room ``room_id``.

        The local mirror and the event channel are only touched after the
        store accepted the write.

        Returns:
            The date key that was written

        Raises:
            RoomNotFound: the room does not exist (or has expired)
            PersistFailed: the store write failed; retrying the same call is safe
        """
        key = date_key(day)
        try:
            await self.store.update_room(room_id, {slots_path(key): slots_to_wire(intervals)})
        except RoomNotFound:
            raise
        except Exception as e:
            audit_logger.log(
                action="slots_applied",
                resource_type="room",
                resource_id=room_id,
                session_id=session_id,
                status="failure",
                details={"date_key": key, "error": str(e)}
            )
            raise PersistFailed(f"Failed to write {key}: {e}", retry_safe=True) from e

        self.state.set_slots(room_id, key, intervals)
        self.events.publish(RoomUpdateEvent(room_id=room_id, date_key=key, slots=intervals))

        audit_logger.log(
            action="slots_applied",
            resource_type="room",
            resource_id=room_id,
            session_id=session_id,
            status="success",
            details={"date_key": key, "intervals": slots_to_wire(intervals)}
        )
        return key

    def select_dates(
        self,
        room: Room,
        slots_by_date: Dict[str, List[UnavailableInterval]],
        today: Optional[date] = None,
    ) -> Dict[date, List[UnavailableInterval]]:
        """
        Pick the extracted dates that will be written to ``room``.

        Dates without intervals are skipped; with period filtering enabled,
        so are dates outside the room's committed month or week.

        Raises:
            NoDatesInScope: nothing is left to apply
        """
        candidates = {}
        for key, intervals in sorted(slots_by_date.items()):
            if not intervals:
                continue
            try:
                candidates[parse_date_key(key)] = intervals
            except InvalidInterval:
                continue

        if not candidates:
            raise NoDatesInScope("no_dates")

        if not self.filter_to_period:
            return candidates

        in_period = {
            day: intervals
            for day, intervals in candidates.items()
            if is_date_in_period(day, room.period, today=today)
        }
        if not in_period:
            raise NoDatesInScope("out_of_period", period=period_description(room.period))
        return in_period

    async def apply_extraction(
        self,
        room: Room,
        slots_by_date: Dict[str, List[UnavailableInterval]],
        session_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> List[str]:
        """Apply every selected date of an extraction; returns the written date keys."""
        selected = self.select_dates(room, slots_by_date, today=today)
        return [
            await self.apply(room.id, day, intervals, session_id=session_id)
            for day, intervals in selected.items()
        ]
