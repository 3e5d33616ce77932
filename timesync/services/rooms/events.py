from typing import Callable, Dict, List, Literal

from pydantic import BaseModel

from timesync.models.interval import UnavailableInterval
from timesync.utils.audit_logger import audit_logger


class RoomUpdateEvent(BaseModel):
    """Published after a date's intervals were replaced in a room"""
    type: Literal["room_updated"] = "room_updated"
    room_id: str
    date_key: str
    slots: List[UnavailableInterval]


Handler = Callable[[RoomUpdateEvent], None]


class RoomEventChannel:
    """In-process fan-out of room updates, keyed by room id."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, room_id: str, handler: Handler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(room_id, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: RoomUpdateEvent) -> int:
        """
        Deliver ``event`` to every handler of its room.

        A failing handler is logged and skipped; the write behind the event
        has already been stored. Returns the number of handlers that received
        the event.
        """
        delivered = 0
        for handler in list(self._handlers.get(event.room_id, [])):
            try:
                handler(event)
            except Exception as e:
                audit_logger.log(
                    action="room_event_delivered",
                    resource_type="room",
                    resource_id=event.room_id,
                    status="failure",
                    details={"date_key": event.date_key, "error": str(e)}
                )
                continue
            delivered += 1
        return delivered
