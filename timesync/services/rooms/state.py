from typing import Dict, List, Optional

from timesync.models.interval import UnavailableInterval
from timesync.models.room import Room
from timesync.services.rooms.room_store import RoomSnapshot


class RoomState:
    """
    Local mirror of the rooms this process is serving.

    Passed explicitly to the components that read or write it; the mirror
    converges with the store either through ``set_slots`` after a successful
    write or through ``sync_from_snapshot`` on a pushed snapshot.
    """

    def __init__(self):
        self.rooms: Dict[str, Room] = {}

    def get(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def mirror(self, room: Room) -> Room:
        self.rooms[room.id] = room
        return room

    def set_slots(self, room_id: str, key: str, slots: List[UnavailableInterval]) -> None:
        room = self.rooms.get(room_id)
        if room is None:
            return
        room.unavailable_slots_by_date[key] = list(slots)

    def sync_from_snapshot(self, snapshot: RoomSnapshot) -> Room:
        return self.mirror(Room.model_validate(snapshot))

    def forget(self, room_id: str) -> None:
        self.rooms.pop(room_id, None)
