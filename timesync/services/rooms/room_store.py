import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from timesync.core.errors import RoomNotFound
from timesync.utils.audit_logger import audit_logger


RoomSnapshot = Dict[str, Any]
OnChange = Callable[[RoomSnapshot], None]
Unsubscribe = Callable[[], None]

SLOTS_FIELD = "unavailableSlotsByDate"


def slots_path(key: str) -> str:
    """Dotted store path addressing one date's interval list."""
    return f"{SLOTS_FIELD}.{key}"


class RoomStore(ABC):
    """
    Key-value room store with realtime push.

    Updates address nested fields with dotted paths such as
    ``unavailableSlotsByDate.20240615``; each path is replaced as a whole and
    sibling paths are left untouched.
    """

    @abstractmethod
    async def create_room(self, room_id: str, data: RoomSnapshot) -> None:
        ...

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[RoomSnapshot]:
        ...

    @abstractmethod
    async def update_room(self, room_id: str, updates: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def subscribe_to_room(self, room_id: str, on_change: OnChange) -> Unsubscribe:
        ...

    @abstractmethod
    async def delete_room(self, room_id: str) -> None:
        ...

    @abstractmethod
    async def purge_expired(self, now: Optional[datetime] = None) -> List[str]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRoomStore(RoomStore):
    """
    Process-local room store.

    Snapshots handed out are deep copies, so callers can never mutate stored
    state behind the store's back. Rooms expire ``retention`` after their
    last write.
    """

    def __init__(self, retention: timedelta = timedelta(days=90), clock: Callable[[], datetime] = _utcnow):
        self._rooms: Dict[str, RoomSnapshot] = {}
        self._subscribers: Dict[str, List[OnChange]] = {}
        self._lock = asyncio.Lock()
        self.retention = retention
        self.clock = clock

    def room_count(self) -> int:
        """Rooms currently held, expired ones not yet evicted included."""
        return len(self._rooms)

    def _stamp(self, data: RoomSnapshot, created: bool = False) -> None:
        now = self.clock()
        if created:
            data["createdAt"] = now.isoformat()
        data["updatedAt"] = now.isoformat()
        data["expiresAt"] = (now + self.retention).isoformat()

    def _is_expired(self, data: RoomSnapshot, now: datetime) -> bool:
        expires_at = data.get("expiresAt")
        return bool(expires_at) and datetime.fromisoformat(expires_at) <= now

    def _evict_if_expired(self, room_id: str, now: datetime) -> Optional[RoomSnapshot]:
        data = self._rooms.get(room_id)
        if data is not None and self._is_expired(data, now):
            self._rooms.pop(room_id, None)
            self._subscribers.pop(room_id, None)
            return None
        return data

    async def create_room(self, room_id: str, data: RoomSnapshot) -> None:
        async with self._lock:
            if self._evict_if_expired(room_id, self.clock()) is not None:
                raise ValueError(f"Room {room_id} already exists")
            stored = copy.deepcopy(data)
            stored["id"] = room_id
            stored[SLOTS_FIELD] = {}
            self._stamp(stored, created=True)
            self._rooms[room_id] = stored

    async def get_room(self, room_id: str) -> Optional[RoomSnapshot]:
        data = self._evict_if_expired(room_id, self.clock())
        if data is None:
            return None
        return copy.deepcopy(data)

    async def update_room(self, room_id: str, updates: Dict[str, Any]) -> None:
        async with self._lock:
            data = self._evict_if_expired(room_id, self.clock())
            if data is None:
                raise RoomNotFound(room_id)

            for path, value in updates.items():
                *parents, leaf = path.split(".")
                target = data
                for part in parents:
                    target = target.setdefault(part, {})
                target[leaf] = copy.deepcopy(value)
            self._stamp(data)
            snapshot = copy.deepcopy(data)

        self._notify(room_id, snapshot)

    def subscribe_to_room(self, room_id: str, on_change: OnChange) -> Unsubscribe:
        handlers = self._subscribers.setdefault(room_id, [])
        handlers.append(on_change)

        def unsubscribe() -> None:
            if on_change in handlers:
                handlers.remove(on_change)

        return unsubscribe

    def _notify(self, room_id: str, snapshot: RoomSnapshot) -> None:
        for handler in list(self._subscribers.get(room_id, [])):
            try:
                handler(copy.deepcopy(snapshot))
            except Exception as e:
                audit_logger.log(
                    action="room_subscriber_notified",
                    resource_type="room",
                    resource_id=room_id,
                    status="failure",
                    details={"error": str(e)}
                )

    async def delete_room(self, room_id: str) -> None:
        async with self._lock:
            self._rooms.pop(room_id, None)
            self._subscribers.pop(room_id, None)

    async def purge_expired(self, now: Optional[datetime] = None) -> List[str]:
        now = now or self.clock()
        async with self._lock:
            expired = [room_id for room_id, data in self._rooms.items() if self._is_expired(data, now)]
            for room_id in expired:
                self._rooms.pop(room_id, None)
                self._subscribers.pop(room_id, None)

        if expired:
            audit_logger.log(
                action="rooms_purged",
                resource_type="room",
                status="success",
                details={"room_ids": expired}
            )
        return expired


async def purge_periodically(store: RoomStore, interval: float) -> None:
    """Purge expired rooms every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            await store.purge_expired()
        except Exception as e:
            audit_logger.log(
                action="rooms_purged",
                resource_type="room",
                status="failure",
                details={"error": str(e)}
            )
