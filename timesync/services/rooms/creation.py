import random
import string
from datetime import date
from enum import Enum
from typing import Optional, Union

from timesync.core.errors import InvalidRoom
from timesync.models.room import Room, TimeFrame, WeekOfMonth
from timesync.services.auth.password import hash_password
from timesync.services.rooms.period import week_options
from timesync.services.rooms.room_store import RoomStore
from timesync.utils.audit_logger import audit_logger


ROOM_ID_ALPHABET = string.digits + string.ascii_lowercase
ROOM_ID_LENGTH = 26
MIN_MEMBERS = 1
MAX_MEMBERS = 100


def generate_room_id() -> str:
    rng = random.SystemRandom()
    return "".join(rng.choice(ROOM_ID_ALPHABET) for _ in range(ROOM_ID_LENGTH))


class CreationStep(str, Enum):
    COLLECTING_TITLE = "collecting_title"
    COLLECTING_PERIOD = "collecting_period"
    COLLECTING_MEMBER_COUNT = "collecting_member_count"
    CREATED = "created"


_STEP_ORDER = [
    CreationStep.COLLECTING_TITLE,
    CreationStep.COLLECTING_PERIOD,
    CreationStep.COLLECTING_MEMBER_COUNT,
    CreationStep.CREATED,
]


class RoomCreationFlow:
    """
    Step-by-step room creation.

    Each ``next()`` validates the current step before moving on, ``back()``
    only moves the cursor. Nothing is stored until ``create()`` succeeds.
    """

    def __init__(self, today: Optional[date] = None):
        self.today = today or date.today()
        self.step = CreationStep.COLLECTING_TITLE
        self.title = ""
        self.time_frame = TimeFrame.MONTH
        self.specific_month: Optional[int] = None
        self.specific_week: Optional[WeekOfMonth] = None
        self.member_count: Optional[int] = None
        self.password: Optional[str] = None
        self.room: Optional[Room] = None

    def set_title(self, title: str) -> None:
        self.title = title

    def set_time_frame(self, time_frame: Union[TimeFrame, str]) -> None:
        # Switching granularity invalidates the month/week picked so far
        self.time_frame = TimeFrame(time_frame)
        self.specific_month = None
        self.specific_week = None

    def set_period(self, month: int, week: Optional[Union[WeekOfMonth, str]] = None) -> None:
        self.specific_month = month
        self.specific_week = WeekOfMonth(week) if week else None

    def set_member_count(self, count: int) -> None:
        self.member_count = count

    def set_password(self, password: Optional[str]) -> None:
        self.password = password or None

    def validate_step(self) -> None:
        if self.step == CreationStep.COLLECTING_TITLE:
            if not self.title.strip():
                raise InvalidRoom("모임 이름을 입력해주세요.")
        elif self.step == CreationStep.COLLECTING_PERIOD:
            self._validate_period()
        elif self.step == CreationStep.COLLECTING_MEMBER_COUNT:
            if self.member_count is None or not MIN_MEMBERS <= self.member_count <= MAX_MEMBERS:
                raise InvalidRoom(f"참여 인원은 {MIN_MEMBERS}명에서 {MAX_MEMBERS}명 사이로 입력해주세요.")

    def _validate_period(self) -> None:
        if self.specific_month is None or not 1 <= self.specific_month <= 12:
            raise InvalidRoom("월을 선택해주세요.")
        if self.time_frame == TimeFrame.WEEK:
            if self.specific_week is None:
                raise InvalidRoom("월과 주차를 모두 선택해주세요.")
            labels = [option.label for option in week_options(self.today.year, self.specific_month, today=self.today)]
            if self.specific_week not in labels:
                raise InvalidRoom("선택할 수 없는 주차입니다.")
        elif self.specific_week is not None:
            raise InvalidRoom("월 단위 모임에는 주차를 지정할 수 없습니다.")

    def next(self) -> CreationStep:
        if self.step == CreationStep.COLLECTING_MEMBER_COUNT:
            raise InvalidRoom("마지막 단계에서는 create()로 모임을 생성합니다.")
        if self.step == CreationStep.CREATED:
            raise InvalidRoom("이미 생성된 모임입니다.")
        self.validate_step()
        self.step = _STEP_ORDER[_STEP_ORDER.index(self.step) + 1]
        return self.step

    def back(self) -> CreationStep:
        if self.step in (CreationStep.COLLECTING_TITLE, CreationStep.CREATED):
            return self.step
        self.step = _STEP_ORDER[_STEP_ORDER.index(self.step) - 1]
        return self.step

    def build_room(self, room_id: Optional[str] = None) -> Room:
        return Room(
            id=room_id or generate_room_id(),
            title=self.title.strip(),
            time_frame=self.time_frame,
            specific_month=self.specific_month,
            specific_week=self.specific_week,
            member_count=self.member_count,
            is_password_protected=bool(self.password),
            password_hash=hash_password(self.password) if self.password else None,
        )

    async def create(self, store: RoomStore, room_id: Optional[str] = None) -> Room:
        """Validate the last step, persist the room and finish the flow."""
        if self.step != CreationStep.COLLECTING_MEMBER_COUNT:
            raise InvalidRoom("모든 단계를 완료한 뒤 모임을 생성할 수 있습니다.")
        self.validate_step()

        room = self.build_room(room_id)
        await store.create_room(room.id, room.to_store())
        snapshot = await store.get_room(room.id)
        self.room = Room.model_validate(snapshot)
        self.step = CreationStep.CREATED

        audit_logger.log(
            action="room_created",
            resource_type="room",
            resource_id=room.id,
            status="success",
            details={
                "time_frame": room.time_frame.value,
                "specific_month": room.specific_month,
                "specific_week": room.specific_week.value if room.specific_week else None,
                "member_count": room.member_count,
                "password_protected": room.is_password_protected,
            }
        )
        return self.room
