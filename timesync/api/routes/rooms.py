import asyncio
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ConfigDict, Field

from timesync.core.errors import (
    ExtractionFailed,
    InvalidInterval,
    InvalidMessage,
    InvalidRoom,
    NoDatesInScope,
    PersistFailed,
    RoomNotFound,
    SubmissionRejected,
    TimeSyncError,
)
from timesync.models.interval import UnavailableInterval
from timesync.models.room import TimeFrame, WeekOfMonth
from timesync.services.rooms.events import RoomUpdateEvent
from timesync.services.rooms.period import period_description, week_options
from timesync.services.rooms.room_service import RoomService
from timesync.utils.audit_logger import audit_logger


router = APIRouter()


class RoomCreateRequest(BaseModel):
    """Model for the room creation form"""
    model_config = ConfigDict(populate_by_name=True)

    title: str
    time_frame: TimeFrame = Field(TimeFrame.MONTH, alias="timeFrame")
    specific_month: int = Field(..., alias="specificMonth")
    specific_week: Optional[WeekOfMonth] = Field(None, alias="specificWeek")
    member_count: int = Field(..., alias="memberCount")
    password: Optional[str] = None


class MessageRequest(BaseModel):
    """Model for a participant's free-text availability message"""
    message: str
    target_date: Optional[date] = None


class PasswordRequest(BaseModel):
    password: str


class SlotsRequest(BaseModel):
    slots: List[UnavailableInterval]


_ERROR_STATUS = {
    InvalidInterval: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidMessage: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidRoom: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NoDatesInScope: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PersistFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
    RoomNotFound: status.HTTP_404_NOT_FOUND,
    SubmissionRejected: status.HTTP_429_TOO_MANY_REQUESTS,
}


def _http_error(error: TimeSyncError) -> HTTPException:
    """Translate a core error into an HTTP error that keeps its kind."""
    headers = None
    kind = type(error).__name__
    if isinstance(error, ExtractionFailed):
        code = status.HTTP_503_SERVICE_UNAVAILABLE if error.kind == "network" else status.HTTP_502_BAD_GATEWAY
        kind = f"{kind}.{error.kind}"
    else:
        code = _ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if isinstance(error, SubmissionRejected):
        kind = f"{kind}.{error.reason}"
        headers = {"Retry-After": str(max(1, round(error.retry_after)))}

    detail = {"kind": kind, "message": error.user_message}
    if isinstance(error, PersistFailed):
        detail["retry_safe"] = error.retry_safe
    return HTTPException(status_code=code, detail=detail, headers=headers)


def get_room_service(request: Request) -> RoomService:
    return request.app.state.room_service


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_room(
    request: RoomCreateRequest,
    service: RoomService = Depends(get_room_service)
):
    """
    Create a room committed to a month or a week of a month.
    """
    try:
        room = await service.create_room(
            title=request.title,
            time_frame=request.time_frame,
            specific_month=request.specific_month,
            specific_week=request.specific_week,
            member_count=request.member_count,
            password=request.password,
        )
    except TimeSyncError as e:
        raise _http_error(e)

    return room.to_public()


@router.get("/week-options", status_code=status.HTTP_200_OK)
async def list_week_options(
    year: int,
    month: int,
    service: RoomService = Depends(get_room_service)
):
    """
    Weeks that can still be picked for a week-scoped room.
    """
    if not 1 <= month <= 12:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="month must be 1-12")
    options = week_options(year, month, today=service.clock().date())
    return {"options": [option.model_dump(mode="json") for option in options]}


@router.get("/{room_id}", status_code=status.HTTP_200_OK)
async def get_room(
    room_id: str,
    service: RoomService = Depends(get_room_service)
):
    """
    Current snapshot of a room, without password material.
    """
    try:
        room = await service.get_room(room_id)
    except TimeSyncError as e:
        raise _http_error(e)

    return {**room.to_public(), "periodDescription": period_description(room.period)}


@router.post("/{room_id}/verify-password", status_code=status.HTTP_200_OK)
async def verify_room_password(
    room_id: str,
    request: PasswordRequest,
    service: RoomService = Depends(get_room_service)
):
    try:
        valid = await service.verify_password(room_id, request.password)
    except TimeSyncError as e:
        raise _http_error(e)

    if not valid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"kind": "InvalidPassword", "message": "비밀번호가 일치하지 않습니다."}
        )
    return {"status": "ok"}


@router.post("/{room_id}/messages", status_code=status.HTTP_200_OK)
async def submit_message(
    room_id: str,
    request: MessageRequest,
    x_session_id: Optional[str] = Header(None),
    service: RoomService = Depends(get_room_service)
):
    """
    Turn a free-text message into unavailable times and write them to the room.

    Requires the sender session id in the ``X-Session-ID`` header.
    """
    if not x_session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Session-ID header is required"
        )

    try:
        outcome = await service.submit_message(
            room_id,
            sender_id=x_session_id,
            message=request.message,
            target_date=request.target_date,
        )
    except TimeSyncError as e:
        raise _http_error(e)

    return {
        "status": "applied",
        "applied_dates": outcome.applied_dates,
        "dropped": [entry.model_dump(mode="json") for entry in outcome.dropped],
        "message": f"{len(outcome.applied_dates)}개 날짜의 불가능한 시간이 반영되었습니다.",
    }


@router.put("/{room_id}/slots/{date_key}", status_code=status.HTTP_200_OK)
async def replace_slots(
    room_id: str,
    date_key: str,
    request: SlotsRequest,
    service: RoomService = Depends(get_room_service)
):
    """
    Replace the unavailable intervals stored for one date.
    """
    try:
        key = await service.replace_slots(room_id, date_key, request.slots)
    except TimeSyncError as e:
        raise _http_error(e)

    return {"status": "replaced", "date_key": key, "slots": [slot.model_dump() for slot in request.slots]}


@router.get("/{room_id}/availability/{date_key}", status_code=status.HTTP_200_OK)
async def get_day_availability(
    room_id: str,
    date_key: str,
    service: RoomService = Depends(get_room_service)
):
    try:
        availability = await service.day_availability(room_id, date_key)
    except TimeSyncError as e:
        raise _http_error(e)

    return availability.model_dump(mode="json")


@router.websocket("/{room_id}/events")
async def room_events(websocket: WebSocket, room_id: str):
    """
    Push ``room_updated`` events for a room to a connected viewer.
    """
    service: RoomService = websocket.app.state.room_service
    queue: asyncio.Queue = asyncio.Queue()
    loop = asyncio.get_running_loop()

    def enqueue(event: RoomUpdateEvent) -> None:
        # Writes may be published from another thread's loop
        loop.call_soon_threadsafe(queue.put_nowait, event)

    async def forward() -> None:
        while True:
            event = await queue.get()
            await websocket.send_json(event.model_dump(mode="json"))

    try:
        await service.get_room(room_id)
    except RoomNotFound:
        await websocket.close(code=4404)
        return

    unsubscribe = service.events.subscribe(room_id, enqueue)
    service.watch(room_id)
    await websocket.accept()
    sender = asyncio.create_task(forward())
    try:
        # Incoming frames are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        service.unwatch(room_id)
        sender.cancel()
        outcome = "success"
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            outcome = "failure"
            audit_logger.log(
                action="room_event_delivered",
                resource_type="room",
                resource_id=room_id,
                status="failure",
                details={"error": str(e)}
            )
        audit_logger.log(
            action="room_events_closed",
            resource_type="room",
            resource_id=room_id,
            status=outcome
        )
