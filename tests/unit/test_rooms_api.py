import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from timesync.core.errors import ExtractionFailed
from timesync.main import create_app
from tests.helpers import make_service, slots_response


ROOMS = "/api/v1/rooms"

ROOM_BODY = {
    "title": "Team dinner",
    "timeFrame": "month",
    "specificMonth": 6,
    "memberCount": 4,
}


def _client(responses=None, **kwargs):
    service = make_service(responses or [slots_response({})], **kwargs)
    return TestClient(create_app(service)), service


def _create_room(client, **overrides):
    response = client.post(ROOMS, json={**ROOM_BODY, **overrides})
    assert response.status_code == 201
    return response.json()


def test_health_check():
    client, _ = _client()

    assert client.get("/").json()["status"] == "ok"


def test_create_and_fetch_room():
    client, _ = _client()

    created = _create_room(client, password="pw1234")
    fetched = client.get(f"{ROOMS}/{created['id']}").json()

    assert created["unavailableSlotsByDate"] == {}
    assert "passwordHash" not in created
    assert fetched["isPasswordProtected"] is True
    assert fetched["periodDescription"] == "6월 전체"


def test_create_week_room_requires_week():
    client, _ = _client()

    response = client.post(ROOMS, json={**ROOM_BODY, "timeFrame": "week"})

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "InvalidRoom"


def test_unknown_room_is_404():
    client, _ = _client()

    response = client.get(f"{ROOMS}/missing")

    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "RoomNotFound"


def test_week_options_skip_past_weeks():
    client, _ = _client()

    response = client.get(f"{ROOMS}/week-options", params={"year": 2024, "month": 6})

    labels = [option["label"] for option in response.json()["options"]]
    assert labels == ["둘째 주", "셋째 주", "넷째 주", "마지막 주"]


def test_verify_password():
    client, _ = _client()
    room = _create_room(client, password="pw1234")

    ok = client.post(f"{ROOMS}/{room['id']}/verify-password", json={"password": "pw1234"})
    bad = client.post(f"{ROOMS}/{room['id']}/verify-password", json={"password": "nope"})

    assert ok.status_code == 200
    assert bad.status_code == 401


def test_submit_message_applies_slots():
    client, _ = _client([slots_response({"20240615": [{"start": "14:00", "end": "16:00"}]})])
    room = _create_room(client)

    response = client.post(
        f"{ROOMS}/{room['id']}/messages",
        json={"message": "15일 2시부터 4시까지 안 돼요"},
        headers={"X-Session-ID": "alice"},
    )

    assert response.status_code == 200
    assert response.json()["applied_dates"] == ["20240615"]
    slots = client.get(f"{ROOMS}/{room['id']}").json()["unavailableSlotsByDate"]
    assert slots == {"20240615": [{"start": "14:00", "end": "16:00"}]}


def test_submit_message_requires_session_header():
    client, _ = _client()
    room = _create_room(client)

    response = client.post(f"{ROOMS}/{room['id']}/messages", json={"message": "15일 오후 안 돼요"})

    assert response.status_code == 400


def test_rapid_resubmission_is_429_with_retry_after():
    client, _ = _client([slots_response({"20240615": [{"start": "14:00", "end": "16:00"}]})])
    room = _create_room(client)
    url = f"{ROOMS}/{room['id']}/messages"

    client.post(url, json={"message": "15일 오후 안 돼요"}, headers={"X-Session-ID": "alice"})
    response = client.post(url, json={"message": "15일 오후 안 돼요"}, headers={"X-Session-ID": "alice"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "1"
    assert response.json()["detail"]["kind"] == "SubmissionRejected.too_fast"


@pytest.mark.parametrize("failure, status_code, kind", [
    ("not json at all", 502, "ExtractionFailed.parse"),
    (ExtractionFailed("network", "connection reset"), 503, "ExtractionFailed.network"),
    (ExtractionFailed("api", "quota exceeded"), 502, "ExtractionFailed.api"),
])
def test_extraction_failures_keep_their_kind(failure, status_code, kind):
    client, _ = _client([failure])
    room = _create_room(client)

    response = client.post(
        f"{ROOMS}/{room['id']}/messages",
        json={"message": "15일 오후 안 돼요"},
        headers={"X-Session-ID": "alice"},
    )

    assert response.status_code == status_code
    assert response.json()["detail"]["kind"] == kind
    assert client.get(f"{ROOMS}/{room['id']}").json()["unavailableSlotsByDate"] == {}


def test_out_of_period_message_is_422():
    client, _ = _client([slots_response({"20240701": [{"start": "09:00", "end": "10:00"}]})])
    room = _create_room(client)

    response = client.post(
        f"{ROOMS}/{room['id']}/messages",
        json={"message": "7월 1일 오전 안 돼요"},
        headers={"X-Session-ID": "alice"},
    )

    assert response.status_code == 422
    assert "6월 전체" in response.json()["detail"]["message"]


def test_replace_slots_and_read_availability():
    client, _ = _client()
    room = _create_room(client)

    replaced = client.put(
        f"{ROOMS}/{room['id']}/slots/20240615",
        json={"slots": [{"start": "14:00", "end": "16:00"}]},
    )
    availability = client.get(f"{ROOMS}/{room['id']}/availability/20240615").json()

    assert replaced.status_code == 200
    assert 14 not in availability["available_hours"]
    assert 16 in availability["available_hours"]
    assert len(availability["grid"]) == 48


def test_replace_slots_rejects_reversed_interval():
    client, _ = _client()
    room = _create_room(client)

    response = client.put(
        f"{ROOMS}/{room['id']}/slots/20240615",
        json={"slots": [{"start": "16:00", "end": "14:00"}]},
    )

    assert response.status_code == 422


def test_room_events_stream_updates():
    client, service = _client()
    room = _create_room(client)

    with client.websocket_connect(f"{ROOMS}/{room['id']}/events") as websocket:
        assert service.is_watched(room["id"])
        client.put(
            f"{ROOMS}/{room['id']}/slots/20240615",
            json={"slots": [{"start": "14:00", "end": "16:00"}]},
        )
        event = websocket.receive_json()

    assert event["type"] == "room_updated"
    assert event["date_key"] == "20240615"
    assert event["slots"] == [{"start": "14:00", "end": "16:00"}]


def test_purge_loop_runs_for_the_app_lifetime():
    client, _ = _client()

    with client:
        purge_task = client.app.state.purge_task
        assert not purge_task.done()

    assert purge_task.cancelled()


def test_room_events_for_unknown_room_are_refused():
    client, _ = _client()

    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect(f"{ROOMS}/missing/events"):
            pass

    assert excinfo.value.code == 4404
