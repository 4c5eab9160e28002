from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.domain.notifications.repository import ProfileRepository
from app.main import app, wire_services
from app.services.in_app_service import create_in_app_notification
from app.services.notification_service import ChannelAdapters

from .conftest import ADMIN, CLEANER, CLIENT, JOB_LAT, JOB_LNG, OTHER_CLEANER, north_of

CLIENT_EMAIL = "dana@example.com"


def headers(actor):
    return {"X-Actor-Id": actor.id, "X-Actor-Role": actor.role.value}


@pytest.fixture
def client(db):
    ProfileRepository.upsert(db, CLIENT.id, role="client", full_name="Dana Client", email=CLIENT_EMAIL)
    ProfileRepository.upsert(db, CLEANER.id, role="cleaner", full_name="Sam Cleaner", email="sam@example.com")
    adapters = ChannelAdapters(
        in_app=create_in_app_notification,
        email=AsyncMock(return_value=None),
        sms=AsyncMock(return_value=(True, None)),
        push=AsyncMock(return_value=(False, "Push permission not granted")),
    )
    wire_services(app, adapters=adapters)
    with TestClient(app) as test_client:
        yield test_client
    for name in ("event_bus", "realtime_hub", "notification_orchestrator", "reminder_service"):
        delattr(app.state, name)


def offer(client, **overrides):
    body = {
        "client_id": CLIENT.id,
        "address": "1 Centre St, New York, NY",
        "latitude": JOB_LAT,
        "longitude": JOB_LNG,
        "contracted_duration_minutes": 120,
        "cleaner_ids": [CLEANER.id, OTHER_CLEANER.id],
        "scheduled_date": "2026-01-05",
        "scheduled_time": "09:00",
        "requires_before_photos": False,
        "requires_after_photos": False,
    }
    body.update(overrides)
    response = client.post("/jobs", json=body, headers=headers(CLIENT))
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_full_job_flow(client):
    job = offer(client)
    job_id = job["id"]
    assert job["state"] == "OFFERED"

    steps = [
        ("accept", {}, "ASSIGNED"),
        ("en-route", {}, "EN_ROUTE"),
        ("arrive", {"latitude": JOB_LAT, "longitude": JOB_LNG}, "ARRIVED"),
        ("start", {"latitude": JOB_LAT, "longitude": JOB_LNG}, "IN_PROGRESS"),
        ("complete", {"latitude": JOB_LAT, "longitude": JOB_LNG, "notes": "All rooms done"}, "AWAITING_CLIENT_REVIEW"),
    ]
    for path, body, state in steps:
        response = client.post(f"/jobs/{job_id}/{path}", json=body, headers=headers(CLEANER))
        assert response.status_code == 200, response.text
        assert response.json()["state"] == state

    response = client.post(f"/jobs/{job_id}/approve", json={"rating": 5}, headers=headers(CLIENT))
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "COMPLETED_APPROVED"
    assert data["client_rating"] == 5
    assert data["version"] == 7


def test_geofence_rejection_returns_reason(client):
    job_id = offer(client)["id"]
    client.post(f"/jobs/{job_id}/accept", headers=headers(CLEANER))
    client.post(f"/jobs/{job_id}/en-route", json={}, headers=headers(CLEANER))
    lat, lng = north_of(500)

    response = client.post(f"/jobs/{job_id}/arrive", json={"latitude": lat, "longitude": lng}, headers=headers(CLEANER))

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["reason"] == "OUT_OF_GEOFENCE"
    assert detail["job_id"] == job_id
    assert detail["distance_m"] == pytest.approx(500, abs=1)
    assert client.get(f"/jobs/{job_id}", headers=headers(CLIENT)).json()["state"] == "EN_ROUTE"


def test_error_status_codes(client):
    job_id = offer(client)["id"]

    assert client.post("/jobs/missing/accept", headers=headers(CLEANER)).status_code == 404

    response = client.post(f"/jobs/{job_id}/en-route", json={}, headers=headers(CLEANER))
    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "WRONG_STATE"

    client.post(f"/jobs/{job_id}/accept", headers=headers(CLEANER))
    response = client.post(f"/jobs/{job_id}/en-route", json={}, headers=headers(OTHER_CLEANER))
    assert response.status_code == 403
    assert response.json()["detail"]["reason"] == "UNAUTHORIZED_ACTOR"

    response = client.post(f"/jobs/{job_id}/cancel", json={"reason": ""}, headers=headers(CLIENT))
    assert response.status_code == 422
    assert response.json()["detail"]["reason"] == "INVALID_INPUT"


def test_missing_actor_headers(client):
    assert client.get("/jobs").status_code == 401
    response = client.get("/jobs", headers={"X-Actor-Id": "x", "X-Actor-Role": "janitor"})
    assert response.status_code == 401


def test_request_validation(client):
    response = client.post(
        "/jobs",
        json={"client_id": CLIENT.id, "address": "x", "latitude": 95, "longitude": 0, "contracted_duration_minutes": 60},
        headers=headers(CLIENT),
    )
    assert response.status_code == 422


def test_dispute_flow_over_http(client):
    job_id = offer(client)["id"]
    client.post(f"/jobs/{job_id}/accept", headers=headers(CLEANER))
    client.post(f"/jobs/{job_id}/en-route", json={}, headers=headers(CLEANER))
    for path in ("arrive", "start", "complete"):
        client.post(f"/jobs/{job_id}/{path}", json={"latitude": JOB_LAT, "longitude": JOB_LNG}, headers=headers(CLEANER))

    assert client.post(f"/jobs/{job_id}/dispute", json={"reason": "Skipped kitchen"}, headers=headers(CLIENT)).json()[
        "state"
    ] == "DISPUTED"
    assert client.post(f"/jobs/{job_id}/dispute/review", headers=headers(ADMIN)).json()["state"] == "UNDER_REVIEW"
    response = client.post(
        f"/jobs/{job_id}/dispute/resolve", json={"resolution": "refund", "notes": "Partial clean"}, headers=headers(ADMIN)
    )
    assert response.json()["state"] == "CANCELLED"
    assert response.json()["dispute_resolution"] == "refund"


def test_notification_inbox_and_read(client):
    job_id = offer(client)["id"]
    client.post(f"/jobs/{job_id}/accept", headers=headers(CLEANER))

    inbox = client.get("/notifications", headers=headers(CLIENT)).json()
    assert [n["notification_type"] for n in inbox] == ["booking_confirmed"]

    response = client.post(f"/notifications/{inbox[0]['id']}/read", headers=headers(CLIENT))
    assert response.json()["is_read"] is True
    assert client.post(f"/notifications/{inbox[0]['id']}/read", headers=headers(CLEANER)).status_code == 404
    assert client.get("/notifications?unread_only=true", headers=headers(CLIENT)).json() == []

    # Offer plus assignment notice
    assert client.post("/notifications/read-all", headers=headers(CLEANER)).json()["count"] == 2


def test_preferences(client):
    assert client.get("/notifications/preferences", headers=headers(CLIENT)).json() == {
        "in_app": True,
        "email": True,
        "sms": True,
        "push": True,
    }
    response = client.put("/notifications/preferences", json={"sms": False}, headers=headers(CLIENT))
    assert response.json() == {"in_app": True, "email": True, "sms": False, "push": True}


def test_push_device_registration(client):
    response = client.post("/notifications/push-devices", json={"token": "fcm-token-1"}, headers=headers(CLIENT))
    assert response.status_code == 201
    assert response.json()["registered"] is True
    assert client.delete("/notifications/push-devices/fcm-token-1", headers=headers(CLIENT)).json() == {"removed": True}
    assert client.delete("/notifications/push-devices/fcm-token-1", headers=headers(CLIENT)).json() == {"removed": False}


def test_push_device_removal_is_limited_to_owner(client):
    client.post("/notifications/push-devices", json={"token": "fcm-token-2"}, headers=headers(CLIENT))

    assert client.delete("/notifications/push-devices/fcm-token-2", headers=headers(CLEANER)).json() == {"removed": False}
    assert client.delete("/notifications/push-devices/fcm-token-2", headers=headers(CLIENT)).json() == {"removed": True}


def test_poll_and_heartbeat(client):
    job_id = offer(client)["id"]
    client.post(f"/jobs/{job_id}/accept", headers=headers(CLEANER))

    body = client.get("/notifications/poll", params={"user": CLIENT_EMAIL}).json()
    assert [n["type"] for n in body["notifications"]] == ["booking_confirmed"]
    assert client.get("/notifications/poll", params={"user": "nobody@example.com"}).json() == {"notifications": []}

    assert client.post("/notifications/heartbeat", json={"userEmail": CLIENT_EMAIL}).json() == {"ok": True}
    assert app.state.realtime_hub.last_heartbeat(CLIENT_EMAIL) is not None


def test_websocket_ping_and_live_notification(client):
    job_id = offer(client)["id"]

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "auth", "userEmail": CLIENT_EMAIL})
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        assert app.state.realtime_hub.is_connected(CLIENT_EMAIL)

        client.post(f"/jobs/{job_id}/accept", headers=headers(CLEANER))

        frame = ws.receive_json()
        assert frame["type"] == "notification"
        assert frame["payload"]["type"] == "booking_confirmed"
        assert frame["payload"]["job_id"] == job_id


def test_websocket_rejects_missing_auth(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "ping"})
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == 4001
