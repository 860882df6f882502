"""
Integration Tests for the live leaderboard socket.
"""

import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from rankboard.api.app import create_app

pytestmark = [pytest.mark.integration, pytest.mark.database]

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest.fixture
def client(sqlite_database_url):
    with TestClient(create_app()) as test_client:
        yield test_client


def put_score(client, event_id, user_id, body):
    response = client.put(
        f"/api/leaderboard/event/{event_id}/user/{user_id}", json=body, headers=ADMIN
    )
    assert response.status_code == 200
    return response.json()["data"]


class TestHandshake:
    def test_missing_credential_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/leaderboard"):
                pass

        assert exc_info.value.code == 1008

    def test_bearer_header_is_accepted(self, client):
        with client.websocket_connect(
            "/ws/leaderboard", headers={"Authorization": "Bearer abc"}
        ) as ws:
            ws.send_json({"action": "join-event", "eventId": "hack-1"})

            assert ws.receive_json() == {"type": "joined", "eventId": "hack-1"}


class TestChannels:
    def test_subscriber_receives_score_updates(self, client):
        with client.websocket_connect("/ws/leaderboard?token=abc") as ws:
            ws.send_json({"action": "join-event", "eventId": "hack-1"})
            assert ws.receive_json()["type"] == "joined"

            put_score(client, "hack-1", "u1", {"points": 10, "achievements": ["a"], "userName": "Ada"})

            assert ws.receive_json() == {
                "type": "score-updated",
                "data": {
                    "eventId": "hack-1",
                    "userId": "u1",
                    "score": 10,
                    "rank": 1,
                    "achievements": ["a"],
                },
            }

    def test_only_joined_event_is_delivered(self, client):
        with client.websocket_connect("/ws/leaderboard?token=abc") as ws:
            ws.send_json({"action": "join-event", "eventId": "hack-2"})
            ws.receive_json()

            put_score(client, "hack-1", "u1", {"points": 1, "userName": "Ada"})
            put_score(client, "hack-2", "u1", {"points": 2, "userName": "Ada"})

            message = ws.receive_json()
            assert message["data"]["eventId"] == "hack-2"

    def test_leave_event(self, client):
        hub = client.app.state.channel_hub

        with client.websocket_connect("/ws/leaderboard?token=abc") as ws:
            ws.send_json({"action": "join-event", "eventId": "hack-1"})
            ws.receive_json()
            assert hub.subscriber_count("hack-1") == 1

            ws.send_json({"action": "leave-event", "eventId": "hack-1"})

            assert ws.receive_json() == {"type": "left", "eventId": "hack-1"}
            assert hub.subscriber_count("hack-1") == 0

    def test_disconnect_drops_subscriptions(self, client):
        hub = client.app.state.channel_hub

        with client.websocket_connect("/ws/leaderboard?token=abc") as ws:
            ws.send_json({"action": "join-event", "eventId": "hack-1"})
            ws.receive_json()

        # Server-side cleanup finishes on the app loop after the client closes.
        deadline = time.monotonic() + 2
        while hub.channels() and time.monotonic() < deadline:
            time.sleep(0.01)

        assert hub.channels() == []

    def test_updates_succeed_with_no_subscribers(self, client):
        data = put_score(client, "hack-1", "u1", {"points": 3, "userName": "Ada"})

        assert data["score"] == 3


class TestProtocolErrors:
    @pytest.mark.parametrize(
        "frame, message",
        [
            ({"action": "dance", "eventId": "hack-1"}, "Unknown action: dance"),
            ({"action": "join-event"}, "eventId is required"),
            (["join-event"], "Frame must be a JSON object"),
        ],
    )
    def test_bad_frames_get_error_reply(self, client, frame, message):
        with client.websocket_connect("/ws/leaderboard?token=abc") as ws:
            ws.send_json(frame)

            assert ws.receive_json() == {"type": "error", "message": message}

    def test_invalid_json(self, client):
        with client.websocket_connect("/ws/leaderboard?token=abc") as ws:
            ws.send_text("{not json")

            assert ws.receive_json() == {"type": "error", "message": "Invalid JSON"}
            # Connection stays usable.
            ws.send_json({"action": "join-event", "eventId": "hack-1"})
            assert ws.receive_json()["type"] == "joined"
