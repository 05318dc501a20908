from contextlib import ExitStack

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from medlink.main import app
from medlink.relationship import InMemoryRelationshipStore, build_engine
from medlink.utils.concurrency import GuardUnavailable, SingleFlight

ALICE = {"X-Actor-Id": "alice"}
BOB = {"X-Actor-Id": "bob"}
CLINIC = {"X-Actor-Id": "clinic", "X-Actor-Type": "institution"}


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def test_health(client):
    body = client.get("/health").json()
    assert body["ok"] is True
    assert body["engine"] is True
    assert body["store"] == "InMemoryRelationshipStore"


def test_status_requires_actor(client):
    assert client.get("/relationships/bob").status_code == 401


def test_connect_and_accept(client):
    res = client.get("/relationships/bob", headers=ALICE)
    assert res.status_code == 200
    assert res.json()["status"] == "none"
    assert res.json()["button"] == {
        "label": "Connect", "icon": "user-plus", "enabled": True, "action": "connect",
    }

    res = client.post("/relationships/bob/actions", json={"intent": "connect"}, headers=ALICE)
    assert res.status_code == 200
    assert res.json()["status"] == "pending_outgoing"
    assert res.json()["button"]["label"] == "Pending"

    requests = client.get("/relationships/me/requests", headers=BOB).json()
    assert requests["count"] == 1
    assert requests["items"][0]["requester_id"] == "alice"

    res = client.post("/relationships/alice/actions", json={"intent": "accept"}, headers=BOB)
    assert res.json()["status"] == "connected"
    assert res.json()["button"]["enabled"] is False

    assert client.get("/relationships/me/connections", headers=ALICE).json()["items"] == ["bob"]

    inbox = client.get("/relationships/me/notifications", headers=ALICE).json()
    assert [n["title"] for n in inbox["items"]] == ["Connection Accepted"]


def test_institution_connect_is_forbidden(client):
    res = client.get("/relationships/alice", headers=CLINIC)
    assert res.json()["status"] == "blocked_action"
    assert res.json()["button"]["label"] == "Institutions Cannot Send Requests"

    res = client.post("/relationships/alice/actions", json={"intent": "connect"}, headers=CLINIC)
    assert res.status_code == 403
    detail = res.json()["detail"]
    assert detail["ok"] is False
    assert detail["code"] == "FORBIDDEN"


def test_institution_follows(client):
    res = client.post("/relationships/alice/actions", json={"intent": "follow"}, headers=CLINIC)
    assert res.status_code == 200
    assert res.json()["status"] == "following"

    followers = client.get("/relationships/me/followers", headers=ALICE).json()
    assert [e["follower_id"] for e in followers["items"]] == ["clinic"]
    following = client.get("/relationships/me/following", headers=CLINIC).json()
    assert following["items"][0]["followee_type"] == "individual"


def test_error_codes(client):
    res = client.get("/relationships/alice", headers=ALICE)
    assert res.status_code == 400
    assert res.json()["detail"]["code"] == "INVALID_ARGUMENT"

    res = client.post("/relationships/bob/actions", json={"intent": "cancel"}, headers=ALICE)
    assert res.status_code == 409
    assert res.json()["detail"]["code"] == "STATE_CONFLICT"

    res = client.post("/relationships/bob/actions", json={"intent": "poke"}, headers=ALICE)
    assert res.status_code == 422


def test_notification_socket_receives_events(client):
    with client.websocket_connect("/ws/notifications?actor_id=bob") as ws:
        client.post("/relationships/bob/actions", json={"intent": "connect"}, headers=ALICE)
        message = ws.receive_json()

    assert message["type"] == "connection-request-sent"
    assert message["viewer_id"] == "alice"
    assert message["new_status"] == "pending_outgoing"


def test_notification_socket_requires_actor(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/notifications") as ws:
            ws.receive_text()


def test_mark_notification_read(client):
    client.post("/relationships/bob/actions", json={"intent": "connect"}, headers=ALICE)
    [item] = client.get("/relationships/me/notifications?unread_only=true", headers=BOB).json()["items"]

    res = client.post(f"/relationships/me/notifications/{item['id']}/read", headers=ALICE)
    assert res.status_code == 404
    assert res.json()["detail"]["ok"] is False

    res = client.post(f"/relationships/me/notifications/{item['id']}/read", headers=BOB)
    assert res.status_code == 200
    assert res.json() == {"id": item["id"], "read": True}

    unread = client.get("/relationships/me/notifications?unread_only=true", headers=BOB).json()
    assert unread["count"] == 0
    assert client.get("/relationships/me/notifications", headers=BOB).json()["count"] == 1


class UnreadableGuard(SingleFlight):
    async def is_held(self, key):
        raise GuardUnavailable("redis down")


def test_action_succeeds_when_button_refresh_fails(client):
    client.app.state.engine = build_engine(InMemoryRelationshipStore(), guard=UnreadableGuard())

    res = client.post("/relationships/bob/actions", json={"intent": "connect"}, headers=ALICE)

    assert res.status_code == 200
    assert res.json()["status"] == "pending_outgoing"
    assert res.json()["button"]["label"] == "Pending"


def test_second_tab_keeps_receiving_after_first_closes(client):
    first_tab = ExitStack()
    first_tab.enter_context(client.websocket_connect("/ws/notifications?actor_id=bob"))
    with client.websocket_connect("/ws/notifications?actor_id=bob") as second:
        first_tab.close()
        client.post("/relationships/bob/actions", json={"intent": "connect"}, headers=ALICE)
        message = second.receive_json()

    assert message["type"] == "connection-request-sent"
