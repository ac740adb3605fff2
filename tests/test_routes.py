"""HTTP and websocket tests against in-memory repositories."""

import pytest
from fastapi.testclient import TestClient

from conftest import at
from taskchat.config import get_settings
from taskchat.main import app
from taskchat.utils.dependencies import get_store


@pytest.fixture
def client(people, fast_settings):
    people.chats.add("viewer", "peter", chat_id="c1", created_at=at(0))
    people.messages.add("c1", "peter", "viewer", "hello", at(1))
    people.messages.add("c1", "viewer", "peter", "hi", at(2), read=True)
    app.dependency_overrides[get_store] = lambda: people
    app.dependency_overrides[get_settings] = lambda: fast_settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user_id):
    return {"X-User-Id": user_id}


class TestConversationRoutes:

    def test_requires_user_identity(self, client):
        response = client.get("/conversations")
        assert response.status_code == 401

    def test_list_conversations(self, client):
        response = client.get("/conversations", headers=as_user("viewer"))

        assert response.status_code == 200
        [item] = response.json()["items"]
        assert item["id"] == "c1"
        assert item["participant_name"] == "Peter"
        assert item["last_message"] == "hi"
        assert item["unread_count"] == 1

    def test_list_conversations_search(self, client):
        assert client.get("/conversations", params={"q": "pet"}, headers=as_user("viewer")).json()["items"]
        assert client.get("/conversations", params={"q": "zed"}, headers=as_user("viewer")).json()["items"] == []

    def test_start_conversation_is_idempotent(self, client):
        first = client.post("/conversations", json={"participant_id": "quinn"}, headers=as_user("viewer"))
        second = client.post("/conversations", json={"participant_id": "quinn"}, headers=as_user("viewer"))

        assert first.status_code == 200
        assert first.json()["participant_name"] == "Quinn"
        assert first.json()["id"] == second.json()["id"]

    def test_start_conversation_rejects_self_and_unknown(self, client):
        assert client.post("/conversations", json={"participant_id": "viewer"}, headers=as_user("viewer")).status_code == 400
        assert client.post("/conversations", json={"participant_id": "ghost"}, headers=as_user("viewer")).status_code == 404

    def test_feed_is_ordered_and_hidden_from_outsiders(self, client):
        response = client.get("/conversations/c1/messages", headers=as_user("peter"))

        assert [m["content"] for m in response.json()["items"]] == ["hello", "hi"]
        assert response.json()["items"][1]["sender_name"] == "Vera"
        assert client.get("/conversations/c1/messages", headers=as_user("rosa")).status_code == 404

    def test_send_message(self, client, people):
        response = client.post("/conversations/c1/messages", json={"content": "done"}, headers=as_user("viewer"))

        assert response.status_code == 200
        body = response.json()
        assert body["sent"] is True
        assert body["message"]["receiver_id"] == "peter"
        assert people.messages.inserted[-1]["content"] == "done"

    def test_send_empty_message_is_not_stored(self, client, people):
        response = client.post("/conversations/c1/messages", json={"content": "  "}, headers=as_user("viewer"))

        assert response.json() == {"sent": False, "message": None}
        assert people.messages.inserted == []

    def test_send_rejects_unsupported_attachment(self, client):
        attachment = {"name": "x.exe", "type": "application/x-msdownload", "size": 1, "url": "u"}
        response = client.post("/conversations/c1/messages", json={"attachment": attachment}, headers=as_user("viewer"))

        assert response.status_code == 400

    def test_mark_read(self, client, people):
        assert client.post("/conversations/c1/read", headers=as_user("viewer")).json() == {"updated": 1}
        assert client.post("/conversations/c1/read", headers=as_user("viewer")).json() == {"updated": 0}
        assert people.messages.unread_for("c1", "viewer") == 0

    def test_store_failure_maps_to_503(self, client, people):
        people.chats.fail = True

        response = client.get("/conversations", headers=as_user("viewer"))

        assert response.status_code == 503


def receive_until(ws, predicate, limit=30):
    for _ in range(limit):
        frame = ws.receive_json()
        if predicate(frame):
            return frame
    raise AssertionError("expected frame not received")


class TestChatSocket:

    def test_snapshot_then_send_round_trip(self, client):
        with client.websocket_connect("/messages/ws/chat?user_id=viewer") as ws:
            frame = receive_until(ws, lambda f: f["type"] == "snapshot" and f["messages"])
            assert frame["active_chat_id"] == "c1"
            assert [m["content"] for m in frame["messages"]] == ["hello", "hi"]

            ws.send_json({"type": "send", "content": "see you at 5"})
            frame = receive_until(
                ws,
                lambda f: f["type"] == "snapshot" and any(m["content"] == "see you at 5" for m in f["messages"]),
            )
            assert frame["conversations"][0]["id"] == "c1"

    def test_unknown_frame_gets_error(self, client):
        with client.websocket_connect("/messages/ws/chat?user_id=viewer") as ws:
            ws.send_json({"type": "dance"})
            frame = receive_until(ws, lambda f: f["type"] == "error")
            assert frame["title"] == "Invalid frame"

    def test_select_unknown_chat_gets_error(self, client):
        with client.websocket_connect("/messages/ws/chat?user_id=viewer") as ws:
            ws.send_json({"type": "select", "chat_id": "nope"})
            frame = receive_until(ws, lambda f: f["type"] == "error")
            assert frame["description"] == "Chat not found"
