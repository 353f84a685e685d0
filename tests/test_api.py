"""End-to-end tests for the room, message and typing HTTP APIs."""
import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from constants import DELETED_MESSAGE_TEXT
from conftest import auth_headers, create_room, join_room


@pytest.fixture
def pair(make_client):
    """A room with two admitted members: (room_id, (client_a, token_a), (client_b, token_b))."""
    a, b = make_client(), make_client()
    room_id = create_room(a, ttlSeconds=300)["roomId"]
    return room_id, (a, join_room(a, room_id)), (b, join_room(b, room_id))


def test_end_to_end_scenario(pair):
    room_id, (a, token_a), (b, token_b) = pair

    resp = a.post(f"/api/messages?roomId={room_id}", json={"sender": "A", "text": "hello"})
    assert resp.status_code == 200
    message_id = resp.json()["messageId"]

    listed = b.get(f"/api/messages?roomId={room_id}").json()["messages"]
    assert len(listed) == 1
    assert listed[0]["isOwn"] is False
    assert "token" not in listed[0]
    original = listed[0]

    resp = a.delete(f"/api/messages/{message_id}?roomId={room_id}")
    assert resp.json() == {"success": True}

    after = a.get(f"/api/messages?roomId={room_id}").json()["messages"][0]
    assert after["isOwn"] is True
    assert after["deleted"] is True
    assert after["text"] == DELETED_MESSAGE_TEXT
    assert after["id"] == original["id"]
    assert after["timestamp"] == original["timestamp"]


class TestRoomAPI:

    def test_create_validation(self, client):
        assert client.post("/api/room/create", json={"ttlSeconds": 10}).status_code == 422
        assert client.post("/api/room/create", json={"ttlSeconds": 90000}).status_code == 422
        assert client.post("/api/room/create", json={"password": "abc"}).status_code == 422

    def test_create_with_encryption_returns_key(self, client):
        body = create_room(client, enableEncryption=True)
        assert len(body["encryptionKey"]) == 64

    def test_create_without_encryption_omits_key(self, client):
        assert "encryptionKey" not in create_room(client)

    def test_verify_password_unknown_room(self, client):
        resp = client.post("/api/room/verify-password", json={"roomId": "nope", "password": "x"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "not-found"

    def test_verify_password_answers_any_guess(self, client):
        room_id = create_room(client, password="ñandú" * 10)["roomId"]
        resp = client.post("/api/room/verify-password", json={"roomId": room_id, "password": "x" * 100})
        assert resp.status_code == 200
        assert resp.json() == {"valid": False}

        resp = client.post("/api/room/verify-password", json={"roomId": room_id, "password": "ñandú" * 10})
        assert resp.json() == {"valid": True}

    def test_ttl_requires_membership(self, pair, make_client):
        room_id, (a, _), _ = pair
        assert 0 < a.get(f"/api/room/ttl?roomId={room_id}").json()["ttl"] <= 300
        outsider = make_client()
        assert outsider.get(f"/api/room/ttl?roomId={room_id}").status_code == 401
        assert outsider.get(
            f"/api/room/ttl?roomId={room_id}", headers=auth_headers("forged")
        ).status_code == 403

    def test_destroy_cascades_and_is_idempotent(self, pair, store, published):
        room_id, (a, _), (b, _) = pair
        a.post(f"/api/messages?roomId={room_id}", json={"sender": "A", "text": "bye"})

        assert a.delete(f"/api/room?roomId={room_id}").status_code == 204
        assert store.room_exists(room_id) is False
        assert store.get_messages(room_id) == []
        assert [e["event"] for e in published][-1] == "chat.destroy"

        assert b.delete(f"/api/room?roomId={room_id}").status_code == 204
        assert b.get(f"/api/messages?roomId={room_id}").status_code == 404


class TestMessageAPI:

    def test_send_validation(self, pair):
        room_id, (a, _), _ = pair
        resp = a.post(f"/api/messages?roomId={room_id}", json={"sender": "A", "text": "x" * 1001})
        assert resp.status_code == 422
        resp = a.post(f"/api/messages?roomId={room_id}", json={"sender": "A" * 101, "text": "hi"})
        assert resp.status_code == 422

    def test_edit_own_message(self, pair):
        room_id, (a, _), (b, _) = pair
        message_id = a.post(f"/api/messages?roomId={room_id}", json={"sender": "A", "text": "helo"}).json()["messageId"]

        assert b.put(f"/api/messages/{message_id}?roomId={room_id}", json={"text": "nope"}).status_code == 403
        assert a.put(f"/api/messages/{message_id}?roomId={room_id}", json={"text": "hello"}).status_code == 200

        msg = b.get(f"/api/messages/{message_id}?roomId={room_id}").json()
        assert msg["text"] == "hello"
        assert msg["edited"] is True

    def test_missing_message_is_404(self, pair):
        room_id, (a, _), _ = pair
        assert a.put(f"/api/messages/nope?roomId={room_id}", json={"text": "x"}).status_code == 404
        assert a.post(f"/api/messages/nope/read?roomId={room_id}").status_code == 404

    def test_reactions_and_read_receipts(self, pair, published):
        room_id, (a, token_a), (b, token_b) = pair
        message_id = a.post(f"/api/messages?roomId={room_id}", json={"sender": "A", "text": "hi"}).json()["messageId"]

        assert b.post(f"/api/messages/{message_id}/reactions?roomId={room_id}", json={"emoji": "🎉"}).json() == {
            "success": True,
            "added": True,
        }
        b.post(f"/api/messages/{message_id}/read?roomId={room_id}")
        b.post(f"/api/messages/{message_id}/read?roomId={room_id}")

        msg = a.get(f"/api/messages/{message_id}?roomId={room_id}").json()
        assert msg["reactions"] == {"🎉": [token_b]}
        assert msg["readBy"] == [token_a, token_b]
        assert [e["event"] for e in published].count("chat.readReceipt") == 1

    def test_rate_limited_send_reports_reset(self, pair, monkeypatch):
        import rate_limiter
        monkeypatch.setattr(rate_limiter, "RATE_LIMIT_USER_MAX", 1)
        room_id, (a, _), _ = pair
        assert a.post(f"/api/messages?roomId={room_id}", json={"sender": "A", "text": "1"}).status_code == 200
        resp = a.post(f"/api/messages?roomId={room_id}", json={"sender": "A", "text": "2"})
        assert resp.status_code == 429
        assert resp.json()["resetAt"] > 0
        assert "retry-after" in resp.headers


class TestTypingAPI:

    def test_typing_round_trip(self, pair):
        room_id, (a, token_a), (b, _) = pair
        assert a.post(f"/api/typing?roomId={room_id}", json={"isTyping": True}).json() == {"success": True}
        assert b.get(f"/api/typing?roomId={room_id}").json() == {"activeUsers": [token_a]}

        a.post(f"/api/typing?roomId={room_id}", json={"isTyping": False})
        assert b.get(f"/api/typing?roomId={room_id}").json() == {"activeUsers": []}


class TestRealtime:

    def test_non_member_is_rejected(self, pair, make_client):
        room_id, _, _ = pair
        outsider = make_client()
        with pytest.raises(WebSocketDisconnect):
            with outsider.websocket_connect(f"/api/realtime?roomId={room_id}") as ws:
                ws.receive_text()

    def test_member_can_ping(self, pair):
        room_id, (a, _), _ = pair
        with a.websocket_connect(f"/api/realtime?roomId={room_id}") as ws:
            ws.send_text("ping")
            assert ws.receive_json() == {"event": "pong", "roomId": room_id}

    def test_stale_listener_keeps_newer_listener_registered(self, store):
        import app as app_module

        async def scenario():
            newer = asyncio.create_task(asyncio.sleep(10))
            app_module.room_pubsub_tasks["room-x"] = newer
            try:
                # No local sockets, so the stale listener exits straight away
                await app_module.listen_to_redis_channel("room-x")
                assert app_module.room_pubsub_tasks.get("room-x") is newer
            finally:
                newer.cancel()
                app_module.room_pubsub_tasks.pop("room-x", None)

        asyncio.run(scenario())

    def test_finished_listener_unregisters_itself(self, store):
        import app as app_module

        async def scenario():
            task = asyncio.create_task(app_module.listen_to_redis_channel("room-y"))
            app_module.room_pubsub_tasks["room-y"] = task
            await task
            assert "room-y" not in app_module.room_pubsub_tasks

        asyncio.run(scenario())
