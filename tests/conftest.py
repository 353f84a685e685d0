"""
Pytest fixtures shared across all test modules.
Redis is replaced by a fakeredis server per test, so no real Redis is needed.
"""

import json
import os

# Set env vars BEFORE any app module is imported
os.environ["COOKIE_SECURE"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import fakeredis
import pytest
from fastapi.testclient import TestClient

import backend  # noqa: E402
from backend import RedisBackend  # noqa: E402
from app import app  # noqa: E402
from auth import auth_cookie_name  # noqa: E402
from constants import AUTH_HEADER_NAME  # noqa: E402


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture()
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
def store(redis_client, monkeypatch):
    """RedisBackend on a fresh fake server, installed as the app's backend."""
    redis_backend = RedisBackend(redis_client)
    monkeypatch.setattr(backend, "_backend", redis_backend)
    return redis_backend


@pytest.fixture()
def published(store, monkeypatch):
    """Records every event published through the backend."""
    events = []
    original = store.publish_message

    def record(room_id, message):
        events.append(json.loads(json.dumps(message)))
        return original(room_id, message)

    monkeypatch.setattr(store, "publish_message", record)
    return events


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def make_client(store):
    """Factory for independent visitors, each with its own cookie jar."""
    clients = []

    def _make():
        c = TestClient(app)
        c.__enter__()
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.__exit__(None, None, None)


@pytest.fixture()
def client(make_client):
    return make_client()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def create_room(client: TestClient, **body):
    resp = client.post("/api/room/create", json=body)
    assert resp.status_code == 200, f"Room creation failed: {resp.json()}"
    return resp.json()


def join_room(client: TestClient, room_id: str) -> str:
    """Navigate to the room through the gateway and return the issued token."""
    resp = client.get(f"/room/{room_id}", follow_redirects=False)
    assert resp.status_code == 200, f"Join failed: {resp.status_code} {resp.headers.get('location')}"
    cookie_name = auth_cookie_name(room_id)
    token = resp.cookies.get(cookie_name) or client.cookies.get(cookie_name)
    assert token
    return token


def auth_headers(token: str) -> dict:
    return {AUTH_HEADER_NAME: token}
