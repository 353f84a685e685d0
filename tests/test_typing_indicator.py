"""Tests for typing state and its auto-clear timers."""
import asyncio

import pytest

from auth import Membership
from errors import NotFoundError
from events import EVENT_TYPING
from room_manager import RoomManager
from typing_indicator import TypingIndicator


@pytest.fixture
def membership(store):
    room_id = RoomManager(store).create()["roomId"]
    store.add_member(room_id, "token-a", 2)
    return Membership(room_id=room_id, token="token-a")


def typing_events(published):
    return [e["data"]["isTyping"] for e in published if e["event"] == EVENT_TYPING]


def test_active_users_filter_stale_entries(store, clock, membership):
    indicator = TypingIndicator(store, clock=clock)

    async def scenario():
        await indicator.set_typing(membership, True)
        indicator.cancel_room(membership.room_id)

    asyncio.run(scenario())
    assert indicator.list_active(membership.room_id) == ["token-a"]

    clock.advance(5.9)
    assert indicator.list_active(membership.room_id) == ["token-a"]
    clock.advance(0.2)
    assert indicator.list_active(membership.room_id) == []


def test_not_typing_is_never_active(store, clock, membership):
    indicator = TypingIndicator(store, clock=clock)
    asyncio.run(indicator.set_typing(membership, False))
    assert indicator.list_active(membership.room_id) == []
    assert store.get_typing(membership.room_id) == {"token-a": 0}


def test_typing_key_mirrors_room_ttl(store, redis_client, membership):
    indicator = TypingIndicator(store)
    asyncio.run(indicator.set_typing(membership, False))
    assert 0 < redis_client.ttl(f"typing:{membership.room_id}") <= redis_client.ttl(f"meta:{membership.room_id}")


def test_expired_room_leaves_no_typing_key(store, redis_client, membership, published):
    indicator = TypingIndicator(store)
    redis_client.delete(f"meta:{membership.room_id}")

    with pytest.raises(NotFoundError):
        asyncio.run(indicator.set_typing(membership, True))

    assert not redis_client.exists(f"typing:{membership.room_id}")
    assert indicator.pending(membership.room_id) == 0
    assert typing_events(published) == []


def test_auto_clear_fires_once(store, membership, published):
    indicator = TypingIndicator(store, auto_clear_seconds=0.05)

    async def scenario():
        await indicator.set_typing(membership, True)
        await asyncio.sleep(0.2)

    asyncio.run(scenario())
    assert store.get_typing(membership.room_id) == {"token-a": 0}
    assert typing_events(published) == [True, False]
    assert indicator.pending(membership.room_id) == 0


def test_new_update_replaces_pending_timer(store, membership, published):
    indicator = TypingIndicator(store, auto_clear_seconds=0.1)

    async def scenario():
        await indicator.set_typing(membership, True)
        await asyncio.sleep(0.05)
        await indicator.set_typing(membership, True)
        assert indicator.pending(membership.room_id) == 1
        await asyncio.sleep(0.3)

    asyncio.run(scenario())
    # One automatic clear for the latest burst, none for the superseded one
    assert typing_events(published) == [True, True, False]


def test_explicit_stop_cancels_timer(store, membership, published):
    indicator = TypingIndicator(store, auto_clear_seconds=0.05)

    async def scenario():
        await indicator.set_typing(membership, True)
        await indicator.set_typing(membership, False)
        assert indicator.pending(membership.room_id) == 0
        await asyncio.sleep(0.15)

    asyncio.run(scenario())
    assert typing_events(published) == [True, False]


def test_auto_clear_skips_newer_value_from_elsewhere(store, membership, published):
    indicator = TypingIndicator(store, auto_clear_seconds=0.05)

    async def scenario():
        await indicator.set_typing(membership, True)
        # Another instance records a newer keystroke for the same member
        store.set_typing(membership.room_id, membership.token, 42, 60)
        await asyncio.sleep(0.15)

    asyncio.run(scenario())
    assert store.get_typing(membership.room_id) == {"token-a": 42}
    assert typing_events(published) == [True]
