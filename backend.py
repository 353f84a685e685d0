import functools
import json
from typing import Callable, Dict, List, Optional

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD
from errors import NotFoundError, StoreUnavailableError
from redis_keys import (
    REDIS_META_KEY,
    REDIS_MESSAGES_KEY,
    REDIS_TYPING_KEY,
    REDIS_REACTIONS_KEY,
    REDIS_ROOM_CHANNEL,
    REDIS_RATELIMIT_KEY,
)
from logging_config import get_logger

logger = get_logger(__name__)

# Outcomes of RedisBackend.add_member
JOIN_ADMITTED = "admitted"
JOIN_ALREADY_MEMBER = "already_member"
JOIN_FULL = "full"
JOIN_NO_ROOM = "no_room"

_INT_META_FIELDS = ("createdAt", "ttlSeconds")


def create_redis_client() -> redis.Redis:
    try:
        client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
        # Test connection
        client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise


def store_errors(func):
    """Translate redis connectivity errors into StoreUnavailableError so callers fail closed."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except redis.RedisError as e:
            logger.error(f"Redis error in {func.__name__}: {e}", exc_info=True)
            raise StoreUnavailableError("Shared store unavailable") from e

    return wrapper


class RedisBackend:
    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis_client = client if client is not None else create_redis_client()
        logger.info("Initializing RedisBackend")

    # ---- room metadata -------------------------------------------------

    @store_errors
    def create_room(self, room_id: str, room_data: dict, ttl: int):
        logger.info(f"Creating room {room_id} with TTL {ttl} seconds")
        key = REDIS_META_KEY.format(slug=room_id)
        # Convert dict values to strings for Redis hash, skip None values
        room_data_str = {}
        for k, v in room_data.items():
            if v is None:
                continue
            if isinstance(v, (dict, list)):
                room_data_str[k] = json.dumps(v)
            else:
                room_data_str[k] = str(v)
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.hset(key, mapping=room_data_str)
        pipe.expire(key, ttl)
        pipe.execute()
        logger.debug(f"Room {room_id} created successfully with key: {key}")
        return room_id

    @store_errors
    def get_room(self, room_id: str) -> Optional[dict]:
        logger.debug(f"Fetching room {room_id}")
        key = REDIS_META_KEY.format(slug=room_id)
        room_data = self.redis_client.hgetall(key)
        if not room_data:
            logger.debug(f"Room {room_id} not found in Redis")
            return None
        result = dict(room_data)
        result["connected"] = json.loads(room_data.get("connected") or "[]")
        for field in _INT_META_FIELDS:
            if field in result:
                result[field] = int(result[field])
        return result

    @store_errors
    def room_exists(self, room_id: str) -> bool:
        return bool(self.redis_client.exists(REDIS_META_KEY.format(slug=room_id)))

    @store_errors
    def get_room_ttl(self, room_id: str) -> int:
        """Remaining room lifetime in seconds, 0 when the room is gone."""
        ttl = self.redis_client.ttl(REDIS_META_KEY.format(slug=room_id))
        return ttl if ttl > 0 else 0

    @store_errors
    def delete_room(self, room_id: str):
        logger.info(f"Deleting room {room_id}")
        keys = [
            REDIS_META_KEY.format(slug=room_id),
            REDIS_MESSAGES_KEY.format(slug=room_id),
            REDIS_TYPING_KEY.format(slug=room_id),
            REDIS_REACTIONS_KEY.format(slug=room_id),
            REDIS_RATELIMIT_KEY.format(scope="room", identifier=room_id),
        ]
        deleted = self.redis_client.delete(*keys)
        logger.debug(f"Room {room_id} deleted: {deleted} keys removed")
        return deleted

    # ---- membership ------------------------------------------------------

    @store_errors
    def get_members(self, room_id: str) -> List[str]:
        raw = self.redis_client.hget(REDIS_META_KEY.format(slug=room_id), "connected")
        return json.loads(raw) if raw else []

    @store_errors
    def is_member(self, room_id: str, token: str) -> bool:
        raw = self.redis_client.hget(REDIS_META_KEY.format(slug=room_id), "connected")
        return bool(raw) and token in json.loads(raw)

    @store_errors
    def add_member(self, room_id: str, token: str, max_members: int) -> str:
        """Append token to the room's connected list unless the room is full.

        Runs as a WATCH/MULTI transaction on the meta key, so two concurrent
        joiners can never both observe a free slot and both take it.
        """
        key = REDIS_META_KEY.format(slug=room_id)

        def _join(pipe):
            raw = pipe.hget(key, "connected")
            if raw is None:
                return JOIN_NO_ROOM
            connected = json.loads(raw)
            if token in connected:
                return JOIN_ALREADY_MEMBER
            if len(connected) >= max_members:
                return JOIN_FULL
            pipe.multi()
            pipe.hset(key, "connected", json.dumps(connected + [token]))
            return JOIN_ADMITTED

        outcome = self.redis_client.transaction(_join, key, value_from_callable=True)
        logger.debug(f"Join attempt for room {room_id}: {outcome}")
        return outcome

    # ---- messages --------------------------------------------------------

    @store_errors
    def push_message(self, room_id: str, message: dict, ttl: int):
        key = REDIS_MESSAGES_KEY.format(slug=room_id)
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.rpush(key, json.dumps(message))
        pipe.expire(key, ttl)
        pipe.execute()
        logger.debug(f"Appended message {message.get('id')} to room {room_id}")

    @store_errors
    def get_messages(self, room_id: str) -> List[dict]:
        raw = self.redis_client.lrange(REDIS_MESSAGES_KEY.format(slug=room_id), 0, -1)
        return [json.loads(item) for item in raw]

    @store_errors
    def update_message(self, room_id: str, message_id: str, mutate: Callable):
        """Locate a message by id and apply mutate(message) atomically.

        mutate returns (updated_message_or_None, result). A None message means
        nothing is written. mutate may run more than once if another writer
        touches the list concurrently, so it must not have side effects.
        """
        key = REDIS_MESSAGES_KEY.format(slug=room_id)

        def _update(pipe):
            raw = pipe.lrange(key, 0, -1)
            for index, item in enumerate(raw):
                message = json.loads(item)
                if message.get("id") == message_id:
                    break
            else:
                raise NotFoundError("Message not found")
            updated, result = mutate(message)
            pipe.multi()
            if updated is not None:
                pipe.lset(key, index, json.dumps(updated))
            return result

        return self.redis_client.transaction(_update, key, value_from_callable=True)

    # ---- typing ----------------------------------------------------------

    @store_errors
    def set_typing(self, room_id: str, token: str, value: int, ttl: int):
        key = REDIS_TYPING_KEY.format(slug=room_id)
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.hset(key, token, value)
        if ttl > 0:
            pipe.expire(key, ttl)
        pipe.execute()

    @store_errors
    def clear_typing_if(self, room_id: str, token: str, expected: int) -> bool:
        """Reset token's typing value to 0 only if it still equals expected."""
        key = REDIS_TYPING_KEY.format(slug=room_id)

        def _clear(pipe):
            current = pipe.hget(key, token)
            if current is None or int(current) != expected:
                return False
            pipe.multi()
            pipe.hset(key, token, 0)
            return True

        return self.redis_client.transaction(_clear, key, value_from_callable=True)

    @store_errors
    def get_typing(self, room_id: str) -> Dict[str, int]:
        data = self.redis_client.hgetall(REDIS_TYPING_KEY.format(slug=room_id))
        return {token: int(value) for token, value in data.items()}

    # ---- pub/sub ---------------------------------------------------------

    def get_room_channel_name(self, room_id: str) -> str:
        """Get the Redis pub/sub channel name for a room."""
        return REDIS_ROOM_CHANNEL.format(slug=room_id)

    @store_errors
    def publish_message(self, room_id: str, message: dict):
        """Publish a message to the room's Redis pub/sub channel."""
        channel = self.get_room_channel_name(room_id)
        message_json = json.dumps(message)
        subscribers = self.redis_client.publish(channel, message_json)
        logger.debug(f"Published message to room {room_id} channel {channel}, {subscribers} subscribers")
        return subscribers

    @store_errors
    def subscribe_to_room(self, room_id: str):
        """Create a pubsub subscriber for a room channel."""
        channel = self.get_room_channel_name(room_id)
        logger.debug(f"Subscribing to Redis channel {channel} for room {room_id}")
        pubsub = self.redis_client.pubsub()
        pubsub.subscribe(channel)
        logger.debug(f"Successfully subscribed to channel {channel}")
        return pubsub


_backend: Optional[RedisBackend] = None


def get_backend() -> RedisBackend:
    global _backend
    if _backend is None:
        _backend = RedisBackend()
    return _backend
