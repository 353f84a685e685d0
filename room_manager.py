import base64
import hashlib
import secrets
import time
import uuid
from typing import Callable, Optional

import bcrypt

from backend import RedisBackend
from constants import (
    DEFAULT_ROOM_TTL_SECONDS,
    MIN_ROOM_TTL_SECONDS,
    MAX_ROOM_TTL_SECONDS,
    PASSWORD_MIN_LENGTH,
    PASSWORD_MAX_LENGTH,
)
from errors import InputValidationError, NotFoundError
from events import publish_event, EVENT_DESTROY
from schemas.events import DestroyEvent
from logging_config import get_logger

logger = get_logger(__name__)


def _prehash(password: str) -> bytes:
    # bcrypt only accepts 72 bytes; a fixed-length digest keeps every character significant
    return base64.b64encode(hashlib.sha256(password.encode()).digest())


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_prehash(password), bcrypt.gensalt()).decode()


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_prehash(password), password_hash.encode())


def generate_room_key() -> tuple:
    """Return (key, commitment). Only the 16-char commitment is ever stored."""
    key = secrets.token_hex(32)
    commitment = hashlib.sha256(key.encode()).hexdigest()[:16]
    return key, commitment


class RoomManager:
    """Room lifecycle: nonexistent -> active -> expired | destroyed.

    Expiry is driven entirely by the TTL on the meta key; a missing meta key
    is the terminal state.
    """

    def __init__(self, backend: RedisBackend, clock: Callable[[], float] = time.time):
        self.backend = backend
        self.clock = clock

    def create(self, ttl_seconds: Optional[int] = None, password: Optional[str] = None,
               enable_encryption: bool = False) -> dict:
        ttl_seconds = ttl_seconds or DEFAULT_ROOM_TTL_SECONDS
        if not MIN_ROOM_TTL_SECONDS <= ttl_seconds <= MAX_ROOM_TTL_SECONDS:
            raise InputValidationError(
                f"ttlSeconds must be between {MIN_ROOM_TTL_SECONDS} and {MAX_ROOM_TTL_SECONDS}"
            )
        if password is not None and not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
            raise InputValidationError(
                f"password must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters"
            )

        room_id = uuid.uuid4().hex
        meta = {
            "connected": [],
            "createdAt": int(self.clock() * 1000),
            "ttlSeconds": ttl_seconds,
            "passwordHash": hash_password(password) if password else None,
        }
        encryption_key = None
        if enable_encryption:
            encryption_key, meta["encryptionKeyHash"] = generate_room_key()

        self.backend.create_room(room_id, meta, ttl=ttl_seconds)
        logger.info(
            f"Room {room_id} created: ttl={ttl_seconds}s, password={bool(password)}, encrypted={enable_encryption}"
        )

        result = {"roomId": room_id}
        if encryption_key:
            result["encryptionKey"] = encryption_key
        return result

    def get_meta(self, room_id: str) -> Optional[dict]:
        return self.backend.get_room(room_id)

    def exists(self, room_id: str) -> bool:
        return self.backend.room_exists(room_id)

    def verify_password(self, room_id: str, password: str) -> bool:
        meta = self.backend.get_room(room_id)
        if not meta:
            raise NotFoundError("Room not found")
        password_hash = meta.get("passwordHash")
        if not password_hash:
            return True
        valid = check_password(password, password_hash)
        if not valid:
            logger.warning(f"Invalid password attempt for room {room_id}")
        return valid

    def get_ttl(self, room_id: str) -> int:
        return self.backend.get_room_ttl(room_id)

    def get_room_info(self, room_id: str) -> dict:
        meta = self.backend.get_room(room_id)
        if not meta:
            raise NotFoundError("Room not found")
        return {
            "roomId": room_id,
            "ttl": self.backend.get_room_ttl(room_id),
            "createdAt": meta.get("createdAt"),
            "participants": len(meta["connected"]),
            "passwordProtected": bool(meta.get("passwordHash")),
            "encrypted": bool(meta.get("encryptionKeyHash")),
            "encryptionKeyHash": meta.get("encryptionKeyHash"),
        }

    def destroy(self, room_id: str) -> bool:
        """Tell live clients to leave, then drop every key the room owns.

        Destroying a room that is already gone is a no-op.
        """
        if not self.backend.room_exists(room_id):
            logger.debug(f"Destroy requested for missing room {room_id}, nothing to do")
            return False
        publish_event(self.backend, room_id, EVENT_DESTROY, DestroyEvent())
        self.backend.delete_room(room_id)
        logger.info(f"Room {room_id} destroyed")
        return True
