from typing import Optional

from backend import get_backend
from message_store import MessageStore
from rate_limiter import RateLimiter
from room_manager import RoomManager
from typing_indicator import TypingIndicator

# Typing timers live in-process, so the indicator is shared across requests
_typing_indicator: Optional[TypingIndicator] = None


def get_rate_limiter() -> RateLimiter:
    return RateLimiter(get_backend().redis_client)


def get_room_manager() -> RoomManager:
    return RoomManager(get_backend())


def get_message_store() -> MessageStore:
    return MessageStore(get_backend(), get_rate_limiter())


def get_typing_indicator() -> TypingIndicator:
    global _typing_indicator
    backend = get_backend()
    if _typing_indicator is None or _typing_indicator.backend is not backend:
        _typing_indicator = TypingIndicator(backend)
    return _typing_indicator
