import asyncio
import time
from typing import Callable, Dict, List, Tuple

from auth import Membership
from backend import RedisBackend
from constants import TYPING_AUTO_CLEAR_SECONDS, TYPING_STALE_MS
from errors import NotFoundError
from events import publish_event, EVENT_TYPING
from schemas.events import TypingEvent
from logging_config import get_logger

logger = get_logger(__name__)


class TypingIndicator:
    """Per-room typing state with one auto-clear timer per (room, token).

    A new update always cancels the pending timer for the same member, so a
    stale "stopped typing" can never overwrite a newer "typing" update.
    """

    def __init__(self, backend: RedisBackend, clock: Callable[[], float] = time.time,
                 auto_clear_seconds: float = TYPING_AUTO_CLEAR_SECONDS):
        self.backend = backend
        self.clock = clock
        self.auto_clear_seconds = auto_clear_seconds
        # Format: {(room_id, token): task}
        self._timers: Dict[Tuple[str, str], asyncio.Task] = {}

    async def set_typing(self, membership: Membership, is_typing: bool) -> int:
        key = (membership.room_id, membership.token)
        self._cancel(key)

        ttl = self.backend.get_room_ttl(membership.room_id)
        if ttl <= 0:
            raise NotFoundError("Room not found")

        value = int(self.clock() * 1000) if is_typing else 0
        self.backend.set_typing(membership.room_id, membership.token, value, ttl)
        publish_event(
            self.backend, membership.room_id, EVENT_TYPING, TypingEvent(user=membership.token, isTyping=is_typing)
        )

        if is_typing:
            self._timers[key] = asyncio.create_task(self._auto_clear(membership, value))
        return value

    async def _auto_clear(self, membership: Membership, typed_at: int):
        key = (membership.room_id, membership.token)
        try:
            await asyncio.sleep(self.auto_clear_seconds)
            # Another instance may have written a newer value meanwhile
            if self.backend.clear_typing_if(membership.room_id, membership.token, typed_at):
                publish_event(
                    self.backend,
                    membership.room_id,
                    EVENT_TYPING,
                    TypingEvent(user=membership.token, isTyping=False),
                )
                logger.debug(f"Auto-cleared typing for {membership.token[:8]} in room {membership.room_id}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error auto-clearing typing state in room {membership.room_id}: {e}", exc_info=True)
        finally:
            if self._timers.get(key) is asyncio.current_task():
                del self._timers[key]

    def _cancel(self, key: Tuple[str, str]):
        task = self._timers.pop(key, None)
        if task and not task.done():
            task.cancel()

    def cancel_room(self, room_id: str):
        for key in [k for k in self._timers if k[0] == room_id]:
            self._cancel(key)

    def pending(self, room_id: str) -> int:
        return sum(1 for k in self._timers if k[0] == room_id)

    def list_active(self, room_id: str) -> List[str]:
        now = int(self.clock() * 1000)
        return [
            token
            for token, typed_at in self.backend.get_typing(room_id).items()
            if typed_at > 0 and now - typed_at < TYPING_STALE_MS
        ]
