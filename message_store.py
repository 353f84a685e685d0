import time
import uuid
from typing import Callable, List, Optional

from auth import Membership
from backend import RedisBackend
from constants import (
    DELETED_MESSAGE_TEXT,
    EMOJI_MAX_LENGTH,
    MESSAGE_EDIT_WINDOW_MS,
    SENDER_MAX_LENGTH,
    TEXT_MAX_LENGTH,
)
from errors import ForbiddenError, InputValidationError, NotFoundError, RateLimitedError
from events import (
    publish_event,
    EVENT_MESSAGE,
    EVENT_MESSAGE_EDITED,
    EVENT_MESSAGE_DELETED,
    EVENT_REACTION,
    EVENT_READ_RECEIPT,
)
from rate_limiter import RateLimiter
from schemas.events import (
    MessageEvent,
    MessageEditedEvent,
    MessageDeletedEvent,
    ReactionEvent,
    ReadReceiptEvent,
)
from schemas.messages import ListedMessage, MessageOut
from logging_config import get_logger

logger = get_logger(__name__)


def sanitize(message: dict) -> dict:
    """Drop server-only fields before a message leaves the server."""
    return {k: v for k, v in message.items() if k != "token"}


class MessageStore:
    """Append/edit/delete/react/read over a room's ordered message list.

    Every read-modify-write runs as one optimistic transaction in the backend
    and the matching event is published only after it commits.
    """

    def __init__(self, backend: RedisBackend, rate_limiter: RateLimiter,
                 clock: Callable[[], float] = time.time):
        self.backend = backend
        self.rate_limiter = rate_limiter
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _check_author(self, message: dict, membership: Membership, now: int, verb: str):
        # Only the author may change a message, and only within the edit window
        if now - message["timestamp"] >= MESSAGE_EDIT_WINDOW_MS:
            raise ForbiddenError(f"Message can no longer be changed ({verb} window expired)")
        if message.get("token") != membership.token:
            raise ForbiddenError(f"You can only {verb} your own messages")

    def append(self, membership: Membership, sender: str, text: str, encrypted: Optional[bool] = False) -> str:
        if len(sender) > SENDER_MAX_LENGTH:
            raise InputValidationError(f"sender must be at most {SENDER_MAX_LENGTH} characters")
        if len(text) > TEXT_MAX_LENGTH:
            raise InputValidationError(f"text must be at most {TEXT_MAX_LENGTH} characters")

        room_id = membership.room_id
        remaining = self.backend.get_room_ttl(room_id)
        if remaining <= 0:
            raise NotFoundError("Room not found")

        limit = self.rate_limiter.check_user(membership.token)
        if not limit.allowed:
            raise RateLimitedError(
                "Rate limit exceeded. Please wait before sending more messages.", reset_at=limit.reset_at
            )

        message = {
            "id": uuid.uuid4().hex,
            "sender": sender,
            "text": text,
            "timestamp": self._now_ms(),
            "roomId": room_id,
            "encrypted": bool(encrypted),
            "reactions": {},
            "readBy": [membership.token],
            "edited": False,
            "editedAt": None,
            "deleted": False,
            "token": membership.token,
        }
        self.backend.push_message(room_id, message, ttl=remaining)
        publish_event(self.backend, room_id, EVENT_MESSAGE, MessageEvent(**sanitize(message)))
        logger.info(f"Message {message['id']} appended to room {room_id}")
        return message["id"]

    def edit(self, membership: Membership, message_id: str, new_text: str) -> int:
        if len(new_text) > TEXT_MAX_LENGTH:
            raise InputValidationError(f"text must be at most {TEXT_MAX_LENGTH} characters")
        now = self._now_ms()

        def _edit(message):
            self._check_author(message, membership, now, "edit")
            if message.get("deleted"):
                raise ForbiddenError("Deleted messages cannot be edited")
            return dict(message, text=new_text, edited=True, editedAt=now), now

        edited_at = self.backend.update_message(membership.room_id, message_id, _edit)
        publish_event(
            self.backend,
            membership.room_id,
            EVENT_MESSAGE_EDITED,
            MessageEditedEvent(messageId=message_id, text=new_text, editedAt=edited_at),
        )
        logger.info(f"Message {message_id} edited in room {membership.room_id}")
        return edited_at

    def delete(self, membership: Membership, message_id: str) -> bool:
        now = self._now_ms()

        def _delete(message):
            self._check_author(message, membership, now, "delete")
            if message.get("deleted"):
                return None, False
            return dict(message, deleted=True, text=DELETED_MESSAGE_TEXT), True

        deleted = self.backend.update_message(membership.room_id, message_id, _delete)
        if deleted:
            publish_event(
                self.backend, membership.room_id, EVENT_MESSAGE_DELETED, MessageDeletedEvent(messageId=message_id)
            )
            logger.info(f"Message {message_id} deleted in room {membership.room_id}")
        return deleted

    def toggle_reaction(self, membership: Membership, message_id: str, emoji: str) -> bool:
        """Add the caller's reaction, or remove it if already present. Returns True when added."""
        if not emoji or len(emoji) > EMOJI_MAX_LENGTH:
            raise InputValidationError(f"emoji must be 1-{EMOJI_MAX_LENGTH} characters")

        def _toggle(message):
            reactions = {k: list(v) for k, v in (message.get("reactions") or {}).items()}
            users = reactions.get(emoji, [])
            if membership.token in users:
                users.remove(membership.token)
                added = False
            else:
                users.append(membership.token)
                added = True
            if users:
                reactions[emoji] = users
            else:
                reactions.pop(emoji, None)
            return dict(message, reactions=reactions), added

        added = self.backend.update_message(membership.room_id, message_id, _toggle)
        publish_event(
            self.backend,
            membership.room_id,
            EVENT_REACTION,
            ReactionEvent(messageId=message_id, emoji=emoji, user=membership.token, added=added),
        )
        return added

    def mark_read(self, membership: Membership, message_id: str) -> bool:
        """Idempotent; returns True only on the first read by this token."""

        def _mark(message):
            read_by = list(message.get("readBy") or [])
            if membership.token in read_by:
                return None, False
            return dict(message, readBy=read_by + [membership.token]), True

        newly_read = self.backend.update_message(membership.room_id, message_id, _mark)
        if newly_read:
            publish_event(
                self.backend,
                membership.room_id,
                EVENT_READ_RECEIPT,
                ReadReceiptEvent(messageId=message_id, user=membership.token),
            )
        return newly_read

    def get(self, membership: Membership, message_id: str) -> MessageOut:
        for message in self.backend.get_messages(membership.room_id):
            if message.get("id") == message_id:
                return MessageOut(**sanitize(message))
        raise NotFoundError("Message not found")

    def list(self, membership: Membership) -> List[ListedMessage]:
        return [
            ListedMessage(**sanitize(message), isOwn=message.get("token") == membership.token)
            for message in self.backend.get_messages(membership.room_id)
        ]
