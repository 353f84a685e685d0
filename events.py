"""Room event fan-out contract.

Every room has one pub/sub channel. Events are published as
``{"event": "chat.<kind>", "roomId": ..., "data": {...}}`` only after the
store write that caused them has committed. Delivery is best-effort and
at-least-once; clients reconcile by polling the message list.
"""
from pydantic import BaseModel

from backend import RedisBackend
from schemas.events import EventEnvelope
from logging_config import get_logger

logger = get_logger(__name__)

EVENT_MESSAGE = "chat.message"
EVENT_DESTROY = "chat.destroy"
EVENT_MESSAGE_EDITED = "chat.messageEdited"
EVENT_MESSAGE_DELETED = "chat.messageDeleted"
EVENT_REACTION = "chat.reaction"
EVENT_READ_RECEIPT = "chat.readReceipt"
EVENT_TYPING = "chat.typing"

EVENT_KINDS = (
    EVENT_MESSAGE,
    EVENT_DESTROY,
    EVENT_MESSAGE_EDITED,
    EVENT_MESSAGE_DELETED,
    EVENT_REACTION,
    EVENT_READ_RECEIPT,
    EVENT_TYPING,
)


def publish_event(backend: RedisBackend, room_id: str, event: str, payload: BaseModel) -> int:
    if event not in EVENT_KINDS:
        raise ValueError(f"Unknown event kind: {event}")
    envelope = EventEnvelope(event=event, roomId=room_id, data=payload.model_dump())
    subscribers = backend.publish_message(room_id, envelope.model_dump())
    logger.debug(f"Published {event} to room {room_id} ({subscribers} subscribers)")
    return subscribers
