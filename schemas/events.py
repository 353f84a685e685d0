from pydantic import BaseModel
from typing import Literal

from schemas.messages import MessageOut


class MessageEvent(MessageOut):
    pass

class DestroyEvent(BaseModel):
    isDestroyed: Literal[True] = True

class MessageEditedEvent(BaseModel):
    messageId: str
    text: str
    editedAt: int

class MessageDeletedEvent(BaseModel):
    messageId: str

class ReactionEvent(BaseModel):
    messageId: str
    emoji: str
    user: str
    added: bool

class ReadReceiptEvent(BaseModel):
    messageId: str
    user: str

class TypingEvent(BaseModel):
    user: str
    isTyping: bool

class EventEnvelope(BaseModel):
    event: str
    roomId: str
    data: dict
