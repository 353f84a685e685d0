from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from constants import SENDER_MAX_LENGTH, TEXT_MAX_LENGTH, EMOJI_MAX_LENGTH


class SendMessageRequest(BaseModel):
    sender: str = Field(..., max_length=SENDER_MAX_LENGTH)
    text: str = Field(..., max_length=TEXT_MAX_LENGTH)
    encrypted: Optional[bool] = False

class SendMessageResponse(BaseModel):
    success: bool = True
    messageId: str

class EditMessageRequest(BaseModel):
    text: str = Field(..., max_length=TEXT_MAX_LENGTH)

class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=EMOJI_MAX_LENGTH)

class ReactionResponse(BaseModel):
    success: bool = True
    added: bool

class SuccessResponse(BaseModel):
    success: bool = True

class MessageOut(BaseModel):
    """A message as clients see it: the author's token is never included."""
    id: str
    sender: str
    text: str
    timestamp: int
    roomId: str
    encrypted: bool = False
    reactions: Dict[str, List[str]] = {}
    readBy: List[str] = []
    edited: bool = False
    editedAt: Optional[int] = None
    deleted: bool = False

class ListedMessage(MessageOut):
    isOwn: bool

class MessageListResponse(BaseModel):
    messages: List[ListedMessage]
