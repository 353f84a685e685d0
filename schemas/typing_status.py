from pydantic import BaseModel
from typing import List


class SetTypingRequest(BaseModel):
    isTyping: bool

class TypingStatusResponse(BaseModel):
    activeUsers: List[str]
