from pydantic import BaseModel, Field
from typing import Optional

from constants import (
    MIN_ROOM_TTL_SECONDS,
    MAX_ROOM_TTL_SECONDS,
    PASSWORD_MIN_LENGTH,
    PASSWORD_MAX_LENGTH,
)


class CreateRoomRequest(BaseModel):
    ttlSeconds: Optional[int] = Field(None, ge=MIN_ROOM_TTL_SECONDS, le=MAX_ROOM_TTL_SECONDS)
    password: Optional[str] = Field(None, min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    enableEncryption: Optional[bool] = False

class CreateRoomResponse(BaseModel):
    roomId: str
    encryptionKey: Optional[str] = None

class VerifyPasswordRequest(BaseModel):
    roomId: str
    password: str

class VerifyPasswordResponse(BaseModel):
    valid: bool

class RoomTTLResponse(BaseModel):
    ttl: int

class RoomInfoResponse(BaseModel):
    roomId: str
    ttl: int
    createdAt: Optional[int]
    participants: int
    passwordProtected: bool
    encrypted: bool
    encryptionKeyHash: Optional[str] = None
