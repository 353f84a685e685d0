from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from auth import Membership, require_membership, optional_membership
from constants import COOKIE_SECURE
from errors import RateLimitedError
from gateway import client_ip, encode_password_credential, password_cookie_name
from rate_limiter import RateLimiter
from room_manager import RoomManager
from routers.deps import get_rate_limiter, get_room_manager, get_typing_indicator
from schemas.rooms import (
    CreateRoomRequest,
    CreateRoomResponse,
    VerifyPasswordRequest,
    VerifyPasswordResponse,
    RoomTTLResponse,
)
from typing_indicator import TypingIndicator
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api/room", tags=["rooms"])


@rooms_router.post("/create", response_model=CreateRoomResponse, response_model_exclude_none=True)
async def create_room(
    room: CreateRoomRequest,
    request: Request,
    room_manager: RoomManager = Depends(get_room_manager),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    # { "ttlSeconds": 600, "password": "optional", "enableEncryption": false }
    # Response: { "roomId": "...", "encryptionKey": "only-when-encrypted" }
    ip = client_ip(request)
    logger.info(f"Room creation request from {ip}, ttl: {room.ttlSeconds}, encrypted: {room.enableEncryption}")

    limit = rate_limiter.check_ip(ip)
    if not limit.allowed:
        raise RateLimitedError("Too many requests", reset_at=limit.reset_at)

    result = room_manager.create(
        ttl_seconds=room.ttlSeconds,
        password=room.password,
        enable_encryption=bool(room.enableEncryption),
    )
    return CreateRoomResponse(**result)


@rooms_router.post("/verify-password", response_model=VerifyPasswordResponse)
async def verify_password(
    body: VerifyPasswordRequest,
    response: Response,
    room_manager: RoomManager = Depends(get_room_manager),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    # Password guesses count against the room's action budget
    limit = rate_limiter.check_room(body.roomId)
    if not limit.allowed:
        raise RateLimitedError("Too many password attempts", reset_at=limit.reset_at)

    valid = room_manager.verify_password(body.roomId, body.password)
    if valid:
        meta = room_manager.get_meta(body.roomId)
        password_hash = meta.get("passwordHash") if meta else None
        if password_hash:
            # Acknowledgement credential checked by the room gateway
            response.set_cookie(
                password_cookie_name(body.roomId),
                encode_password_credential(password_hash),
                path="/",
                httponly=True,
                secure=COOKIE_SECURE,
                samesite="strict",
            )
    return VerifyPasswordResponse(valid=valid)


@rooms_router.get("/ttl", response_model=RoomTTLResponse)
async def get_ttl(
    membership: Membership = Depends(require_membership),
    room_manager: RoomManager = Depends(get_room_manager),
):
    return RoomTTLResponse(ttl=room_manager.get_ttl(membership.room_id))


@rooms_router.delete("", status_code=204)
async def destroy_room(
    membership: Optional[Membership] = Depends(optional_membership),
    room_manager: RoomManager = Depends(get_room_manager),
    typing_indicator: TypingIndicator = Depends(get_typing_indicator),
):
    # Destroying a room that is already gone is a no-op
    if membership is None:
        return Response(status_code=204)
    typing_indicator.cancel_room(membership.room_id)
    room_manager.destroy(membership.room_id)
    return Response(status_code=204)
