from dataclasses import dataclass
from typing import Optional

from fastapi import Query, Request
from starlette.requests import HTTPConnection

from backend import get_backend
from constants import AUTH_COOKIE_NAME, AUTH_HEADER_NAME
from errors import ForbiddenError, InvalidCredentialError, NotFoundError
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Membership:
    """A validated (room, token) pair. The token is both identity and authorization."""
    room_id: str
    token: str


def auth_cookie_name(room_id: str) -> str:
    # One membership cookie per room, so joining another room keeps this one
    return f"{AUTH_COOKIE_NAME}-{room_id}"


def extract_token(conn: HTTPConnection, room_id: str) -> Optional[str]:
    return conn.cookies.get(auth_cookie_name(room_id)) or conn.headers.get(AUTH_HEADER_NAME)


def validate_membership(room_id: str, token: Optional[str]) -> Membership:
    """Re-check membership against the store; never trust a cookie on its own."""
    if not token:
        raise InvalidCredentialError("Missing membership token")
    backend = get_backend()
    if not backend.room_exists(room_id):
        raise NotFoundError("Room not found")
    if not backend.is_member(room_id, token):
        logger.warning(f"Token is not a member of room {room_id}")
        raise ForbiddenError("Not a member of this room")
    return Membership(room_id=room_id, token=token)


async def require_membership(request: Request, roomId: str = Query(...)) -> Membership:
    return validate_membership(roomId, extract_token(request, roomId))


async def optional_membership(request: Request, roomId: str = Query(...)) -> Optional[Membership]:
    """Like require_membership, but a room that no longer exists yields None."""
    try:
        return validate_membership(roomId, extract_token(request, roomId))
    except NotFoundError:
        return None
