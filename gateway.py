import hmac
import re
import uuid
from typing import Optional
from urllib.parse import quote, unquote, urlencode

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse

from backend import get_backend, JOIN_ADMITTED, JOIN_ALREADY_MEMBER, JOIN_FULL
from constants import (
    COOKIE_SECURE,
    MAX_ROOM_MEMBERS,
    PASSWORD_COOKIE_NAME,
    PASSWORD_HEADER_NAME,
)
from errors import StoreUnavailableError
from rate_limiter import RateLimiter
from auth import auth_cookie_name, extract_token
from logging_config import get_logger

logger = get_logger(__name__)

ROOM_PATH = re.compile(r"^/room/([^/]+)$")

ERROR_ROOM_NOT_FOUND = "room-not-found"
ERROR_ROOM_FULL = "room-full"
ERROR_PASSWORD_REQUIRED = "password-required"
ERROR_RATE_LIMITED = "rate-limited"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def redirect_to(request: Request, error: Optional[str] = None, **params) -> RedirectResponse:
    query = {}
    if error:
        query["error"] = error
    query.update({k: v for k, v in params.items() if v is not None})
    url = str(request.base_url)
    if query:
        url = f"{url}?{urlencode(query)}"
    return RedirectResponse(url)


def encode_password_credential(password_hash: str) -> str:
    # bcrypt hashes contain "/" and "$", which are not cookie-safe
    return quote(password_hash, safe="")


def password_cookie_name(room_id: str) -> str:
    return f"{PASSWORD_COOKIE_NAME}-{room_id}"


def password_acknowledged(request: Request, room_id: str, password_hash: str) -> bool:
    credential = request.cookies.get(password_cookie_name(room_id)) or request.headers.get(PASSWORD_HEADER_NAME)
    return bool(credential) and hmac.compare_digest(unquote(credential), password_hash)


class RoomGatewayMiddleware(BaseHTTPMiddleware):
    """Admission control for navigation to /room/{roomId}.

    Either lets the request through (minting a membership cookie for new
    visitors) or redirects to the landing page with an error code. API calls
    are not handled here; they carry the token issued by this gateway.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path != "/room" and not path.startswith("/room/"):
            return await call_next(request)

        try:
            return await self._admit(request, call_next)
        except StoreUnavailableError as e:
            logger.error(f"Gateway rejected {path}: store unavailable")
            return JSONResponse(status_code=e.status_code, content=e.to_dict())

    async def _admit(self, request: Request, call_next):
        backend = get_backend()
        ip = client_ip(request)

        limit = RateLimiter(backend.redis_client).check_ip(ip)
        if not limit.allowed:
            return redirect_to(request, ERROR_RATE_LIMITED, resetAt=int(limit.reset_at))

        match = ROOM_PATH.match(request.url.path)
        if not match:
            return redirect_to(request)
        room_id = match.group(1)

        meta = backend.get_room(room_id)
        if not meta:
            logger.info(f"Gateway: room {room_id} not found ({ip})")
            return redirect_to(request, ERROR_ROOM_NOT_FOUND)

        password_hash = meta.get("passwordHash")
        if password_hash and not password_acknowledged(request, room_id, password_hash):
            logger.info(f"Gateway: password required for room {room_id} ({ip})")
            return redirect_to(request, ERROR_PASSWORD_REQUIRED, roomId=room_id)

        existing_token = extract_token(request, room_id)
        if existing_token and existing_token in meta["connected"]:
            return await call_next(request)

        if len(meta["connected"]) >= MAX_ROOM_MEMBERS:
            logger.info(f"Gateway: room {room_id} is full ({ip})")
            return redirect_to(request, ERROR_ROOM_FULL)

        token = uuid.uuid4().hex
        outcome = backend.add_member(room_id, token, MAX_ROOM_MEMBERS)
        if outcome == JOIN_FULL:
            logger.info(f"Gateway: room {room_id} filled up concurrently ({ip})")
            return redirect_to(request, ERROR_ROOM_FULL)
        if outcome not in (JOIN_ADMITTED, JOIN_ALREADY_MEMBER):
            return redirect_to(request, ERROR_ROOM_NOT_FOUND)

        logger.info(f"Gateway: admitted new member to room {room_id} ({ip})")
        response = await call_next(request)
        response.set_cookie(
            auth_cookie_name(room_id),
            token,
            path="/",
            httponly=True,
            secure=COOKIE_SECURE,
            samesite="strict",
        )
        return response
