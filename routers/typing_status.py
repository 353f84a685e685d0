from fastapi import APIRouter, Depends

from auth import Membership, require_membership
from routers.deps import get_typing_indicator
from schemas.messages import SuccessResponse
from schemas.typing_status import SetTypingRequest, TypingStatusResponse
from typing_indicator import TypingIndicator

typing_router = APIRouter(prefix="/api/typing", tags=["typing"])


@typing_router.post("", response_model=SuccessResponse)
async def set_typing(
    body: SetTypingRequest,
    membership: Membership = Depends(require_membership),
    typing_indicator: TypingIndicator = Depends(get_typing_indicator),
):
    await typing_indicator.set_typing(membership, body.isTyping)
    return SuccessResponse()


@typing_router.get("", response_model=TypingStatusResponse)
async def get_typing(
    membership: Membership = Depends(require_membership),
    typing_indicator: TypingIndicator = Depends(get_typing_indicator),
):
    return TypingStatusResponse(activeUsers=typing_indicator.list_active(membership.room_id))
