from fastapi import APIRouter, Depends

from auth import Membership, require_membership
from message_store import MessageStore
from routers.deps import get_message_store
from schemas.messages import (
    SendMessageRequest,
    SendMessageResponse,
    EditMessageRequest,
    ReactionRequest,
    ReactionResponse,
    SuccessResponse,
    MessageOut,
    MessageListResponse,
)
from logging_config import get_logger

logger = get_logger(__name__)

messages_router = APIRouter(prefix="/api/messages", tags=["messages"])


@messages_router.post("", response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    membership: Membership = Depends(require_membership),
    store: MessageStore = Depends(get_message_store),
):
    message_id = store.append(membership, body.sender, body.text, body.encrypted)
    return SendMessageResponse(messageId=message_id)


@messages_router.get("", response_model=MessageListResponse)
async def list_messages(
    membership: Membership = Depends(require_membership),
    store: MessageStore = Depends(get_message_store),
):
    return MessageListResponse(messages=store.list(membership))


@messages_router.get("/{message_id}", response_model=MessageOut)
async def get_message(
    message_id: str,
    membership: Membership = Depends(require_membership),
    store: MessageStore = Depends(get_message_store),
):
    return store.get(membership, message_id)


@messages_router.put("/{message_id}", response_model=SuccessResponse)
async def edit_message(
    message_id: str,
    body: EditMessageRequest,
    membership: Membership = Depends(require_membership),
    store: MessageStore = Depends(get_message_store),
):
    store.edit(membership, message_id, body.text)
    return SuccessResponse()


@messages_router.delete("/{message_id}", response_model=SuccessResponse)
async def delete_message(
    message_id: str,
    membership: Membership = Depends(require_membership),
    store: MessageStore = Depends(get_message_store),
):
    store.delete(membership, message_id)
    return SuccessResponse()


@messages_router.post("/{message_id}/reactions", response_model=ReactionResponse)
async def toggle_reaction(
    message_id: str,
    body: ReactionRequest,
    membership: Membership = Depends(require_membership),
    store: MessageStore = Depends(get_message_store),
):
    added = store.toggle_reaction(membership, message_id, body.emoji)
    return ReactionResponse(added=added)


@messages_router.post("/{message_id}/read", response_model=SuccessResponse)
async def mark_read(
    message_id: str,
    membership: Membership = Depends(require_membership),
    store: MessageStore = Depends(get_message_store),
):
    store.mark_read(membership, message_id)
    return SuccessResponse()
