"""Chat lifecycle and chat message API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from app.core.config import settings
from app.core.rate_limit import limiter
from app.dependencies import get_chat_service, get_message_service, require_role
from app.schemas.chat_schema import ChatHistoryResponse, ChatListResponse, ChatResponse
from app.schemas.message_schema import SendMessageRequest, SendMessageResponse
from app.schemas.response_schema import (
    ERROR_RESPONSES,
    ApiResponse,
    success_response,
)
from app.services.chat_service import ChatService
from app.services.message_service import MessageService

router = APIRouter(
    prefix="/api/v1/chats",
    tags=["chats"],
    dependencies=[Depends(require_role("user", "admin"))],
    responses=ERROR_RESPONSES,
)

ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]
MessageServiceDep = Annotated[MessageService, Depends(get_message_service)]


@router.post(
    "",
    response_model=ApiResponse[ChatResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_chat(service: ChatServiceDep) -> dict:
    """Open a new chat for the current user."""
    chat = await service.create()
    return success_response(chat, status=201, message="Chat created")


@router.get("", response_model=ApiResponse[ChatListResponse])
async def list_chats(
    service: ChatServiceDep,
    cursor: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict:
    """List the current user's chats, most recently active first."""
    result = await service.list_chats(limit=limit, cursor=cursor)
    return success_response(result)


@router.get("/{chat_id}", response_model=ApiResponse[ChatResponse])
async def get_chat(chat_id: int, service: ChatServiceDep) -> dict:
    """Get a single chat."""
    return success_response(await service.get(chat_id))


@router.get("/{chat_id}/messages", response_model=ApiResponse[ChatHistoryResponse])
async def get_chat_messages(
    chat_id: int,
    service: ChatServiceDep,
    cursor: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
) -> dict:
    """Page through a chat's history; each page is ordered oldest first."""
    result = await service.history(chat_id, limit=limit, cursor=cursor)
    return success_response(result)


@router.post(
    "/{chat_id}/messages",
    response_model=ApiResponse[SendMessageResponse],
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(settings.chat.send_rate_limit)
async def send_message(
    request: Request,
    chat_id: int,
    body: SendMessageRequest,
    service: MessageServiceDep,
) -> dict:
    """Store a user message and schedule the bot reply.

    The reply is not part of this response; it is pushed over the chat's
    notification channel once generated.
    """
    result = await service.send(chat_id, body.content)
    return success_response(result, status=202, message="Message accepted")


@router.post("/{chat_id}/close", response_model=ApiResponse[ChatResponse])
async def close_chat(chat_id: int, service: ChatServiceDep) -> dict:
    """Close a chat; it stays readable but accepts no new messages."""
    chat = await service.close(chat_id)
    return success_response(chat, message="Chat closed")


@router.delete("/{chat_id}", response_model=ApiResponse[None])
async def delete_chat(chat_id: int, service: ChatServiceDep) -> dict:
    """Delete a chat together with all of its messages."""
    await service.delete(chat_id)
    return success_response(None, message="Chat deleted")
