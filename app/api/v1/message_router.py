"""Message search, filtering and soft-delete API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_message_service, require_role
from app.models.message import SenderType
from app.schemas.message_schema import MessageListResponse, MessageResponse
from app.schemas.response_schema import (
    ERROR_RESPONSES,
    ApiResponse,
    success_response,
)
from app.services.message_service import MessageService

router = APIRouter(
    prefix="/api/v1/messages",
    tags=["messages"],
    dependencies=[Depends(require_role("user", "admin"))],
    responses=ERROR_RESPONSES,
)

MessageServiceDep = Annotated[MessageService, Depends(get_message_service)]


@router.get("/search", response_model=ApiResponse[MessageListResponse])
async def search_messages(
    service: MessageServiceDep,
    q: str = Query(..., min_length=1, max_length=200),
    cursor: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict:
    """Search the current user's messages by content."""
    result = await service.search(q, limit=limit, cursor=cursor)
    return success_response(result)


@router.get("/sender/{sender_type}", response_model=ApiResponse[MessageListResponse])
async def list_messages_by_sender(
    sender_type: SenderType,
    service: MessageServiceDep,
    cursor: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict:
    """List the current user's messages from one sender kind."""
    result = await service.list_by_sender(sender_type, limit=limit, cursor=cursor)
    return success_response(result)


@router.delete("/{message_id}", response_model=ApiResponse[None])
async def delete_message(message_id: int, service: MessageServiceDep) -> dict:
    """Soft-delete a message."""
    await service.soft_delete(message_id)
    return success_response(None, message="Message deleted")


@router.post("/{message_id}/restore", response_model=ApiResponse[MessageResponse])
async def restore_message(message_id: int, service: MessageServiceDep) -> dict:
    """Restore a soft-deleted message."""
    message = await service.restore(message_id)
    return success_response(message, message="Message restored")
