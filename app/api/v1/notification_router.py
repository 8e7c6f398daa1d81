"""Real-time chat notifications over WebSocket."""

import asyncio

import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import AppException, AuthorizationError
from app.core.security import decode_access_token
from app.dependencies import get_notification_channel, get_session_factory
from app.repositories.chat_repo import ChatRepository
from app.services.notification_service import Subscription

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/ws", tags=["notifications"])

CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4404
POLL_INTERVAL_SECONDS = 1.0


@router.websocket("/chats/{chat_id}")
async def chat_events(
    websocket: WebSocket,
    chat_id: int,
    token: str = Query(default=""),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> None:
    """Stream ``bot_response`` and ``bot_error`` events for one chat.

    Browsers cannot set headers on a WebSocket handshake, so the access
    token travels in the ``token`` query parameter.
    """
    await websocket.accept()
    try:
        principal = decode_access_token(token)
    except AppException as exc:
        await websocket.close(code=CLOSE_UNAUTHENTICATED, reason=exc.code)
        return

    channel = get_notification_channel()
    try:
        async with session_factory() as session:
            subscription = await channel.subscribe(
                principal_id=principal.user_id,
                user_id=principal.user_id,
                chat_id=chat_id,
                chat_repo=ChatRepository(session),
            )
    except AuthorizationError as exc:
        await websocket.close(code=CLOSE_FORBIDDEN, reason=exc.code)
        return

    async with subscription:
        await _forward(websocket, subscription)


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        while not disconnected.done():
            event = await subscription.get(timeout=POLL_INTERVAL_SECONDS)
            if event is not None:
                await websocket.send_text(event.model_dump_json())
    except WebSocketDisconnect:
        pass
    finally:
        disconnected.cancel()
        logger.info("Channel listener disconnected", channel=subscription.channel)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return
