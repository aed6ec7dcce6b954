"""
Chat Endpoints

REST access to pitch conversations plus the real-time channel.

Connection URL: WS /api/v1/chat/ws?token=<jwt>  (or the auth cookie)

Message format (both directions):
{
    "type": "event_type",
    "data": { ... }
}
"""

import json
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.config import settings
from app.core.database import get_db, session_scope
from app.core.logging_config import logger
from app.core.security import decode_token
from app.core.types import is_valid_uuid
from app.models.chat import Conversation, MAX_MESSAGE_LENGTH
from app.models.pitch import Pitch
from app.models.subscription import PlanName
from app.models.user import User, UserRole
from app.modules.auth.dependencies import get_current_user
from app.schemas.chat import InitiateConversation, SendMessage
from app.services.chat_service import ChatService, parse_conversation_id
from app.services.chat_websocket import chat_manager, ChatEvent, ChatConnection


router = APIRouter()


async def _participant_conversation(service: ChatService, conversation_id: str, user: User) -> Conversation:
    normalised = parse_conversation_id(conversation_id)
    if normalised is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid conversation ID")
    conversation = await service.get_conversation(normalised)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if not conversation.has_participant(user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this conversation")
    return conversation


@router.get("/conversations")
async def list_conversations(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    conversations = await ChatService(db).list_for_user(current_user)
    return {"message": "Conversations retrieved successfully", "data": conversations}


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ChatService(db)
    conversation = await _participant_conversation(service, conversation_id, current_user)
    return {"message": "Conversation retrieved successfully", "data": await service.describe(conversation)}


@router.get("/conversations/{conversation_id}/messages")
async def get_messages(
    conversation_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ChatService(db)
    conversation = await _participant_conversation(service, conversation_id, current_user)

    messages, total = await service.get_messages(conversation.id, page, limit)
    await service.mark_read(conversation.id, current_user.id)
    await db.commit()

    total_pages = (total + limit - 1) // limit
    return {
        "message": "Messages retrieved successfully",
        "data": {
            "messages": [m.to_dict() for m in messages],
            "pagination": {
                "current_page": page,
                "total_pages": total_pages,
                "total_messages": total,
                "has_more": page < total_pages,
            },
        },
    }


@router.post("/conversations/initiate", status_code=status.HTTP_201_CREATED)
async def initiate_conversation(
    data: InitiateConversation,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Investor opens a thread about a published pitch"""
    if current_user.role != UserRole.INVESTOR.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only investors can initiate conversations")
    if current_user.subscription_plan != PlanName.INVESTOR_ACCESS.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Investor Access Plan required to contact entrepreneurs"
        )

    pitch = None
    if is_valid_uuid(data.pitch_id):
        pitch = (await db.execute(select(Pitch).where(Pitch.id == data.pitch_id))).scalar_one_or_none()
    if pitch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pitch not found")
    if not pitch.is_published:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Can only contact about published pitches")

    entrepreneur = (await db.execute(select(User).where(User.id == pitch.user_id))).scalar_one_or_none()
    if entrepreneur is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entrepreneur not found")

    service = ChatService(db)
    existing = await service.find_conversation(current_user.id, entrepreneur.id, pitch.id)
    if existing is not None:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"message": "Conversation already exists", "data": {"conversation_id": str(existing.id)}},
        )

    conversation = await service.create_conversation(current_user.id, entrepreneur.id, pitch.id)
    message = await service.add_message(conversation, current_user.id, data.message)
    await db.commit()

    logger.log_chat_event("initiated", conversation_id=str(conversation.id), user_id=str(current_user.id))
    return {
        "message": "Conversation initiated successfully",
        "data": {
            "conversation": await service.describe(conversation),
            "initial_message": message.to_dict(),
        },
    }


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: str,
    data: SendMessage,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ChatService(db)
    conversation = await _participant_conversation(service, conversation_id, current_user)
    message = await service.add_message(conversation, current_user.id, data.content, data.message_type)
    await db.commit()

    payload = message.to_dict()
    await chat_manager.notify_new_message(str(conversation.id), payload)
    return {"message": "Message sent successfully", "data": payload}


@router.patch("/conversations/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ChatService(db)
    conversation = await _participant_conversation(service, conversation_id, current_user)
    updated = await service.mark_read(conversation.id, current_user.id)
    await db.commit()

    await chat_manager.notify_messages_read(str(conversation.id), str(current_user.id))
    return {"message": "Messages marked as read", "data": {"updated_count": updated}}


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ChatService(db)
    conversation = await _participant_conversation(service, conversation_id, current_user)
    conversation_key = str(conversation.id)
    deleted = await service.delete_conversation(conversation)
    await db.commit()

    await chat_manager.notify_conversation_deleted(conversation_key, str(current_user.id))
    return {
        "message": "Conversation deleted successfully",
        "data": {"deleted_messages_count": deleted, "conversation_id": conversation_key},
    }


@router.get("/unread-count")
async def unread_count(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"unread_count": await ChatService(db).unread_count(current_user.id)}


# ==================== WebSocket ====================

async def get_user_from_token(token: Optional[str], db: AsyncSession) -> Optional[User]:
    """Validate an access token and return the active user, or None"""
    if not token:
        return None
    try:
        payload = decode_token(token)
    except HTTPException:
        return None
    user_id = payload.get("sub")
    if payload.get("type") != "access" or not user_id or not is_valid_uuid(user_id):
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return user if user and user.is_active else None


async def _handle_event(connection: ChatConnection, user: User, event_type: str, data: dict) -> None:
    user_id = str(user.id)
    conversation_id = parse_conversation_id(data.get("conversation_id"))

    if event_type == "ping":
        await chat_manager.send_to_connection(connection, ChatEvent.PONG, {})
        return

    if event_type in ("join_conversation", "leave_conversation", "send_message", "mark_as_read",
                      "typing_start", "typing_stop") and conversation_id is None:
        await chat_manager.send_to_connection(connection, ChatEvent.ERROR, {"message": "Invalid conversation ID"})
        return

    if event_type == "leave_conversation":
        await chat_manager.leave(conversation_id, user_id)

    elif event_type in ("typing_start", "typing_stop"):
        await chat_manager.notify_typing(
            conversation_id, user_id, user.full_name, is_typing=event_type == "typing_start"
        )

    elif event_type in ("join_conversation", "send_message", "mark_as_read"):
        async with session_scope() as db:
            service = ChatService(db)
            conversation = await service.get_conversation(conversation_id)
            if conversation is None or not conversation.has_participant(user_id):
                await chat_manager.send_to_connection(
                    connection, ChatEvent.ERROR, {"message": "Access denied to this conversation"}
                )
                return

            if event_type == "join_conversation":
                await chat_manager.join(conversation_id, user_id)
                await chat_manager.send_to_connection(
                    connection, ChatEvent.CONVERSATION_JOINED, {"conversation_id": conversation_id}
                )

            elif event_type == "send_message":
                content = (data.get("content") or "").strip()
                if not content:
                    await chat_manager.send_to_connection(
                        connection, ChatEvent.ERROR, {"message": "Message content cannot be empty"}
                    )
                    return
                if len(content) > MAX_MESSAGE_LENGTH:
                    await chat_manager.send_to_connection(
                        connection, ChatEvent.ERROR,
                        {"message": f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters"}
                    )
                    return
                message = await service.add_message(conversation, user_id, content, data.get("message_type") or "text")
                await db.commit()
                await chat_manager.join(conversation_id, user_id)
                await chat_manager.notify_new_message(conversation_id, message.to_dict())

            else:
                await service.mark_read(conversation_id, user_id)
                await db.commit()
                await chat_manager.notify_messages_read(conversation_id, user_id)

    else:
        logger.debug(f"[Chat] Unknown WebSocket event type: {event_type}")


@router.websocket("/ws")
async def chat_websocket(websocket: WebSocket, token: Optional[str] = Query(None)):
    """
    Client events: join_conversation, leave_conversation, send_message,
    mark_as_read, typing_start, typing_stop, ping.

    Server events: user_online, user_offline, conversation_joined, new_message,
    conversation_updated, messages_read, user_typing, user_stopped_typing,
    conversation_deleted, pong, error.
    """
    token = token or websocket.cookies.get(settings.AUTH_COOKIE_NAME)
    async with session_scope() as db:
        user = await get_user_from_token(token, db)
    if user is None:
        await websocket.close(code=4001, reason="Invalid or expired token")
        return

    connection = await chat_manager.connect(websocket, str(user.id), user.full_name or user.email)
    try:
        while True:
            try:
                raw = await websocket.receive_text()
                message = json.loads(raw)
            except json.JSONDecodeError:
                await chat_manager.send_to_connection(
                    connection, ChatEvent.ERROR, {"message": "Invalid JSON message"}
                )
                continue
            if not isinstance(message, dict):
                continue
            await _handle_event(connection, user, message.get("type", ""), message.get("data") or {})

    except WebSocketDisconnect:
        logger.info(f"[Chat] WebSocket disconnected for user {user.id}")
    except Exception as e:
        logger.error(f"[Chat] WebSocket error: {e}", exc_info=True)
    finally:
        await chat_manager.disconnect(connection)
