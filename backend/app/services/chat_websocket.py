"""
Chat WebSocket Manager

Real-time delivery for pitch conversations:
- User presence (online/offline)
- Conversation rooms (join/leave)
- New message, read receipt and typing notifications

One process holds all connections; a user may have several open tabs.
"""

import asyncio
from typing import Dict, List, Set, Optional, Any
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from fastapi import WebSocket

from app.core.logging_config import logger


class ChatEvent(str, Enum):
    """WebSocket event types"""
    # Presence
    USER_ONLINE = "user_online"
    USER_OFFLINE = "user_offline"

    # Rooms
    CONVERSATION_JOINED = "conversation_joined"
    CONVERSATION_UPDATED = "conversation_updated"
    CONVERSATION_DELETED = "conversation_deleted"

    # Messages
    NEW_MESSAGE = "new_message"
    MESSAGES_READ = "messages_read"
    USER_TYPING = "user_typing"
    USER_STOPPED_TYPING = "user_stopped_typing"

    # System
    ERROR = "error"
    PONG = "pong"


@dataclass
class ChatConnection:
    """A single socket of a user"""
    websocket: WebSocket
    user_id: str
    user_name: str
    connected_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: datetime = field(default_factory=datetime.utcnow)


class ChatConnectionManager:
    """
    Tracks sockets per user and members per conversation room.

    Rooms hold user ids, so every socket of a joined user receives room events.
    """

    def __init__(self):
        # user_id -> open sockets
        self._connections: Dict[str, List[ChatConnection]] = {}
        # conversation_id -> user ids
        self._rooms: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: str, user_name: str) -> ChatConnection:
        await websocket.accept()
        connection = ChatConnection(websocket=websocket, user_id=user_id, user_name=user_name)

        async with self._lock:
            first_socket = user_id not in self._connections
            self._connections.setdefault(user_id, []).append(connection)

        logger.log_chat_event("connected", user_id=user_id)
        if first_socket:
            await self.broadcast(
                ChatEvent.USER_ONLINE,
                {"user_id": user_id, "timestamp": datetime.utcnow().isoformat()},
                exclude_user=user_id,
            )
        return connection

    async def disconnect(self, connection: ChatConnection):
        user_id = connection.user_id
        async with self._lock:
            sockets = self._connections.get(user_id, [])
            if connection not in sockets:
                return
            sockets.remove(connection)
            went_offline = not sockets
            if went_offline:
                self._connections.pop(user_id, None)
                for members in self._rooms.values():
                    members.discard(user_id)
                for room_id in [r for r, m in self._rooms.items() if not m]:
                    del self._rooms[room_id]

        logger.log_chat_event("disconnected", user_id=user_id)
        if went_offline:
            await self.broadcast(
                ChatEvent.USER_OFFLINE,
                {"user_id": user_id, "timestamp": datetime.utcnow().isoformat()},
            )

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connections

    def online_users(self) -> List[str]:
        return list(self._connections.keys())

    def room_members(self, conversation_id: str) -> Set[str]:
        return set(self._rooms.get(conversation_id, set()))

    async def join(self, conversation_id: str, user_id: str):
        async with self._lock:
            self._rooms.setdefault(conversation_id, set()).add(user_id)
        logger.log_chat_event("joined", conversation_id=conversation_id, user_id=user_id)

    async def leave(self, conversation_id: str, user_id: str):
        async with self._lock:
            members = self._rooms.get(conversation_id)
            if members is not None:
                members.discard(user_id)
                if not members:
                    del self._rooms[conversation_id]

    @staticmethod
    def _envelope(event: ChatEvent, data: Dict[str, Any]) -> Dict[str, Any]:
        return {"type": event.value, "data": data, "timestamp": datetime.utcnow().isoformat()}

    async def _send(self, connection: ChatConnection, message: Dict[str, Any]) -> bool:
        try:
            await connection.websocket.send_json(message)
            connection.last_activity = datetime.utcnow()
            return True
        except Exception as e:
            logger.error(f"[Chat] Error sending to user {connection.user_id}: {e}")
            return False

    async def _deliver(self, user_ids, message: Dict[str, Any]):
        dead: List[ChatConnection] = []
        for user_id in list(user_ids):
            for connection in list(self._connections.get(user_id, [])):
                if not await self._send(connection, message):
                    dead.append(connection)
        for connection in dead:
            await self.disconnect(connection)

    async def send_to_user(self, user_id: str, event: ChatEvent, data: Dict[str, Any]):
        await self._deliver([user_id], self._envelope(event, data))

    async def send_to_connection(self, connection: ChatConnection, event: ChatEvent, data: Dict[str, Any]):
        await self._send(connection, self._envelope(event, data))

    async def broadcast_to_conversation(
        self,
        conversation_id: str,
        event: ChatEvent,
        data: Dict[str, Any],
        exclude_user: Optional[str] = None
    ):
        members = self.room_members(conversation_id)
        if exclude_user:
            members.discard(exclude_user)
        if members:
            await self._deliver(members, self._envelope(event, data))

    async def broadcast(self, event: ChatEvent, data: Dict[str, Any], exclude_user: Optional[str] = None):
        """Presence events go to every connected user"""
        targets = [uid for uid in self._connections if uid != exclude_user]
        if targets:
            await self._deliver(targets, self._envelope(event, data))

    # ==================== Event helpers ====================

    async def notify_new_message(self, conversation_id: str, message: Dict[str, Any]):
        await self.broadcast_to_conversation(conversation_id, ChatEvent.NEW_MESSAGE, {"message": message})
        await self.broadcast_to_conversation(
            conversation_id,
            ChatEvent.CONVERSATION_UPDATED,
            {
                "conversation_id": conversation_id,
                "last_message": message,
                "last_message_at": message.get("created_at"),
            },
        )

    async def notify_messages_read(self, conversation_id: str, read_by: str):
        await self.broadcast_to_conversation(
            conversation_id,
            ChatEvent.MESSAGES_READ,
            {
                "conversation_id": conversation_id,
                "read_by": read_by,
                "read_at": datetime.utcnow().isoformat(),
            },
        )

    async def notify_typing(self, conversation_id: str, user_id: str, user_name: str, is_typing: bool):
        await self.broadcast_to_conversation(
            conversation_id,
            ChatEvent.USER_TYPING if is_typing else ChatEvent.USER_STOPPED_TYPING,
            {"conversation_id": conversation_id, "user_id": user_id, "user_name": user_name},
            exclude_user=user_id,
        )

    async def notify_conversation_deleted(self, conversation_id: str, deleted_by: str):
        await self.broadcast_to_conversation(
            conversation_id,
            ChatEvent.CONVERSATION_DELETED,
            {"conversation_id": conversation_id, "deleted_by": deleted_by},
        )
        async with self._lock:
            self._rooms.pop(conversation_id, None)


chat_manager = ChatConnectionManager()
