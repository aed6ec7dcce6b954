"""
Chat Service - conversations and messages between investors and entrepreneurs.
Shared by the REST endpoints and the WebSocket loop; callers commit.
"""

import uuid
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, and_, or_

from app.models.chat import Conversation, Message, MessageType
from app.models.pitch import Pitch
from app.models.user import User, UserRole
from app.core.logging_config import logger


def parse_conversation_id(value: str) -> Optional[str]:
    """Normalised id, or None when the value is not a UUID"""
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, TypeError, AttributeError):
        return None


def participant_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": str(user.id),
        "full_name": user.full_name,
        "email": user.email,
        "avatar_image": user.avatar_image,
        "role": user.role,
    }


class ChatService:
    """Persistence for pitch-scoped conversations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        result = await self.db.execute(select(Conversation).where(Conversation.id == conversation_id))
        return result.scalar_one_or_none()

    async def find_conversation(self, investor_id, entrepreneur_id, pitch_id) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation).where(
                and_(
                    Conversation.investor_id == investor_id,
                    Conversation.entrepreneur_id == entrepreneur_id,
                    Conversation.pitch_id == pitch_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def create_conversation(self, investor_id, entrepreneur_id, pitch_id) -> Conversation:
        conversation = Conversation(
            investor_id=investor_id,
            entrepreneur_id=entrepreneur_id,
            pitch_id=pitch_id,
            is_active=True,
            last_message_at=datetime.utcnow(),
        )
        self.db.add(conversation)
        await self.db.flush()
        return conversation

    async def add_message(
        self,
        conversation: Conversation,
        sender_id,
        content: str,
        message_type: str = MessageType.TEXT.value
    ) -> Message:
        """Store a message and move the conversation's last-activity pointer"""
        now = datetime.utcnow()
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            receiver_id=conversation.other_participant(sender_id),
            content=content.strip(),
            message_type=message_type or MessageType.TEXT.value,
            is_read=False,
            created_at=now,
        )
        self.db.add(message)
        await self.db.flush()

        conversation.last_message_id = message.id
        conversation.last_message_at = now
        conversation.updated_at = now
        await self.db.flush()

        logger.log_chat_event("message_sent", conversation_id=str(conversation.id), user_id=str(sender_id))
        return message

    async def list_for_user(self, user: User) -> List[Dict[str, Any]]:
        """Active conversations on the user's side, most recent activity first"""
        side = Conversation.investor_id if user.role == UserRole.INVESTOR.value else Conversation.entrepreneur_id
        result = await self.db.execute(
            select(Conversation)
            .where(and_(side == user.id, Conversation.is_active == True))  # noqa: E712
            .order_by(Conversation.last_message_at.desc())
        )
        conversations = list(result.scalars().all())
        return [await self.describe(c) for c in conversations]

    async def describe(self, conversation: Conversation) -> Dict[str, Any]:
        """Conversation with participants, pitch title and the last message"""
        users = await self.db.execute(
            select(User).where(User.id.in_([conversation.investor_id, conversation.entrepreneur_id]))
        )
        by_id = {str(u.id): u for u in users.scalars().all()}

        pitch = (await self.db.execute(select(Pitch).where(Pitch.id == conversation.pitch_id))).scalar_one_or_none()

        last_message = None
        if conversation.last_message_id:
            last = await self.db.execute(select(Message).where(Message.id == conversation.last_message_id))
            message = last.scalar_one_or_none()
            last_message = message.to_dict() if message else None

        return {
            "id": str(conversation.id),
            "investor": participant_summary(by_id.get(str(conversation.investor_id))),
            "entrepreneur": participant_summary(by_id.get(str(conversation.entrepreneur_id))),
            "pitch": {
                "id": str(conversation.pitch_id),
                "title": pitch.title if pitch else None,
            },
            "last_message": last_message,
            "last_message_at": conversation.last_message_at.isoformat() if conversation.last_message_at else None,
            "is_active": conversation.is_active,
            "created_at": conversation.created_at.isoformat() if conversation.created_at else None,
        }

    async def get_messages(self, conversation_id, page: int = 1, limit: int = 50) -> Tuple[List[Message], int]:
        """Page `page` counted from the newest message, returned oldest first"""
        total = (await self.db.execute(
            select(func.count(Message.id)).where(Message.conversation_id == conversation_id)
        )).scalar() or 0

        result = await self.db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        messages = list(result.scalars().all())
        messages.reverse()
        return messages, total

    async def mark_read(self, conversation_id, reader_id) -> int:
        """Mark the reader's unread messages read; returns how many changed"""
        now = datetime.utcnow()
        result = await self.db.execute(
            update(Message)
            .where(
                and_(
                    Message.conversation_id == conversation_id,
                    Message.receiver_id == reader_id,
                    Message.is_read == False,  # noqa: E712
                )
            )
            .values(is_read=True, read_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_conversation(self, conversation: Conversation) -> int:
        result = await self.db.execute(delete(Message).where(Message.conversation_id == conversation.id))
        await self.db.delete(conversation)
        await self.db.flush()
        logger.info(f"[Chat] Deleted conversation {conversation.id} ({result.rowcount} messages)")
        return result.rowcount or 0

    async def unread_count(self, user_id) -> int:
        result = await self.db.execute(
            select(func.count(Message.id)).where(
                and_(Message.receiver_id == user_id, Message.is_read == False)  # noqa: E712
            )
        )
        return result.scalar() or 0

    async def delete_for_user(self, user_id) -> None:
        """Remove every conversation and message the user takes part in"""
        convs = await self.db.execute(
            select(Conversation.id).where(
                or_(Conversation.investor_id == user_id, Conversation.entrepreneur_id == user_id)
            )
        )
        ids = [row[0] for row in convs.all()]
        if ids:
            await self.db.execute(delete(Message).where(Message.conversation_id.in_(ids)))
            await self.db.execute(delete(Conversation).where(Conversation.id.in_(ids)))
        await self.db.execute(
            delete(Message).where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
        )
