from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint, Index
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class MessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


MAX_MESSAGE_LENGTH = 1000


class Conversation(Base):
    """Investor <-> entrepreneur thread about a single pitch"""
    __tablename__ = "conversations"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    investor_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    entrepreneur_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    pitch_id = Column(GUID, ForeignKey("pitches.id", ondelete="CASCADE"), nullable=False)

    last_message_id = Column(GUID, nullable=True)
    last_message_at = Column(DateTime, default=datetime.utcnow)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("investor_id", "entrepreneur_id", "pitch_id", name="uq_conversation_participants_pitch"),
    )

    def has_participant(self, user_id) -> bool:
        return str(user_id) in (str(self.investor_id), str(self.entrepreneur_id))

    def other_participant(self, user_id) -> str:
        if str(user_id) == str(self.investor_id):
            return str(self.entrepreneur_id)
        return str(self.investor_id)

    def __repr__(self):
        return f"<Conversation {self.id}>"


class Message(Base):
    __tablename__ = "messages"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    conversation_id = Column(GUID, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    content = Column(Text, nullable=False)
    message_type = Column(String(10), default=MessageType.TEXT.value, nullable=False)
    is_read = Column(Boolean, default=False)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_messages_receiver_unread", "receiver_id", "is_read"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "conversation_id": str(self.conversation_id),
            "sender_id": str(self.sender_id),
            "receiver_id": str(self.receiver_id),
            "content": self.content,
            "message_type": self.message_type,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Message {self.id}>"
