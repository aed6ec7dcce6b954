from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class PasswordResetToken(Base):
    """Only the sha256 of the emailed token is stored"""
    __tablename__ = "password_reset_tokens"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def is_usable(self, now: datetime = None) -> bool:
        return not self.used and self.expires_at > (now or datetime.utcnow())

    def __repr__(self):
        return f"<PasswordResetToken {self.user_id}>"
