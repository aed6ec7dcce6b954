from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class Favourite(Base):
    """Pitch bookmarked by an investor"""
    __tablename__ = "favourites"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    investor_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    pitch_id = Column(GUID, ForeignKey("pitches.id", ondelete="CASCADE"), nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("investor_id", "pitch_id", name="uq_favourite_investor_pitch"),
    )

    def __repr__(self):
        return f"<Favourite {self.investor_id} -> {self.pitch_id}>"
