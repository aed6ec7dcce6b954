from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, JSONType, generate_uuid


class PitchStatus(str, enum.Enum):
    """Pitch lifecycle"""
    DRAFT = "draft"
    PUBLISHED = "published"


# Step name -> model section it writes
PITCH_SECTIONS = {
    "company-info": "company_info",
    "pitch-deal": "pitch_deal",
    "team": "team",
    "media": "media",
    "documents": "documents",
    "package": "package",
    "packages": "package",
}


def empty_media() -> dict:
    return {
        "logo": None,
        "banner": None,
        "images": [],
        "video_type": "youtube",
        "youtube_url": "",
        "uploaded_video": None,
    }


def empty_documents() -> dict:
    return {
        "business_plan": None,
        "financials": None,
        "pitch_deck": None,
        "executive_summary": None,
        "additional_documents": [],
    }


class Pitch(Base):
    """
    Entrepreneur pitch.

    Each wizard step lives in its own JSON section. Sections are always
    reassigned as a whole so the ORM records the change.
    """
    __tablename__ = "pitches"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    company_info = Column(JSONType, default=dict)
    pitch_deal = Column(JSONType, default=dict)
    team = Column(JSONType, default=lambda: {"members": []})
    media = Column(JSONType, default=empty_media)
    documents = Column(JSONType, default=empty_documents)
    package = Column(JSONType, default=dict)

    status = Column(String(20), default=PitchStatus.DRAFT.value, nullable=False)
    completed_steps = Column(JSONType, default=list)
    is_active = Column(Boolean, default=True)

    published_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_pitches_status_active", "status", "is_active"),
    )

    @property
    def is_published(self) -> bool:
        return self.status == PitchStatus.PUBLISHED.value

    @property
    def title(self) -> str:
        return (self.company_info or {}).get("pitch_title") or ""

    @property
    def industry(self) -> str:
        return (self.company_info or {}).get("industry1") or ""

    @property
    def country(self) -> str:
        return (self.company_info or {}).get("country") or ""

    def mark_step_completed(self, step_name: str) -> None:
        steps = list(self.completed_steps or [])
        if step_name not in steps:
            steps.append(step_name)
        self.completed_steps = steps

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "company_info": self.company_info or {},
            "pitch_deal": self.pitch_deal or {},
            "team": self.team or {"members": []},
            "media": self.media or empty_media(),
            "documents": self.documents or empty_documents(),
            "package": self.package or {},
            "status": self.status,
            "completed_steps": self.completed_steps or [],
            "is_active": self.is_active,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_card(self) -> dict:
        """Compact shape used by listings"""
        company = self.company_info or {}
        media = self.media or {}
        return {
            "id": str(self.id),
            "title": self.title,
            "industry": self.industry,
            "country": self.country,
            "stage": company.get("stage"),
            "raising_amount": company.get("raising_amount"),
            "minimum_investment": company.get("minimum_investment"),
            "summary": (self.pitch_deal or {}).get("summary"),
            "deal_type": (self.pitch_deal or {}).get("deal_type"),
            "logo": media.get("logo"),
            "banner": media.get("banner"),
            "selected_package": (self.package or {}).get("selected_package"),
            "published_at": self.published_at.isoformat() if self.published_at else None,
        }

    def __repr__(self):
        return f"<Pitch {self.id} {self.status}>"
