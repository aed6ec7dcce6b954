from sqlalchemy import Column, String, Boolean, DateTime, Text
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, JSONType, generate_uuid


class UserRole(str, enum.Enum):
    """User roles"""
    ENTREPRENEUR = "entrepreneur"
    INVESTOR = "investor"


def default_investment_preferences() -> dict:
    return {
        "investment_range_min": 1000,
        "investment_range_max": 100000,
        "max_investments_per_year": 1,
        "interested_locations": [],
        "interested_industries": [],
        "investment_stages": [],
        "pitch_countries": [],
        "languages": [],
        "additional_criteria": "",
    }


def default_profile_info() -> dict:
    return {
        "linkedin_url": "",
        "twitter_url": "",
        "facebook_url": "",
        "instagram_url": "",
        "personal_website": "",
        "about_me": "",
        "specialized_field": "",
        "previous_investments": 0,
        "areas_of_expertise": [],
        "companies": [],
    }


class User(Base):
    """Entrepreneur or investor account"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    role = Column(String(20), default=UserRole.ENTREPRENEUR.value, nullable=False, index=True)
    subscription_plan = Column(String(50), default="Free", nullable=False)
    agreed_to_terms = Column(Boolean, default=False, nullable=False)
    is_accredited_investor = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)

    # Media: {public_id, url}
    avatar_image = Column(JSONType, nullable=True)
    banner_image = Column(JSONType, nullable=True)

    # Contact
    country_name = Column(String(100), nullable=True)
    city_name = Column(String(100), nullable=True)
    phone_number = Column(String(30), nullable=True)
    mobile_number = Column(String(30), nullable=True)
    bio = Column(Text, nullable=True)

    # Investor profile
    is_investor_profile_complete = Column(Boolean, default=False)
    investment_preferences = Column(JSONType, default=default_investment_preferences)
    profile_info = Column(JSONType, default=default_profile_info)

    # Email verification
    is_email_verified = Column(Boolean, default=False)
    email_verification_otp = Column(String(10), nullable=True)
    email_verification_otp_expires = Column(DateTime, nullable=True)

    is_unsubscribed = Column(Boolean, default=False)
    stripe_customer_id = Column(String(255), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_investor(self) -> bool:
        return self.role == UserRole.INVESTOR.value

    @property
    def is_entrepreneur(self) -> bool:
        return self.role == UserRole.ENTREPRENEUR.value

    def to_dict(self) -> dict:
        """Public representation; never includes the password hash or OTP"""
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "subscription_plan": self.subscription_plan,
            "agreed_to_terms": self.agreed_to_terms,
            "is_accredited_investor": self.is_accredited_investor,
            "avatar_image": self.avatar_image,
            "banner_image": self.banner_image,
            "country_name": self.country_name,
            "city_name": self.city_name,
            "phone_number": self.phone_number,
            "mobile_number": self.mobile_number,
            "bio": self.bio,
            "is_investor_profile_complete": self.is_investor_profile_complete,
            "investment_preferences": self.investment_preferences or default_investment_preferences(),
            "profile_info": self.profile_info or default_profile_info(),
            "is_email_verified": self.is_email_verified,
            "is_unsubscribed": self.is_unsubscribed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<User {self.email}>"
