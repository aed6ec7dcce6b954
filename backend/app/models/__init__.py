# Re-export all models for convenient imports
from app.models.user import User, UserRole
from app.models.pitch import Pitch, PitchStatus
from app.models.subscription import (
    SubscriptionPlan,
    SubscriptionPrice,
    UserSubscription,
    PaymentHistory,
    SubscriptionStatus,
    PaymentStatus,
    PaymentType,
    PlanName,
)
from app.models.chat import Conversation, Message, MessageType
from app.models.favourite import Favourite
from app.models.password_reset import PasswordResetToken

__all__ = [
    # User
    "User",
    "UserRole",
    # Pitch
    "Pitch",
    "PitchStatus",
    # Billing
    "SubscriptionPlan",
    "SubscriptionPrice",
    "UserSubscription",
    "PaymentHistory",
    "SubscriptionStatus",
    "PaymentStatus",
    "PaymentType",
    "PlanName",
    # Chat
    "Conversation",
    "Message",
    "MessageType",
    # Favourites
    "Favourite",
    # Auth
    "PasswordResetToken",
]
