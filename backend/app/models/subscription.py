from sqlalchemy import (
    Column, String, DateTime, Integer, Boolean, ForeignKey, Text, Float, event
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, JSONType, generate_uuid


class PlanName(str, enum.Enum):
    """Plan names as stored on users.subscription_plan"""
    FREE = "Free"
    BASIC = "Basic"
    PREMIUM = "Premium"
    INVESTOR_ACCESS = "Investor Access Plan"


class PriceInterval(str, enum.Enum):
    MONTH = "month"
    YEAR = "year"


class SubscriptionStatus(str, enum.Enum):
    """Stripe subscription statuses (plus the local 'cancelled' spelling)"""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    UNPAID = "unpaid"
    PAUSED = "paused"


LIVE_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value)


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PROCESSING = "processing"
    REQUIRES_ACTION = "requires_action"


class PaymentType(str, enum.Enum):
    INITIAL = "initial"
    RECURRING = "recurring"
    RETRY = "retry"


class SubscriptionPlan(Base):
    """Catalogue entry, mirrored to a Stripe product"""
    __tablename__ = "subscription_plans"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(100), unique=True, nullable=False)
    subtitle = Column(String(255), nullable=True)
    user_type = Column(String(20), nullable=False)  # entrepreneur / investor
    pitch_limit = Column(Integer, default=0, nullable=False)
    global_visibility = Column(Boolean, default=False)

    # One feature per line
    features = Column(Text, default="")
    permissions = Column(JSONType, default=list)

    order = Column(Integer, default=1)
    featured = Column(Boolean, default=False)
    active = Column(Boolean, default=True)
    stripe_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    prices = relationship(
        "SubscriptionPrice",
        back_populates="plan",
        lazy="selectin",
        order_by="SubscriptionPrice.order",
        cascade="all, delete-orphan",
    )

    @property
    def feature_list(self) -> list:
        return [line.strip() for line in (self.features or "").split("\n") if line.strip()]

    def to_dict(self, include_prices: bool = True) -> dict:
        data = {
            "id": str(self.id),
            "name": self.name,
            "subtitle": self.subtitle,
            "user_type": self.user_type,
            "pitch_limit": self.pitch_limit,
            "global_visibility": self.global_visibility,
            "features": self.feature_list,
            "permissions": self.permissions or [],
            "order": self.order,
            "featured": self.featured,
        }
        if include_prices:
            data["prices"] = [p.to_dict() for p in (self.prices or []) if p.active]
        return data

    def __repr__(self):
        return f"<SubscriptionPlan {self.name}>"


class SubscriptionPrice(Base):
    """Recurring price for a plan, mirrored to a Stripe price"""
    __tablename__ = "subscription_prices"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    plan_id = Column(GUID, ForeignKey("subscription_plans.id", ondelete="CASCADE"), nullable=False)
    interval = Column(String(10), default=PriceInterval.MONTH.value, nullable=False)
    price = Column(Float, nullable=False)  # major units, e.g. 49.00
    currency = Column(String(10), default="usd")
    featured = Column(Boolean, default=False)
    order = Column(Integer, default=1)
    active = Column(Boolean, default=True)
    stripe_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("SubscriptionPlan", back_populates="prices", lazy="selectin")

    def stripe_amount(self) -> int:
        """Price in cents"""
        return int(round(self.price * 100))

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "interval": self.interval,
            "price": self.price,
            "currency": self.currency,
            "featured": self.featured,
            "order": self.order,
        }

    def __repr__(self):
        return f"<SubscriptionPrice {self.price} {self.currency}/{self.interval}>"


class UserSubscription(Base):
    """A user's subscription, one row per user"""
    __tablename__ = "user_subscriptions"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    plan_id = Column(GUID, ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True)
    price_id = Column(GUID, ForeignKey("subscription_prices.id", ondelete="SET NULL"), nullable=True)

    active = Column(Boolean, default=True)
    user_cancelled = Column(Boolean, default=False)
    cancel_at_period_end = Column(Boolean, default=False)

    # Stripe
    stripe_id = Column(String(255), unique=True, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)

    # Billing period
    original_period_start = Column(DateTime, nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    billing_cycle_anchor = Column(DateTime, nullable=True)

    status = Column(String(30), default=SubscriptionStatus.INCOMPLETE.value, nullable=False)
    pitches_used = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("SubscriptionPlan", lazy="selectin")
    price = relationship("SubscriptionPrice", lazy="selectin")

    def is_active_status(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def plan_name(self):
        return self.plan.name if self.plan else None

    def can_add_pitch(self) -> bool:
        if not self.plan:
            return False
        return (self.pitches_used or 0) < self.plan.pitch_limit

    def remaining_pitches(self) -> int:
        if not self.plan:
            return 0
        return max(0, self.plan.pitch_limit - (self.pitches_used or 0))

    def serialize(self) -> dict:
        return {
            "id": str(self.id),
            "plan_name": self.plan_name,
            "status": self.status,
            "active": self.active,
            "interval": self.price.interval if self.price else None,
            "price": self.price.price if self.price else None,
            "current_period_start": self.current_period_start.isoformat() if self.current_period_start else None,
            "current_period_end": self.current_period_end.isoformat() if self.current_period_end else None,
            "pitches_used": self.pitches_used or 0,
            "pitches_remaining": self.remaining_pitches(),
            "can_add_pitch": self.can_add_pitch(),
            "cancel_at_period_end": self.cancel_at_period_end,
            "user_cancelled": self.user_cancelled,
        }

    def __repr__(self):
        return f"<UserSubscription {self.user_id} {self.status}>"


@event.listens_for(UserSubscription, "before_insert")
@event.listens_for(UserSubscription, "before_update")
def _keep_original_period_start(mapper, connection, target):
    if target.original_period_start is None and target.current_period_start is not None:
        target.original_period_start = target.current_period_start


class PaymentHistory(Base):
    """One row per Stripe invoice"""
    __tablename__ = "payment_history"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user_subscription_id = Column(GUID, ForeignKey("user_subscriptions.id", ondelete="SET NULL"), nullable=True)

    stripe_invoice_id = Column(String(255), unique=True, nullable=False)
    stripe_payment_intent_id = Column(String(255), nullable=True)

    amount = Column(Float, nullable=False, default=0)  # major units
    currency = Column(String(10), default="usd")
    status = Column(String(30), default=PaymentStatus.PENDING.value, nullable=False)
    description = Column(Text, nullable=True)
    invoice_url = Column(Text, nullable=True)

    paid_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)

    payment_type = Column(String(20), default=PaymentType.INITIAL.value)
    retry_count = Column(Integer, default=0)
    last_retry_at = Column(DateTime, nullable=True)
    next_retry_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "stripe_invoice_id": self.stripe_invoice_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "description": self.description,
            "invoice_url": self.invoice_url,
            "payment_type": self.payment_type,
            "retry_count": self.retry_count,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<PaymentHistory {self.stripe_invoice_id} {self.status}>"
