"""
Subscription Service
====================
Local subscription state shared by the checkout flow, the Stripe webhooks and
the scheduled jobs. Nothing here commits; callers own the transaction.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging_config import logger
from app.models.user import User
from app.models.subscription import (
    SubscriptionPlan,
    SubscriptionPrice,
    UserSubscription,
    PaymentHistory,
    PaymentStatus,
    PaymentType,
    PlanName,
    LIVE_STATUSES,
    PriceInterval,
    SubscriptionStatus,
)
from app.services.email_service import email_service
from app.services.stripe_service import add_interval


DEFAULT_PLANS = [
    {
        "name": PlanName.BASIC.value,
        "subtitle": "Local Visibility. Essential Access.",
        "user_type": "entrepreneur",
        "pitch_limit": 1,
        "global_visibility": False,
        "features": "\n".join([
            "Pitch listed and visible only in your selected country",
            "Submit one business pitch",
            "Standard customer support",
            "Access to investor network within your region",
            "Designed for local market exposure",
        ]),
        "permissions": ["basic"],
        "order": 1,
        "price": 49.0,
        "interval": PriceInterval.MONTH.value,
    },
    {
        "name": PlanName.PREMIUM.value,
        "subtitle": "Global Reach. Premium Benefits.",
        "user_type": "entrepreneur",
        "pitch_limit": 5,
        "global_visibility": True,
        "features": "\n".join([
            "Pitch listed and visible across all countries",
            "Featured at the top of global search results",
            "Upload supporting documents for investors",
            "Submit up to 5 pitches",
            "Priority customer support",
            "Wider exposure to international investors",
            "Higher chance of visibility and engagement",
        ]),
        "permissions": ["pro"],
        "order": 2,
        "price": 69.0,
        "interval": PriceInterval.MONTH.value,
    },
    {
        "name": PlanName.INVESTOR_ACCESS.value,
        "subtitle": "Discover High-Potential Ventures. Connect Globally.",
        "user_type": "investor",
        "pitch_limit": 0,
        "global_visibility": True,
        "features": "\n".join([
            "Browse and view business pitches from all countries",
            "Advanced search filters by industry, country, and funding stage",
            "Access to detailed pitch information and supporting documents",
            "Direct contact with entrepreneurs that match your investment interests",
            "Receive curated pitch recommendations based on your preferences",
            "Priority customer support for faster assistance and inquiries",
            "Save pitches to review or revisit anytime",
        ]),
        "permissions": ["pro"],
        "order": 3,
        "price": 49.0,
        "interval": PriceInterval.YEAR.value,
    },
]


async def initialize_subscription_plans(db: AsyncSession) -> Tuple[bool, int]:
    """
    Seed the plan catalogue when it is empty.

    Returns (created, total_plans).
    """
    existing = (await db.execute(select(func.count(SubscriptionPlan.id)))).scalar() or 0
    if existing:
        return False, existing

    for spec in DEFAULT_PLANS:
        plan = SubscriptionPlan(
            name=spec["name"],
            subtitle=spec["subtitle"],
            user_type=spec["user_type"],
            pitch_limit=spec["pitch_limit"],
            global_visibility=spec["global_visibility"],
            features=spec["features"],
            permissions=spec["permissions"],
            order=spec["order"],
            featured=True,
        )
        plan.prices = [
            SubscriptionPrice(
                interval=spec["interval"],
                price=spec["price"],
                currency="usd",
                featured=True,
                order=spec["order"],
            )
        ]
        db.add(plan)

    await db.flush()
    logger.info(f"[Billing] Seeded {len(DEFAULT_PLANS)} subscription plans")
    return True, len(DEFAULT_PLANS)


async def list_plans(db: AsyncSession, user_type: Optional[str] = None) -> List[SubscriptionPlan]:
    query = select(SubscriptionPlan).where(SubscriptionPlan.active == True)  # noqa: E712
    if user_type in ("entrepreneur", "investor"):
        query = query.where(SubscriptionPlan.user_type == user_type)
    result = await db.execute(query.order_by(SubscriptionPlan.order))
    return list(result.scalars().all())


async def get_user_subscription(db: AsyncSession, user_id) -> Optional[UserSubscription]:
    result = await db.execute(select(UserSubscription).where(UserSubscription.user_id == user_id))
    return result.scalar_one_or_none()


async def get_subscription_by_stripe_id(db: AsyncSession, stripe_id: str) -> Optional[UserSubscription]:
    result = await db.execute(select(UserSubscription).where(UserSubscription.stripe_id == stripe_id))
    return result.scalar_one_or_none()


async def get_price(db: AsyncSession, price_id: str) -> Optional[SubscriptionPrice]:
    result = await db.execute(
        select(SubscriptionPrice).where(
            and_(SubscriptionPrice.id == price_id, SubscriptionPrice.active == True)  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def get_price_by_stripe_id(db: AsyncSession, stripe_price_id: Optional[str]) -> Optional[SubscriptionPrice]:
    if not stripe_price_id:
        return None
    result = await db.execute(select(SubscriptionPrice).where(SubscriptionPrice.stripe_id == stripe_price_id))
    return result.scalar_one_or_none()


async def get_user_by_customer(db: AsyncSession, customer_id: Optional[str]) -> Optional[User]:
    if not customer_id:
        return None
    result = await db.execute(select(User).where(User.stripe_customer_id == customer_id))
    user = result.scalar_one_or_none()
    if user:
        return user
    # Fall back to the customer id stored on the subscription row
    result = await db.execute(
        select(User).join(UserSubscription, UserSubscription.user_id == User.id).where(
            UserSubscription.stripe_customer_id == customer_id
        )
    )
    return result.scalars().first()


def apply_stripe_period(subscription: UserSubscription, data: Dict[str, Any], interval: Optional[str] = None) -> None:
    """Copy status and period from serialized Stripe data"""
    start = data.get("current_period_start") or datetime.utcnow()
    end = data.get("current_period_end")
    if not end or end <= start:
        end = add_interval(start, interval or data.get("interval"))

    if data.get("status"):
        subscription.status = data["status"]
    subscription.current_period_start = start
    subscription.current_period_end = end
    subscription.cancel_at_period_end = bool(data.get("cancel_at_period_end"))


async def activate_subscription(
    db: AsyncSession,
    user: User,
    price: SubscriptionPrice,
    data: Dict[str, Any]
) -> UserSubscription:
    """
    Create or update the user's subscription from Stripe data and switch the
    user onto the plan. Plan and price references follow upgrades and downgrades.
    """
    subscription = await get_user_subscription(db, user.id)
    if subscription is None:
        subscription = UserSubscription(user_id=user.id, pitches_used=0)
        db.add(subscription)

    subscription.plan = price.plan
    subscription.price = price
    subscription.plan_id = price.plan_id
    subscription.price_id = price.id
    subscription.stripe_id = data.get("id") or subscription.stripe_id
    subscription.stripe_customer_id = data.get("customer_id") or subscription.stripe_customer_id
    apply_stripe_period(subscription, data, price.interval)
    subscription.active = subscription.is_active_status()
    subscription.user_cancelled = False
    subscription.billing_cycle_anchor = data.get("billing_cycle_anchor") or subscription.current_period_start

    user.subscription_plan = price.plan.name
    if data.get("customer_id") and not user.stripe_customer_id:
        user.stripe_customer_id = data["customer_id"]

    await db.flush()
    logger.log_payment_event(
        "subscription_activated",
        user_id=str(user.id),
        amount=price.price,
        stripe_id=subscription.stripe_id,
        plan=price.plan.name,
    )
    return subscription


def downgrade_user(user: User, subscription: Optional[UserSubscription] = None, status: Optional[str] = None) -> None:
    """Drop the user to Basic and deactivate the subscription"""
    user.subscription_plan = PlanName.BASIC.value
    if subscription is not None:
        subscription.active = False
        if status:
            subscription.status = status


async def find_payment(db: AsyncSession, invoice_id: str) -> Optional[PaymentHistory]:
    result = await db.execute(select(PaymentHistory).where(PaymentHistory.stripe_invoice_id == invoice_id))
    return result.scalar_one_or_none()


async def has_paid_payment(db: AsyncSession, user_id) -> bool:
    result = await db.execute(
        select(PaymentHistory.id).where(
            and_(PaymentHistory.user_id == user_id, PaymentHistory.status == PaymentStatus.PAID.value)
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def record_payment(
    db: AsyncSession,
    user: User,
    subscription: Optional[UserSubscription],
    invoice_id: str,
    amount: float,
    currency: str = "usd",
    status: str = PaymentStatus.PAID.value,
    payment_type: str = PaymentType.INITIAL.value,
    description: Optional[str] = None,
    invoice_url: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
    due_date: Optional[datetime] = None,
) -> PaymentHistory:
    """Insert or update the payment row of an invoice"""
    now = datetime.utcnow()
    payment = await find_payment(db, invoice_id)
    if payment is None:
        payment = PaymentHistory(
            user_id=user.id,
            stripe_invoice_id=invoice_id,
            retry_count=0,
        )
        db.add(payment)

    payment.user_subscription_id = subscription.id if subscription else payment.user_subscription_id
    payment.amount = amount
    payment.currency = currency or "usd"
    payment.status = status
    payment.payment_type = payment_type
    payment.description = description or payment.description
    payment.invoice_url = invoice_url or payment.invoice_url
    payment.stripe_payment_intent_id = payment_intent_id or payment.stripe_payment_intent_id
    payment.due_date = due_date or payment.due_date or now
    if status == PaymentStatus.PAID.value:
        payment.paid_at = now
    elif status == PaymentStatus.FAILED.value:
        payment.failed_at = now

    await db.flush()
    logger.log_payment_event(f"payment_{status}", user_id=str(user.id), amount=amount, stripe_id=invoice_id)
    return payment


async def send_plan_confirmation(user: User, subscription: UserSubscription) -> None:
    """Email failures are logged, never raised"""
    try:
        await email_service.send_subscription_confirmation(
            user.email,
            user.full_name,
            subscription.plan_name or user.subscription_plan,
            amount=subscription.price.price if subscription.price else None,
            interval=subscription.price.interval if subscription.price else None,
            period_end=subscription.current_period_end,
        )
    except Exception as e:
        logger.error(f"[Billing] Confirmation email to {user.email} failed: {e}")


def is_subscription_live(subscription: Optional[UserSubscription], now: Optional[datetime] = None) -> bool:
    """Inverse of the 'hidden owner' rule used by pitch discovery"""
    if subscription is None or not subscription.active:
        return False
    if subscription.status in LIVE_STATUSES:
        return True
    now = now or datetime.utcnow()
    return subscription.current_period_end is None or subscription.current_period_end >= now
