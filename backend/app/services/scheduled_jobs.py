"""
Scheduled Jobs
==============
Daily subscription housekeeping. Each job opens its own session so it can run
from a Celery worker, from the cron-run endpoint or from a test.
"""

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import session_scope
from app.core.exceptions import StripeServiceError
from app.core.logging_config import logger
from app.models.subscription import (
    SubscriptionPlan,
    UserSubscription,
    LIVE_STATUSES,
    SubscriptionStatus,
)
from app.models.user import User
from app.services.email_service import email_service
from app.services.stripe_service import stripe_billing_service
from app.services.subscription_service import downgrade_user


async def _live_subscriptions(db: AsyncSession, *conditions) -> List[UserSubscription]:
    result = await db.execute(
        select(UserSubscription).where(
            and_(
                UserSubscription.active == True,  # noqa: E712
                UserSubscription.status.in_(LIVE_STATUSES),
                *conditions,
            )
        )
    )
    return list(result.scalars().all())


async def _owner(db: AsyncSession, subscription: UserSubscription) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == subscription.user_id))
    return result.scalar_one_or_none()


async def send_two_day_reminders(db: Optional[AsyncSession] = None) -> Dict[str, Any]:
    """Remind users whose period ends on the calendar day two days from now"""
    if db is None:
        async with session_scope() as session:
            return await send_two_day_reminders(session)

    day_start = (datetime.utcnow() + timedelta(days=2)).replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)
    subscriptions = await _live_subscriptions(
        db,
        UserSubscription.current_period_end >= day_start,
        UserSubscription.current_period_end < day_end,
    )

    sent = 0
    for subscription in subscriptions:
        user = await _owner(db, subscription)
        if user is None or not user.email:
            continue
        try:
            if await email_service.send_two_day_expiration_reminder(
                user.email,
                user.full_name,
                subscription.plan_name or user.subscription_plan,
                subscription.current_period_end,
            ):
                sent += 1
        except Exception as e:
            logger.error(f"[Cron] Two-day reminder to {user.email} failed: {e}")

    logger.info(f"[Cron] Two-day reminders: {sent}/{len(subscriptions)} sent")
    return {"checked": len(subscriptions), "sent": sent}


async def _amount_due(customer_id: Optional[str]) -> Optional[float]:
    if not customer_id or not stripe_billing_service.is_configured:
        return None
    try:
        invoice = await stripe_billing_service.get_upcoming_invoice(customer_id)
    except StripeServiceError as e:
        logger.warning(f"[Cron] Could not fetch amount due for {customer_id}: {e.message}")
        return None
    return invoice["amount_due"] if invoice else None


async def expire_subscriptions(db: Optional[AsyncSession] = None) -> Dict[str, Any]:
    """Deactivate live subscriptions whose period has ended and drop the users to Basic"""
    if db is None:
        async with session_scope() as session:
            return await expire_subscriptions(session)

    now = datetime.utcnow()
    subscriptions = await _live_subscriptions(db, UserSubscription.current_period_end < now)

    expired = 0
    for subscription in subscriptions:
        user = await _owner(db, subscription)
        plan_name = subscription.plan_name or (user.subscription_plan if user else None)

        subscription.active = False
        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.updated_at = now
        expired += 1
        if user is None:
            continue

        downgrade_user(user)
        amount_due = await _amount_due(subscription.stripe_customer_id or user.stripe_customer_id)
        try:
            await email_service.send_subscription_expired(user.email, user.full_name, plan_name, amount_due)
        except Exception as e:
            logger.error(f"[Cron] Expiry email to {user.email} failed: {e}")

    await db.flush()
    logger.info(f"[Cron] Expired {expired} subscriptions")
    return {"expired_count": expired}


async def sync_stripe_catalogue(db: Optional[AsyncSession] = None) -> Dict[str, Any]:
    """Create Stripe products and prices for catalogue rows that have none"""
    if db is None:
        async with session_scope() as session:
            return await sync_stripe_catalogue(session)

    if not stripe_billing_service.is_configured:
        logger.warning("[Cron] Stripe not configured, catalogue sync skipped")
        return {"skipped": True, "synced": 0}

    result = await db.execute(select(SubscriptionPlan).where(SubscriptionPlan.active == True))  # noqa: E712
    synced = 0
    failed = 0
    for plan in result.scalars().all():
        for price in plan.prices:
            if not price.active or (price.stripe_id and plan.stripe_id):
                continue
            try:
                await stripe_billing_service.ensure_price(plan, price)
                synced += 1
            except StripeServiceError as e:
                failed += 1
                logger.error(f"[Cron] Stripe sync for {plan.name}/{price.interval} failed: {e.message}")

    await db.flush()
    logger.info(f"[Cron] Stripe sync: {synced} prices synced, {failed} failed")
    return {"synced": synced, "failed": failed}


JOB_REGISTRY: Dict[str, Callable[..., Awaitable[Dict[str, Any]]]] = {
    "two-day-reminder": send_two_day_reminders,
    "expired-subscriptions": expire_subscriptions,
    "stripe-sync": sync_stripe_catalogue,
}


def get_job_status() -> Dict[str, bool]:
    """Which jobs are scheduled in this deployment"""
    return {name: settings.SCHEDULED_JOBS_ENABLED for name in JOB_REGISTRY}


async def run_job(job_name: str, db: Optional[AsyncSession] = None) -> Dict[str, Any]:
    """Run a job now. Raises KeyError for an unknown name."""
    job = JOB_REGISTRY[job_name]
    logger.info(f"[Cron] Running {job_name} manually")
    return await job(db)
