"""
STRIPE WEBHOOKS
===============
Keeps local subscription and payment state in step with Stripe.

Handled events:
- customer.subscription.created / updated / deleted
- customer.subscription.trial_will_end
- invoice.payment_succeeded / payment_failed / payment_action_required
- invoice.upcoming / finalized

Configure this URL in the Stripe Dashboard: /api/webhooks/stripe
"""

from datetime import datetime
from typing import Any, Dict, Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, status, Request, Header
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.logging_config import logger
from app.models.subscription import PaymentStatus, PaymentType, SubscriptionStatus, UserSubscription
from app.models.user import User
from app.services.email_service import email_service
from app.services.stripe_service import stripe_billing_service, serialize_subscription, from_timestamp
from app.services.subscription_service import (
    activate_subscription,
    apply_stripe_period,
    downgrade_user,
    find_payment,
    get_price_by_stripe_id,
    get_subscription_by_stripe_id,
    get_user_by_customer,
    get_user_subscription,
    has_paid_payment,
    record_payment,
    send_plan_confirmation,
)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature")
):
    if not stripe_signature or not settings.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook signature required")

    payload = await request.body()
    try:
        event = stripe_billing_service.construct_webhook_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"[Webhook] Signature verification failed: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {e}")

    event_type = event["type"]
    obj = event["data"]["object"]
    logger.info(f"[Webhook] Received event: {event_type}")

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"[Webhook] Unhandled event type: {event_type}")
        return {"received": True}

    try:
        await handler(obj, db)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"[Webhook] Error processing {event_type}: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed"},
        )

    return {"received": True}


# ========== Helpers ==========

def _customer_id(obj) -> Optional[str]:
    customer = obj.get("customer")
    if customer is not None and not isinstance(customer, str):
        customer = customer.get("id")
    return customer


def _invoice_subscription_id(invoice) -> Optional[str]:
    """Older API versions put the id on the invoice, newer ones under parent"""
    subscription_id = invoice.get("subscription")
    if not subscription_id:
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        subscription_id = details.get("subscription")
    if subscription_id is not None and not isinstance(subscription_id, str):
        subscription_id = subscription_id.get("id")
    return subscription_id


def _invoice_details(invoice, plan_name: Optional[str]) -> Dict[str, Any]:
    lines = (invoice.get("lines") or {}).get("data") or []
    period = (lines[0].get("period") if lines else None) or {}
    amount = invoice.get("amount_paid") or invoice.get("amount_due") or 0
    return {
        "plan_name": plan_name or "",
        "amount": amount / 100,
        "currency": invoice.get("currency") or "usd",
        "invoice_id": invoice.get("id"),
        "invoice_number": invoice.get("number"),
        "invoice_url": invoice.get("hosted_invoice_url"),
        "date": from_timestamp(invoice.get("created")),
        "due_date": from_timestamp(invoice.get("due_date") or invoice.get("next_payment_attempt")),
        "period_end": from_timestamp(period.get("end")),
        "attempt_count": invoice.get("attempt_count") or 0,
    }


async def _local_subscription(db: AsyncSession, stripe_id: Optional[str], user: Optional[User]) -> Optional[UserSubscription]:
    subscription = await get_subscription_by_stripe_id(db, stripe_id) if stripe_id else None
    if subscription is None and user is not None:
        subscription = await get_user_subscription(db, user.id)
    return subscription


async def _notify(description: str, coro) -> None:
    """Email failures are logged and never fail the webhook"""
    try:
        await coro
    except Exception as e:
        logger.error(f"[Webhook] {description} email failed: {e}")


# ========== Subscription events ==========

async def _handle_subscription_created(obj, db: AsyncSession):
    data = serialize_subscription(obj)
    user = await get_user_by_customer(db, data["customer_id"])
    if user is None:
        logger.warning(f"[Webhook] No user for customer {data['customer_id']}")
        return

    price = await get_price_by_stripe_id(db, data["price_id"])
    if price is not None:
        await activate_subscription(db, user, price, data)
        return

    subscription = await _local_subscription(db, data["id"], user)
    if subscription is not None:
        subscription.stripe_id = data["id"]
        apply_stripe_period(subscription, data)
        subscription.active = subscription.is_active_status()


async def _handle_subscription_updated(obj, db: AsyncSession):
    data = serialize_subscription(obj)
    user = await get_user_by_customer(db, data["customer_id"])
    subscription = await _local_subscription(db, data["id"], user)
    if subscription is None:
        logger.warning(f"[Webhook] No local subscription for {data['id']}")
        return

    price = await get_price_by_stripe_id(db, data["price_id"])
    if price is not None and price.id != subscription.price_id:
        subscription.plan = price.plan
        subscription.price = price
        subscription.plan_id = price.plan_id
        subscription.price_id = price.id
        if user is not None:
            user.subscription_plan = price.plan.name
        logger.info(f"[Webhook] Subscription {data['id']} moved to {price.plan.name}")

    apply_stripe_period(subscription, data, price.interval if price else None)
    subscription.active = subscription.is_active_status()
    if subscription.status == SubscriptionStatus.PAST_DUE.value:
        subscription.active = False

    if data["cancel_at_period_end"] and user is not None:
        await _notify("Cancellation", email_service.send_subscription_cancelled(
            user.email,
            user.full_name,
            subscription.plan_name or user.subscription_plan,
            subscription.current_period_end,
            immediate=False,
        ))


async def _handle_subscription_deleted(obj, db: AsyncSession):
    data = serialize_subscription(obj)
    user = await get_user_by_customer(db, data["customer_id"])
    subscription = await _local_subscription(db, data["id"], user)
    if subscription is None:
        return

    subscription.status = SubscriptionStatus.CANCELLED.value
    subscription.active = False
    subscription.user_cancelled = True
    if user is not None:
        downgrade_user(user)
    logger.log_payment_event("subscription_deleted", user_id=str(subscription.user_id), stripe_id=data["id"])


async def _handle_trial_will_end(obj, db: AsyncSession):
    data = serialize_subscription(obj)
    user = await get_user_by_customer(db, data["customer_id"])
    if user is None:
        return
    subscription = await _local_subscription(db, data["id"], user)
    await _notify("Renewal reminder", email_service.send_renewal_reminder(
        user.email,
        user.full_name,
        (subscription.plan_name if subscription else None) or user.subscription_plan,
        from_timestamp(obj.get("trial_end")) or data["current_period_end"],
        amount=subscription.price.price if subscription and subscription.price else None,
    ))


# ========== Invoice events ==========

async def _handle_payment_succeeded(invoice, db: AsyncSession):
    user = await get_user_by_customer(db, _customer_id(invoice))
    if user is None:
        logger.warning(f"[Webhook] No user for invoice {invoice.get('id')}")
        return

    stripe_subscription_id = _invoice_subscription_id(invoice)
    subscription = await _local_subscription(db, stripe_subscription_id, user)
    recurring = await has_paid_payment(db, user.id)

    if stripe_subscription_id:
        data = await stripe_billing_service.get_subscription_data(stripe_subscription_id)
        price = await get_price_by_stripe_id(db, data["price_id"]) if data else None
        if data and price:
            subscription = await activate_subscription(db, user, price, data)

    existing = await find_payment(db, invoice["id"])
    if existing is None or existing.status != PaymentStatus.PAID.value:
        await record_payment(
            db,
            user,
            subscription,
            invoice["id"],
            amount=(invoice.get("amount_paid") or 0) / 100,
            currency=invoice.get("currency") or "usd",
            payment_type=PaymentType.RECURRING.value if recurring else PaymentType.INITIAL.value,
            description=invoice.get("description") or f"{user.subscription_plan} subscription",
            invoice_url=invoice.get("hosted_invoice_url"),
            payment_intent_id=invoice.get("payment_intent") if isinstance(invoice.get("payment_intent"), str) else None,
        )

    if subscription is None:
        return
    if recurring:
        details = _invoice_details(invoice, subscription.plan_name)
        details["period_end"] = subscription.current_period_end
        await _notify("Recurring payment", email_service.send_recurring_payment_success(user.email, user.full_name, details))
    else:
        await send_plan_confirmation(user, subscription)


async def _handle_payment_failed(invoice, db: AsyncSession):
    user = await get_user_by_customer(db, _customer_id(invoice))
    if user is None:
        return

    subscription = await _local_subscription(db, _invoice_subscription_id(invoice), user)
    payment = await record_payment(
        db,
        user,
        subscription,
        invoice["id"],
        amount=(invoice.get("amount_due") or 0) / 100,
        currency=invoice.get("currency") or "usd",
        status=PaymentStatus.FAILED.value,
        payment_type=PaymentType.RETRY.value if (invoice.get("attempt_count") or 0) > 1 else PaymentType.RECURRING.value,
        description=invoice.get("description"),
        invoice_url=invoice.get("hosted_invoice_url"),
        due_date=from_timestamp(invoice.get("due_date")),
    )
    payment.retry_count = invoice.get("attempt_count") or 0
    payment.last_retry_at = datetime.utcnow()
    payment.next_retry_at = from_timestamp(invoice.get("next_payment_attempt"))

    if subscription is not None:
        subscription.status = SubscriptionStatus.PAST_DUE.value
        subscription.active = False

    plan_name = subscription.plan_name if subscription else user.subscription_plan
    await _notify("Payment failed", email_service.send_payment_failed(
        user.email, user.full_name, _invoice_details(invoice, plan_name)
    ))


async def _handle_invoice_upcoming(invoice, db: AsyncSession):
    user = await get_user_by_customer(db, _customer_id(invoice))
    if user is None:
        return
    subscription = await _local_subscription(db, _invoice_subscription_id(invoice), user)
    details = _invoice_details(invoice, subscription.plan_name if subscription else user.subscription_plan)
    await _notify("Renewal reminder", email_service.send_renewal_reminder(
        user.email,
        user.full_name,
        details["plan_name"],
        details["due_date"] or (subscription.current_period_end if subscription else None),
        amount=details["amount"],
    ))


async def _handle_action_required(invoice, db: AsyncSession):
    user = await get_user_by_customer(db, _customer_id(invoice))
    if user is None:
        return
    subscription = await _local_subscription(db, _invoice_subscription_id(invoice), user)
    if subscription is not None:
        subscription.status = SubscriptionStatus.INCOMPLETE.value

    plan_name = subscription.plan_name if subscription else user.subscription_plan
    await _notify("Action required", email_service.send_payment_action_required(
        user.email, user.full_name, _invoice_details(invoice, plan_name)
    ))


async def _handle_invoice_finalized(invoice, db: AsyncSession):
    # First invoices are paid at checkout; only renewals get the heads-up
    if invoice.get("billing_reason") != "subscription_cycle":
        return
    user = await get_user_by_customer(db, _customer_id(invoice))
    if user is None:
        return
    subscription = await _local_subscription(db, _invoice_subscription_id(invoice), user)
    plan_name = subscription.plan_name if subscription else user.subscription_plan
    await _notify("Upcoming payment", email_service.send_upcoming_payment(
        user.email, user.full_name, _invoice_details(invoice, plan_name)
    ))


EVENT_HANDLERS = {
    "customer.subscription.created": _handle_subscription_created,
    "customer.subscription.updated": _handle_subscription_updated,
    "customer.subscription.deleted": _handle_subscription_deleted,
    "customer.subscription.trial_will_end": _handle_trial_will_end,
    "invoice.payment_succeeded": _handle_payment_succeeded,
    "invoice.payment_failed": _handle_payment_failed,
    "invoice.upcoming": _handle_invoice_upcoming,
    "invoice.payment_action_required": _handle_action_required,
    "invoice.finalized": _handle_invoice_finalized,
}
