"""
STRIPE SUBSCRIPTIONS
====================
Plan catalogue, checkout, activation, cancellation and payment history.

Flow:
1. User picks a price → /subscriptions/checkout → Returns Stripe checkout URL
2. User pays on Stripe → Stripe redirects to the frontend with session_id
3. Frontend calls /subscriptions/success → Subscription activated, email sent
4. Webhook /api/webhooks/stripe → Renewals, failures and cancellations
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from fastapi.responses import JSONResponse
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import StripeServiceError
from app.core.logging_config import logger
from app.core.rate_limiter import limiter, CHECKOUT_LIMIT
from app.core.types import is_valid_uuid
from app.models.subscription import PaymentHistory, PaymentType, PlanName, SubscriptionStatus
from app.models.user import User
from app.modules.auth.access_control import (
    count_published_pitches,
    get_restrictions_for_plan,
    has_active_subscription,
)
from app.modules.auth.dependencies import get_current_user
from app.schemas.subscription import CheckoutRequest, CheckoutSuccessRequest, CancelSubscriptionRequest
from app.services import scheduled_jobs
from app.services.email_service import email_service
from app.services.stripe_service import stripe_billing_service
from app.services.subscription_service import (
    activate_subscription,
    apply_stripe_period,
    downgrade_user,
    find_payment,
    get_price,
    get_price_by_stripe_id,
    get_user_by_customer,
    get_user_subscription,
    initialize_subscription_plans,
    list_plans,
    record_payment,
    send_plan_confirmation,
)
from app.utils.pagination import paginate

router = APIRouter()


@router.post("/initialize-plans")
async def initialize_plans(db: AsyncSession = Depends(get_db)):
    created, total = await initialize_subscription_plans(db)
    if not created:
        return {"message": "Subscription plans already initialized", "total_plans": total}
    await db.commit()
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"message": "Subscription plans initialized successfully", "total_plans": total},
    )


@router.get("/plans")
async def get_plans(user_type: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    plans = await list_plans(db, user_type)
    return {"message": "Plans retrieved successfully", "data": [plan.to_dict() for plan in plans]}


@router.get("/current")
async def get_current_subscription(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    subscription = await get_user_subscription(db, current_user.id)
    return {
        "message": "Subscription retrieved successfully",
        "data": subscription.serialize() if subscription else None,
    }


@router.post("/checkout")
@limiter.limit(CHECKOUT_LIMIT)
async def create_checkout(
    request: Request,
    data: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Start a Stripe checkout for one catalogue price"""
    if not data.price_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please select a subscription plan to continue")

    if await has_active_subscription(db, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You already have an active subscription. Please cancel it or wait for it to end before purchasing a new plan."
        )

    price = await get_price(db, data.price_id) if is_valid_uuid(data.price_id) else None
    if price is None or price.plan is None or not price.plan.active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Selected subscription plan is not available. Please try again or contact support."
        )
    plan = price.plan

    if plan.user_type != current_user.role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not allowed to purchase this plan. Please select a plan that matches your account type."
        )

    if plan.name == PlanName.BASIC.value and await count_published_pitches(db, current_user.id) > 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You have more than one published pitch. You cannot purchase the Basic plan. Please choose Premium."
        )

    try:
        customer_id = current_user.stripe_customer_id
        if not customer_id or await stripe_billing_service.get_customer(customer_id) is None:
            customer = await stripe_billing_service.create_customer(
                current_user.email, current_user.full_name, str(current_user.id)
            )
            customer_id = customer["id"]
            current_user.stripe_customer_id = customer_id

        stripe_price_id = await stripe_billing_service.ensure_price(plan, price)
        session = await stripe_billing_service.create_checkout_session(
            customer_id=customer_id,
            price_stripe_id=stripe_price_id,
            success_url=f"{settings.FRONTEND_URL}/subscription/success",
            cancel_url=f"{settings.FRONTEND_URL}/pricing",
            metadata={"user_id": str(current_user.id), "price_id": str(price.id), "plan": plan.name},
        )
    except StripeServiceError as e:
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create checkout session: {e.reason}"
        )

    await db.commit()
    logger.log_payment_event("checkout_created", user_id=str(current_user.id), amount=price.price, stripe_id=session["id"])
    return {"success": True, "checkout_url": session["url"], "session_id": session["id"]}


@router.post("/success")
async def checkout_success(data: CheckoutSuccessRequest, db: AsyncSession = Depends(get_db)):
    """Activate the subscription of a completed checkout session"""
    if not data.session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session ID is required")

    try:
        session = await stripe_billing_service.get_checkout_session_data(data.session_id)
    except StripeServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.reason)

    price = await get_price_by_stripe_id(db, session.get("price_id"))
    if price is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription price not found")

    user = await get_user_by_customer(db, session.get("customer_id"))
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    subscription = await activate_subscription(db, user, price, session)

    invoice_id = session.get("invoice_id")
    if invoice_id and await find_payment(db, invoice_id) is None:
        await record_payment(
            db,
            user,
            subscription,
            invoice_id,
            amount=session.get("amount_total") or price.price,
            currency=session.get("currency") or price.currency,
            payment_type=PaymentType.INITIAL.value,
            description=f"{price.plan.name} subscription",
        )

    await db.commit()
    await send_plan_confirmation(user, subscription)

    return {
        "message": "Subscription activated successfully",
        "data": {"subscription": subscription.serialize(), "user": user.to_dict()},
    }


@router.post("/cancel")
async def cancel_subscription(
    data: CancelSubscriptionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    subscription = await get_user_subscription(db, current_user.id)
    if subscription is None or not subscription.stripe_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription found")
    if not subscription.active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Subscription is not active")

    try:
        stripe_data = await stripe_billing_service.cancel_subscription(
            subscription.stripe_id,
            immediate=data.immediate,
            reason=data.reason or "",
            feedback=data.feedback or "",
        )
    except StripeServiceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to cancel subscription: {e.reason}"
        )

    plan_name = subscription.plan_name or current_user.subscription_plan
    subscription.user_cancelled = True
    apply_stripe_period(subscription, stripe_data)
    if data.immediate or subscription.status in (SubscriptionStatus.CANCELED.value, SubscriptionStatus.CANCELLED.value):
        subscription.active = False
    downgrade_user(current_user)
    await db.commit()

    try:
        await email_service.send_subscription_cancelled(
            current_user.email,
            current_user.full_name,
            plan_name,
            subscription.current_period_end,
            immediate=data.immediate,
        )
    except Exception as e:
        logger.error(f"[Billing] Cancellation email to {current_user.email} failed: {e}")

    logger.log_payment_event("subscription_cancelled", user_id=str(current_user.id), stripe_id=subscription.stripe_id)
    return {"message": "Subscription cancelled successfully", "data": subscription.serialize()}


@router.get("/payments")
async def get_payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    year: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    conditions = [PaymentHistory.user_id == current_user.id]
    if year:
        conditions.append(PaymentHistory.created_at >= datetime(year, 1, 1))
        conditions.append(PaymentHistory.created_at < datetime(year + 1, 1, 1))
    if status_filter:
        conditions.append(PaymentHistory.status == status_filter)

    query = select(PaymentHistory).where(and_(*conditions)).order_by(PaymentHistory.created_at.desc())
    result = await paginate(db, query, page, limit)

    filled = False
    for payment in result["items"]:
        if payment.invoice_url or not stripe_billing_service.is_configured:
            continue
        invoice = await stripe_billing_service.get_invoice(payment.stripe_invoice_id)
        if invoice and invoice.get("hosted_invoice_url"):
            payment.invoice_url = invoice["hosted_invoice_url"]
            filled = True
    if filled:
        await db.commit()

    return {
        "message": "Payment history retrieved successfully",
        "data": {
            "payments": [p.to_dict() for p in result["items"]],
            "pagination": {
                "page": result["page"],
                "limit": result["limit"],
                "total": result["total"],
                "pages": result["total_pages"],
            },
        },
    }


@router.post("/refresh")
async def refresh_subscription(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Re-sync status and period from Stripe"""
    subscription = await get_user_subscription(db, current_user.id)
    if subscription is None or not subscription.stripe_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No subscription found")

    stripe_data = await stripe_billing_service.get_subscription_data(subscription.stripe_id)
    if stripe_data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found in Stripe")

    apply_stripe_period(subscription, stripe_data, subscription.price.interval if subscription.price else None)
    subscription.active = subscription.is_active_status()
    await db.commit()
    return {"message": "Subscription refreshed successfully", "data": subscription.serialize()}


@router.get("/current-invoice")
async def get_current_invoice(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    subscription = await get_user_subscription(db, current_user.id)
    customer_id = (subscription.stripe_customer_id if subscription else None) or current_user.stripe_customer_id
    if subscription is None or not subscription.active or not customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription found")

    try:
        invoice = await stripe_billing_service.get_upcoming_invoice(customer_id)
        if invoice is None:
            invoice = await stripe_billing_service.get_current_invoice(customer_id)
    except StripeServiceError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    if invoice is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No invoice found")
    return {"message": "Invoice retrieved successfully", "data": invoice}


@router.get("/invoices/{invoice_id}")
async def get_invoice(invoice_id: str, current_user: User = Depends(get_current_user)):
    invoice = await stripe_billing_service.get_invoice(invoice_id)
    if invoice is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return {"message": "Invoice retrieved successfully", "data": invoice}


@router.get("/status")
async def get_subscription_status(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Plan, usage and entitlements of the current user"""
    subscription = await get_user_subscription(db, current_user.id)
    restrictions = get_restrictions_for_plan(current_user.subscription_plan)
    published = await count_published_pitches(db, current_user.id)
    remaining = max(0, restrictions.pitch_limit - published)

    return {
        "user": {
            "id": str(current_user.id),
            "full_name": current_user.full_name,
            "role": current_user.role,
            "subscription_plan": current_user.subscription_plan,
            "country_name": current_user.country_name,
        },
        "subscription": subscription.serialize() if subscription else None,
        "pitch_usage": {
            "published": published,
            "limit": restrictions.pitch_limit,
            "remaining": remaining,
            "can_add_more": remaining > 0,
        },
        "features": {
            "global_visibility": restrictions.global_visibility,
            "documents_allowed": restrictions.documents_allowed,
            "investor_access_global": restrictions.investor_access_global,
            "featured_in_search": restrictions.featured_in_search,
        },
    }


@router.get("/cron-status")
async def cron_status(current_user: User = Depends(get_current_user)):
    return {"jobs": scheduled_jobs.get_job_status()}


@router.post("/cron-run/{job_name}")
async def cron_run(job_name: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Run a scheduled job immediately"""
    if job_name not in scheduled_jobs.JOB_REGISTRY:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown job: {job_name}")
    result = await scheduled_jobs.run_job(job_name, db)
    await db.commit()
    return {"message": f"Job {job_name} completed", "data": result}
