"""
Unit Tests for the Stripe Webhook Endpoint
Tests for: signature handling, subscription lifecycle events, invoice events
"""
import pytest
from unittest.mock import patch
from sqlalchemy import select

from app.models.subscription import (
    PaymentHistory,
    PaymentStatus,
    PaymentType,
    PlanName,
    SubscriptionPlan,
    SubscriptionPrice,
    SubscriptionStatus,
)
from app.services.stripe_service import stripe_billing_service

URL = "/api/webhooks/stripe"
SIGNATURE = {"Stripe-Signature": "t=1,v1=test"}


def _event(event_type: str, obj: dict) -> dict:
    return {"id": "evt_test", "type": event_type, "data": {"object": obj}}


async def _post_event(client, event: dict):
    with patch.object(stripe_billing_service, "construct_webhook_event", return_value=event):
        return await client.post(URL, content=b"{}", headers=SIGNATURE)


class TestWebhookSignature:
    """Test signature checks and unknown events"""

    @pytest.mark.asyncio
    async def test_signature_required(self, client):
        response = await client.post(URL, content=b"{}")

        assert response.status_code == 400
        assert response.json()["detail"] == "Webhook signature required"

    @pytest.mark.asyncio
    async def test_bad_payload(self, client):
        with patch.object(stripe_billing_service, "construct_webhook_event", side_effect=ValueError("bad payload")):
            response = await client.post(URL, content=b"nope", headers=SIGNATURE)

        assert response.status_code == 400
        assert response.json()["detail"] == "Webhook Error: bad payload"

    @pytest.mark.asyncio
    async def test_unhandled_event_acknowledged(self, client):
        response = await _post_event(client, _event("charge.refunded", {"id": "ch_1"}))

        assert response.json() == {"received": True}


class TestSubscriptionEvents:
    """Test customer.subscription.* events"""

    @pytest.mark.asyncio
    async def test_deleted_downgrades_user(self, client, make_user, subscribe):
        user = await make_user(plan=PlanName.PREMIUM.value)
        subscription = await subscribe(user, PlanName.PREMIUM.value, stripe_id="sub_gone")

        response = await _post_event(client, _event("customer.subscription.deleted", {
            "id": "sub_gone",
            "customer": subscription.stripe_customer_id,
            "status": "canceled",
        }))

        assert response.json() == {"received": True}
        assert subscription.active is False
        assert subscription.status == SubscriptionStatus.CANCELLED.value
        assert user.subscription_plan == PlanName.BASIC.value

    @pytest.mark.asyncio
    async def test_updated_moves_plan(self, client, db_session, plans, make_user, subscribe):
        user = await make_user(plan=PlanName.BASIC.value)
        subscription = await subscribe(user, stripe_id="sub_upgrade")
        premium = (await db_session.execute(
            select(SubscriptionPrice).join(SubscriptionPlan).where(SubscriptionPlan.name == PlanName.PREMIUM.value)
        )).scalar_one()
        premium.stripe_id = "price_premium"
        await db_session.commit()

        await _post_event(client, _event("customer.subscription.updated", {
            "id": "sub_upgrade",
            "customer": subscription.stripe_customer_id,
            "status": "active",
            "items": {"data": [{
                "price": {"id": "price_premium", "recurring": {"interval": "month"}},
                "current_period_start": 1767225600,
                "current_period_end": 1769904000,
            }]},
        }))

        assert user.subscription_plan == PlanName.PREMIUM.value
        assert subscription.price_id == premium.id
        assert subscription.current_period_end.isoformat() == "2026-02-01T00:00:00"

    @pytest.mark.asyncio
    async def test_past_due_deactivates(self, client, make_user, subscribe):
        user = await make_user(plan=PlanName.BASIC.value)
        subscription = await subscribe(user, stripe_id="sub_late")

        await _post_event(client, _event("customer.subscription.updated", {
            "id": "sub_late",
            "customer": subscription.stripe_customer_id,
            "status": "past_due",
        }))

        assert subscription.status == SubscriptionStatus.PAST_DUE.value
        assert subscription.active is False


class TestInvoiceEvents:
    """Test invoice.* events"""

    @pytest.mark.asyncio
    async def test_payment_failed_records_retry(self, client, db_session, make_user, subscribe, sent_emails):
        user = await make_user(plan=PlanName.BASIC.value)
        subscription = await subscribe(user, stripe_id="sub_card")

        await _post_event(client, _event("invoice.payment_failed", {
            "id": "in_failed",
            "customer": subscription.stripe_customer_id,
            "subscription": "sub_card",
            "amount_due": 4900,
            "currency": "usd",
            "attempt_count": 2,
        }))

        payment = (await db_session.execute(select(PaymentHistory))).scalar_one()
        assert payment.status == PaymentStatus.FAILED.value
        assert payment.payment_type == PaymentType.RETRY.value
        assert payment.amount == 49.0
        assert subscription.status == SubscriptionStatus.PAST_DUE.value
        assert sent_emails.await_args.args[0] == user.email

    @pytest.mark.asyncio
    async def test_payment_succeeded_records_initial(self, client, db_session, make_user, subscribe):
        user = await make_user(plan=PlanName.BASIC.value)
        subscription = await subscribe(user)

        await _post_event(client, _event("invoice.payment_succeeded", {
            "id": "in_paid",
            "customer": subscription.stripe_customer_id,
            "amount_paid": 4900,
            "currency": "usd",
            "hosted_invoice_url": "https://invoice.stripe.test/in_paid",
        }))

        payment = (await db_session.execute(select(PaymentHistory))).scalar_one()
        assert payment.status == PaymentStatus.PAID.value
        assert payment.payment_type == PaymentType.INITIAL.value
        assert payment.invoice_url == "https://invoice.stripe.test/in_paid"

    @pytest.mark.asyncio
    async def test_unknown_customer_ignored(self, client, db_session):
        response = await _post_event(client, _event("invoice.payment_failed", {"id": "in_x", "customer": "cus_none"}))

        assert response.json() == {"received": True}
        assert (await db_session.execute(select(PaymentHistory))).scalars().all() == []
