"""
Stripe Billing Gateway
======================
Thin async wrapper over the stripe SDK. The SDK is synchronous, so every call
runs in the default thread executor. Failures surface as StripeServiceError.
"""

import asyncio
from datetime import datetime
from functools import partial
from typing import Optional, Dict, Any

import stripe
from dateutil.relativedelta import relativedelta

from app.core.config import settings
from app.core.exceptions import StripeServiceError
from app.core.logging_config import logger


def from_timestamp(value) -> Optional[datetime]:
    """Stripe epoch seconds -> naive UTC datetime"""
    if not value:
        return None
    return datetime.utcfromtimestamp(int(value))


def add_interval(start: datetime, interval: Optional[str]) -> datetime:
    if interval == "year":
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


def _first_item(subscription) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def serialize_subscription(subscription) -> Dict[str, Any]:
    """
    Normalise a Stripe subscription.

    Newer API versions carry the period on the subscription item instead of the
    subscription; both places are read. When the end is missing or not after the
    start, it is derived from the price interval.
    """
    item = _first_item(subscription)
    price = item.get("price") or {}
    interval = (price.get("recurring") or {}).get("interval") or "month"

    start = from_timestamp(subscription.get("current_period_start") or item.get("current_period_start"))
    end = from_timestamp(subscription.get("current_period_end") or item.get("current_period_end"))
    start = start or datetime.utcnow()
    if not end or end <= start:
        end = add_interval(start, interval)

    customer = subscription.get("customer")
    if customer is not None and not isinstance(customer, str):
        customer = customer.get("id")

    return {
        "id": subscription.get("id"),
        "status": subscription.get("status"),
        "customer_id": customer,
        "price_id": price.get("id"),
        "interval": interval,
        "current_period_start": start,
        "current_period_end": end,
        "billing_cycle_anchor": from_timestamp(subscription.get("billing_cycle_anchor")),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "metadata": dict(subscription.get("metadata") or {}),
    }


def serialize_invoice(invoice) -> Dict[str, Any]:
    lines = (invoice.get("lines") or {}).get("data") or []
    period = (lines[0].get("period") if lines else None) or {}
    return {
        "id": invoice.get("id"),
        "number": invoice.get("number"),
        "status": invoice.get("status"),
        "amount_due": (invoice.get("amount_due") or 0) / 100,
        "amount_paid": (invoice.get("amount_paid") or 0) / 100,
        "currency": invoice.get("currency") or "usd",
        "hosted_invoice_url": invoice.get("hosted_invoice_url"),
        "invoice_pdf": invoice.get("invoice_pdf"),
        "created": from_timestamp(invoice.get("created")),
        "due_date": from_timestamp(invoice.get("due_date")),
        "period_start": from_timestamp(period.get("start")),
        "period_end": from_timestamp(period.get("end")),
    }


class StripeBillingService:
    """Customers, catalogue, checkout, subscriptions and invoices"""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _call(self, operation: str, func, *args, **kwargs):
        if not self.is_configured:
            raise StripeServiceError(operation, "Stripe is not configured")
        kwargs.setdefault("api_key", self.api_key)
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args, **kwargs))
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            logger.error(f"[Billing] Stripe {operation} failed: {message}")
            raise StripeServiceError(operation, message)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    async def create_customer(self, email: str, name: str, user_id: str):
        return await self._call(
            "create_customer",
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"user_id": user_id},
        )

    async def get_customer(self, customer_id: str):
        """None when the customer no longer exists"""
        try:
            customer = await self._call("get_customer", stripe.Customer.retrieve, customer_id)
        except StripeServiceError:
            return None
        if customer.get("deleted"):
            return None
        return customer

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    async def create_product(self, name: str, description: Optional[str] = None, metadata: Optional[dict] = None):
        params = {"name": name, "metadata": metadata or {}}
        if description:
            params["description"] = description
        return await self._call("create_product", stripe.Product.create, **params)

    async def create_price(self, product_id: str, unit_amount: int, currency: str, interval: str, metadata: Optional[dict] = None):
        return await self._call(
            "create_price",
            stripe.Price.create,
            product=product_id,
            unit_amount=unit_amount,
            currency=currency,
            recurring={"interval": interval},
            metadata=metadata or {},
        )

    async def verify_price(self, price_id: str) -> bool:
        try:
            price = await self._call("verify_price", stripe.Price.retrieve, price_id)
        except StripeServiceError:
            return False
        return bool(price.get("active"))

    async def verify_product(self, product_id: str) -> bool:
        try:
            product = await self._call("verify_product", stripe.Product.retrieve, product_id)
        except StripeServiceError:
            return False
        return bool(product.get("active"))

    async def ensure_price(self, plan, price) -> str:
        """
        Return a usable Stripe price id for a catalogue price.

        Missing or archived products and prices are recreated and the new ids
        stored on the rows (the caller commits).
        """
        if price.stripe_id and await self.verify_price(price.stripe_id):
            return price.stripe_id

        if not plan.stripe_id or not await self.verify_product(plan.stripe_id):
            product = await self.create_product(
                plan.name, plan.subtitle, metadata={"plan_id": str(plan.id)}
            )
            plan.stripe_id = product["id"]
            logger.info(f"[Billing] Created Stripe product {plan.stripe_id} for {plan.name}")

        stripe_price = await self.create_price(
            plan.stripe_id,
            price.stripe_amount(),
            price.currency,
            price.interval,
            metadata={"price_id": str(price.id)},
        )
        price.stripe_id = stripe_price["id"]
        logger.info(f"[Billing] Created Stripe price {price.stripe_id} for {plan.name}/{price.interval}")
        return price.stripe_id

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def create_checkout_session(
        self,
        customer_id: str,
        price_stripe_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[dict] = None
    ):
        if "{CHECKOUT_SESSION_ID}" not in success_url:
            separator = "&" if "?" in success_url else "?"
            success_url = f"{success_url}{separator}session_id={{CHECKOUT_SESSION_ID}}"
        return await self._call(
            "create_checkout_session",
            stripe.checkout.Session.create,
            customer=customer_id,
            success_url=success_url,
            cancel_url=cancel_url,
            line_items=[{"price": price_stripe_id, "quantity": 1}],
            mode="subscription",
            metadata=metadata or {},
            billing_address_collection="required",
            allow_promotion_codes=True,
            subscription_data={"metadata": metadata or {}},
        )

    async def get_checkout_session_data(self, session_id: str) -> Dict[str, Any]:
        """Customer, subscription and period data of a completed checkout"""
        session = await self._call(
            "get_checkout_session",
            stripe.checkout.Session.retrieve,
            session_id,
            expand=["subscription", "customer"],
        )
        subscription = session.get("subscription")
        customer = session.get("customer")
        if not subscription or not customer:
            raise StripeServiceError("get_checkout_session", "Invalid checkout session")

        if isinstance(subscription, str):
            subscription = await self._call("get_subscription", stripe.Subscription.retrieve, subscription)

        data = serialize_subscription(subscription)
        data["customer_id"] = customer if isinstance(customer, str) else customer.get("id")
        data["invoice_id"] = session.get("invoice") or subscription.get("latest_invoice")
        if data["invoice_id"] is not None and not isinstance(data["invoice_id"], str):
            data["invoice_id"] = data["invoice_id"].get("id")
        data["amount_total"] = (session.get("amount_total") or 0) / 100
        data["currency"] = session.get("currency") or "usd"
        return data

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def get_subscription_data(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        try:
            subscription = await self._call("get_subscription", stripe.Subscription.retrieve, subscription_id)
        except StripeServiceError:
            return None
        return serialize_subscription(subscription)

    async def cancel_subscription(
        self,
        subscription_id: str,
        immediate: bool = False,
        reason: str = "",
        feedback: str = ""
    ) -> Dict[str, Any]:
        """Cancel now, or at the end of the current period"""
        if immediate:
            subscription = await self._call(
                "cancel_subscription",
                stripe.Subscription.cancel,
                subscription_id,
                cancellation_details={"comment": (reason or feedback or "")[:500]},
            )
        else:
            subscription = await self._call(
                "cancel_subscription",
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
                metadata={"cancel_reason": reason or "", "cancel_feedback": (feedback or "")[:500]},
            )
        return serialize_subscription(subscription)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    async def get_invoice(self, invoice_id: str) -> Optional[Dict[str, Any]]:
        try:
            invoice = await self._call("get_invoice", stripe.Invoice.retrieve, invoice_id)
        except StripeServiceError:
            return None
        return serialize_invoice(invoice)

    async def get_upcoming_invoice(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Unpaid open invoice of the customer, if any"""
        invoices = await self._call(
            "list_invoices", stripe.Invoice.list, customer=customer_id, status="open", limit=1
        )
        data = invoices.get("data") or []
        return serialize_invoice(data[0]) if data else None

    async def get_current_invoice(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Most recent paid invoice, falling back to the most recent of any status"""
        paid = await self._call(
            "list_invoices", stripe.Invoice.list, customer=customer_id, status="paid", limit=1
        )
        data = paid.get("data") or []
        if not data:
            recent = await self._call("list_invoices", stripe.Invoice.list, customer=customer_id, limit=1)
            data = recent.get("data") or []
        return serialize_invoice(data[0]) if data else None

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_webhook_event(self, payload: bytes, signature: str, secret: Optional[str] = None):
        """Raises ValueError or stripe.SignatureVerificationError"""
        return stripe.Webhook.construct_event(payload, signature, secret or settings.STRIPE_WEBHOOK_SECRET)


stripe_billing_service = StripeBillingService()
