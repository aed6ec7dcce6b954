"""
Unit Tests for Scheduled Jobs
Tests for: two-day reminders, expiry, Stripe catalogue sync, manual runs
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch, AsyncMock

from app.core.exceptions import StripeServiceError
from app.models.subscription import PlanName, SubscriptionStatus
from app.services import scheduled_jobs
from app.services.stripe_service import stripe_billing_service


def _two_days_ahead() -> datetime:
    day = (datetime.utcnow() + timedelta(days=2)).replace(hour=0, minute=0, second=0, microsecond=0)
    return day + timedelta(hours=12)


class TestTwoDayReminders:
    """Test send_two_day_reminders"""

    @pytest.mark.asyncio
    async def test_only_matching_day_is_reminded(self, db_session, make_user, subscribe, sent_emails):
        due = await make_user(plan=PlanName.BASIC.value)
        await subscribe(due, current_period_end=_two_days_ahead())
        later = await make_user(plan=PlanName.BASIC.value)
        await subscribe(later, current_period_end=datetime.utcnow() + timedelta(days=20))

        result = await scheduled_jobs.send_two_day_reminders(db_session)

        assert result == {"checked": 1, "sent": 1}
        assert sent_emails.await_args.args[0] == due.email
        assert sent_emails.await_args.args[1] == "Your Subscription Expires in 2 Days"

    @pytest.mark.asyncio
    async def test_cancelled_subscriptions_skipped(self, db_session, entrepreneur, subscribe, sent_emails):
        await subscribe(entrepreneur, current_period_end=_two_days_ahead(), active=False)

        result = await scheduled_jobs.send_two_day_reminders(db_session)

        assert result["checked"] == 0
        sent_emails.assert_not_awaited()


class TestExpireSubscriptions:
    """Test expire_subscriptions"""

    @pytest.mark.asyncio
    async def test_expired_user_downgraded(self, db_session, make_user, subscribe, sent_emails):
        user = await make_user(plan=PlanName.PREMIUM.value)
        subscription = await subscribe(
            user, PlanName.PREMIUM.value, current_period_end=datetime.utcnow() - timedelta(hours=1)
        )

        with patch.object(stripe_billing_service, 'get_upcoming_invoice', new=AsyncMock(return_value={"amount_due": 69.0})):
            result = await scheduled_jobs.expire_subscriptions(db_session)

        assert result == {"expired_count": 1}
        assert subscription.active is False
        assert subscription.status == SubscriptionStatus.CANCELLED.value
        assert user.subscription_plan == PlanName.BASIC.value
        assert sent_emails.await_args.args[1] == "Subscription Expired - Payment Due"

    @pytest.mark.asyncio
    async def test_stripe_failure_still_sends_notice(self, db_session, entrepreneur, subscribe, sent_emails):
        await subscribe(entrepreneur, current_period_end=datetime.utcnow() - timedelta(days=1))
        failing = AsyncMock(side_effect=StripeServiceError("get_upcoming_invoice", "no upcoming invoice"))

        with patch.object(stripe_billing_service, 'get_upcoming_invoice', new=failing):
            await scheduled_jobs.expire_subscriptions(db_session)

        assert sent_emails.await_args.args[1] == "Your Subscription Has Ended"

    @pytest.mark.asyncio
    async def test_current_subscriptions_untouched(self, db_session, entrepreneur, subscribe):
        subscription = await subscribe(entrepreneur)

        result = await scheduled_jobs.expire_subscriptions(db_session)

        assert result["expired_count"] == 0
        assert subscription.active is True


class TestStripeSync:
    """Test sync_stripe_catalogue"""

    @pytest.mark.asyncio
    async def test_unsynced_prices_are_created(self, db_session, plans):
        ensure = AsyncMock(return_value="price_123")

        with patch.object(stripe_billing_service, 'ensure_price', new=ensure):
            result = await scheduled_jobs.sync_stripe_catalogue(db_session)

        assert result == {"synced": 3, "failed": 0}
        assert ensure.await_count == 3

    @pytest.mark.asyncio
    async def test_failures_are_counted(self, db_session, plans):
        failing = AsyncMock(side_effect=StripeServiceError("create_price", "invalid currency"))

        with patch.object(stripe_billing_service, 'ensure_price', new=failing):
            result = await scheduled_jobs.sync_stripe_catalogue(db_session)

        assert result == {"synced": 0, "failed": 3}


class TestJobRegistry:
    """Test run_job and get_job_status"""

    def test_status_lists_every_job(self):
        assert set(scheduled_jobs.get_job_status()) == {"two-day-reminder", "expired-subscriptions", "stripe-sync"}

    @pytest.mark.asyncio
    async def test_unknown_job(self, db_session):
        with pytest.raises(KeyError):
            await scheduled_jobs.run_job("weekly-digest", db_session)

    @pytest.mark.asyncio
    async def test_run_by_name(self, db_session):
        result = await scheduled_jobs.run_job("expired-subscriptions", db_session)

        assert result == {"expired_count": 0}
