import asyncio

from celery import Task

from app.core.celery_app import celery_app
from app.core.logging_config import logger
from app.services import scheduled_jobs


class SubscriptionJobTask(Task):
    """Celery task that runs an async job on a private event loop"""
    abstract = True

    def run_async(self, coro):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()


@celery_app.task(bind=True, base=SubscriptionJobTask, max_retries=2, default_retry_delay=300)
def send_two_day_reminders(self):
    """09:00 UTC - two-day expiration reminders"""
    result = self.run_async(scheduled_jobs.send_two_day_reminders())
    logger.info(f"[Cron] two-day-reminder finished: {result}")
    return result


@celery_app.task(bind=True, base=SubscriptionJobTask, max_retries=2, default_retry_delay=300)
def expire_subscriptions(self):
    """10:00 UTC - expire ended subscriptions"""
    result = self.run_async(scheduled_jobs.expire_subscriptions())
    logger.info(f"[Cron] expired-subscriptions finished: {result}")
    return result


@celery_app.task(bind=True, base=SubscriptionJobTask)
def sync_stripe_catalogue(self):
    """03:00 UTC - push catalogue rows without Stripe ids"""
    result = self.run_async(scheduled_jobs.sync_stripe_catalogue())
    logger.info(f"[Cron] stripe-sync finished: {result}")
    return result
