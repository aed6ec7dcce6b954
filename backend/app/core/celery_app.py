from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "konnectsphere",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.tasks.subscription_tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,  # 15 minutes
    task_soft_time_limit=600,  # 10 minutes
    result_expires=86400,  # 24 hours
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    broker_connection_retry_on_startup=True,
)

# Subscription housekeeping, all times UTC
celery_app.conf.beat_schedule = {}

if settings.SCHEDULED_JOBS_ENABLED:
    celery_app.conf.beat_schedule = {
        "two-day-reminder": {
            "task": "app.tasks.subscription_tasks.send_two_day_reminders",
            "schedule": crontab(hour=9, minute=0),
        },
        "expired-subscriptions": {
            "task": "app.tasks.subscription_tasks.expire_subscriptions",
            "schedule": crontab(hour=10, minute=0),
        },
        "stripe-sync": {
            "task": "app.tasks.subscription_tasks.sync_stripe_catalogue",
            "schedule": crontab(hour=3, minute=0),
        },
    }
