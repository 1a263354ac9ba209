"""Celery configuration and initialization.

The beat schedule is the periodic driver of the scheduling engine: due
processing every minute, recurring generation hourly, digests once per
digest period and a nightly sweep of old digests.
"""

from celery import Celery
from celery.schedules import crontab
from kombu import Exchange, Queue

from csr_notifications.core.config import get_settings

settings = get_settings()

# Create Celery instance
celery_app = Celery(
    "csr_notifications",
    broker=settings.celery.broker_url,
    backend=settings.celery.result_backend,
    include=["csr_notifications.tasks.notification_tasks"],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes hard limit
    task_soft_time_limit=25 * 60,  # 25 minutes soft limit
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,  # 1 hour
    task_always_eager=settings.celery.task_always_eager,  # For testing
)

notifications_exchange = Exchange("notifications", type="topic")

celery_app.conf.task_queues = (
    Queue("celery", Exchange("default", type="direct"), routing_key="celery"),
    Queue("notifications", notifications_exchange, routing_key="notification.*"),
)

celery_app.conf.task_routes = {
    "csr_notifications.tasks.notification_tasks.*": {"queue": "notifications"},
}

# Retry configuration
celery_app.conf.task_annotations = {
    "csr_notifications.tasks.notification_tasks.*": {
        "max_retries": 3,
        "default_retry_delay": 60,  # 1 minute
    },
}

digest_hour = settings.celery.digest_hour_utc

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "process-due-notifications": {
        "task": "csr_notifications.tasks.notification_tasks.process_due_notifications",
        "schedule": crontab(),  # Every minute
    },
    "generate-recurring-notifications": {
        "task": "csr_notifications.tasks.notification_tasks.generate_recurring_notifications",
        "schedule": crontab(minute=0),  # Hourly
    },
    "generate-daily-digests": {
        "task": "csr_notifications.tasks.notification_tasks.generate_digests",
        "schedule": crontab(hour=digest_hour, minute=0),
        "args": ("daily",),
    },
    "generate-weekly-digests": {
        "task": "csr_notifications.tasks.notification_tasks.generate_digests",
        "schedule": crontab(day_of_week=1, hour=digest_hour, minute=0),  # Mondays
        "args": ("weekly",),
    },
    "generate-monthly-digests": {
        "task": "csr_notifications.tasks.notification_tasks.generate_digests",
        "schedule": crontab(day_of_month=1, hour=digest_hour, minute=0),
        "args": ("monthly",),
    },
    "cleanup-old-digests": {
        "task": "csr_notifications.tasks.notification_tasks.cleanup_old_digests",
        "schedule": crontab(hour=3, minute=0),  # Daily, off-peak
    },
}

# Configure error handling
celery_app.conf.task_reject_on_worker_lost = True
celery_app.conf.task_ignore_result = False

__all__ = ["celery_app"]
