"""Celery configuration for background jobs.

The only periodic job is the access grant expiry sweep.
"""

from datetime import timedelta
from typing import Any

from celery import Celery
from celery.schedules import crontab

from medilocker.config import get_settings

EXPIRY_TASK = "medilocker.tasks.expiry_tasks.expire_access_grants"


def sweep_schedule(interval_minutes: int) -> Any:
    """Schedule for the expiry sweep, aligned to the hour when possible."""
    if interval_minutes == 60:
        return crontab(minute=0)
    if 0 < interval_minutes < 60 and 60 % interval_minutes == 0:
        return crontab(minute=f"*/{interval_minutes}")
    return timedelta(minutes=interval_minutes)


settings = get_settings()

celery_app = Celery(
    "medilocker",
    broker=settings.broker_url,
    backend=settings.broker_url,
    include=["medilocker.tasks.expiry_tasks"],
)

celery_app.conf.update(
    # Task serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "expire-access-grants": {
            "task": EXPIRY_TASK,
            "schedule": sweep_schedule(settings.expiry_sweep_interval_minutes),
        },
    },
)

app = celery_app
