"""Celery tasks for Stakeboard.

This module configures Celery and registers all periodic tasks. The engine
itself holds no timers; everything time-driven is scheduled here.
"""

from celery import Celery
from celery.schedules import crontab

from stakeboard.config import get_settings

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "stakeboard",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "stakeboard.tasks.settlement",
        "stakeboard.tasks.valuation",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task behavior
    task_track_started=True,
    task_time_limit=300,  # 5 minute hard limit
    task_soft_time_limit=270,
    # Result expiration
    result_expires=3600,  # 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Portfolio revaluation - every minute
    "revalue-portfolios": {
        "task": "stakeboard.tasks.valuation.revalue_portfolios",
        "schedule": 60.0,
        "options": {"expires": 55},
    },
    # Calendar settlement - hourly; weekly closes Sunday, monthly on the 1st
    "settle-due-periods": {
        "task": "stakeboard.tasks.settlement.settle_due_periods",
        "schedule": crontab(minute=5),
        "options": {"expires": 3540},
    },
    # Group games - every 15 minutes
    "settle-finished-games": {
        "task": "stakeboard.tasks.settlement.settle_finished_games",
        "schedule": 900.0,
        "options": {"expires": 840},
    },
}
