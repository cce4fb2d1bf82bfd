"""Celery worker configuration and beat schedule.

Periodic work:
- Scheduled completion sweep of stalled ended bookings
"""

from datetime import timedelta

from celery import Celery

from app.config import settings

# Create Celery app
celery_app = Celery(
    "rental_lifecycle_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Beat schedule for periodic tasks
    beat_schedule={
        # Complete stalled ended bookings every sweep_interval_minutes
        "sweep-ended-bookings": {
            "task": "app.tasks.sweep_ended_bookings",
            "schedule": timedelta(minutes=settings.sweep_interval_minutes),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
