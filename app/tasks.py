"""Celery background tasks.

- sweep_ended_bookings: complete bookings whose parties never both
  confirmed completion, once the grace period after their end time passed
"""

import asyncio
import logging

from celery import shared_task

from app.core.background_tasks import run_ended_booking_sweep

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context on a fresh event loop."""
    return asyncio.run(coro)


# ==================== BOOKING LIFECYCLE TASKS ====================


@shared_task(bind=True, ignore_result=False)
def sweep_ended_bookings(self):
    """Complete stalled ended bookings.

    Runs every SWEEP_INTERVAL_MINUTES via beat. Not retried: failed bookings
    are picked up again by the next scheduled run.
    """
    summary = run_async(run_ended_booking_sweep())
    if summary.failed:
        logger.warning(f"Sweep finished with {summary.failed} failed booking(s)")
    return summary.to_dict()
