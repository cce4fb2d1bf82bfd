"""In-process scheduler for the ended-booking sweep.

Deployments without a Celery beat can enable this from the FastAPI lifespan
with ENABLE_IN_PROCESS_SWEEP. Running it alongside beat is harmless: the
ledger key keeps completions idempotent.
"""

import asyncio
import logging

from app.config import settings
from app.core.immutability import register_immutability_enforcement
from app.database import create_engine, create_session_factory
from app.services.booking_store import BookingStore
from app.services.confirmation_service import ConfirmationService
from app.services.evidence_service import evidence_gate
from app.services.notification_service import NotificationService
from app.services.sweep_service import SweepService, SweepSummary

logger = logging.getLogger(__name__)

# Flag to stop the background task
_stop_sweep = False


async def run_ended_booking_sweep(database_url: str | None = None) -> SweepSummary:
    """Run one sweep with a dedicated engine, disposed afterwards."""
    register_immutability_enforcement()
    engine = create_engine(database_url)
    session_factory = create_session_factory(engine)
    notifier = NotificationService()

    try:
        confirmation_service = ConfirmationService(
            BookingStore(session_factory),
            evidence_gate,
            notifier=notifier,
        )
        sweep_service = SweepService(session_factory, confirmation_service)
        return await sweep_service.sweep_ended_bookings()
    finally:
        await notifier.close()
        await engine.dispose()


async def start_sweep_scheduler(interval_minutes: int | None = None) -> None:
    """Run the sweep every ``interval_minutes`` until stopped."""
    global _stop_sweep
    _stop_sweep = False
    interval_seconds = (interval_minutes or settings.sweep_interval_minutes) * 60

    logger.info(f"Ended-booking sweep scheduler started (every {interval_seconds // 60} min)")

    while not _stop_sweep:
        try:
            await run_ended_booking_sweep()
        except Exception as e:
            logger.error(f"Scheduled sweep error: {e}")

        # Wait for next interval, checking the stop flag every second
        for _ in range(interval_seconds):
            if _stop_sweep:
                break
            await asyncio.sleep(1)

    logger.info("Ended-booking sweep scheduler stopped")


def stop_sweep_scheduler() -> None:
    """Signal the sweep scheduler to stop."""
    global _stop_sweep
    _stop_sweep = True
