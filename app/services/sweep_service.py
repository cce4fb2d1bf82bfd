"""Scheduled completion of stalled bookings.

A booking whose trip has ended but whose parties never both confirmed
completion is completed by the system once the grace period after its end
time has passed. Each booking is completed in its own transaction; a failure
on one is logged and counted and does not stop the others.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import AppException
from app.domain.booking_state import BookingStatus, LedgerOverride, TransactionType
from app.models.booking import Booking
from app.models.ledger import BookingTransaction
from app.services.confirmation_service import ConfirmationService
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepFailure:
    booking_id: str
    error: str


@dataclass
class SweepSummary:
    scanned: int = 0
    completed: int = 0
    already_completed: int = 0
    failed: int = 0
    failures: list[SweepFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "completed": self.completed,
            "already_completed": self.already_completed,
            "failed": self.failed,
            "failures": [{"booking_id": f.booking_id, "error": f.error} for f in self.failures],
        }


class SweepService:
    """Finds ended bookings past their grace period and completes them."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        confirmation_service: ConfirmationService,
        grace_period: timedelta | None = None,
        batch_size: int | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.confirmation_service = confirmation_service
        self.grace_period = (
            grace_period
            if grace_period is not None
            else timedelta(hours=settings.sweep_grace_period_hours)
        )
        self.batch_size = batch_size or settings.sweep_batch_size
        self.clock = clock

    async def find_stalled_booking_ids(self) -> list[str]:
        cutoff = self.clock() - self.grace_period
        completion_recorded = exists().where(
            and_(
                BookingTransaction.booking_id == Booking.id,
                BookingTransaction.type == TransactionType.BOOKING_COMPLETED.value,
            )
        )
        async with self.session_factory() as session:
            result = await session.execute(
                select(Booking.id)
                .where(
                    Booking.status == BookingStatus.ENDED.value,
                    Booking.end_time <= cutoff,
                    ~completion_recorded,
                )
                .order_by(Booking.end_time, Booking.id)
                .limit(self.batch_size)
            )
            return list(result.scalars().all())

    async def sweep_ended_bookings(self) -> SweepSummary:
        """Complete every stalled booking in one batch.

        Returns:
            SweepSummary with counts of completed, already completed and failed bookings
        """
        logger.info(f"Starting ended-booking sweep (grace={self.grace_period}, batch={self.batch_size})")
        booking_ids = await self.find_stalled_booking_ids()
        summary = SweepSummary(scanned=len(booking_ids))

        if not booking_ids:
            logger.info("No stalled ended bookings to complete")
            return summary

        for booking_id in booking_ids:
            try:
                result = await self.confirmation_service.complete_as_system(
                    booking_id, override=LedgerOverride.SCHEDULED_SWEEP
                )
            except AppException as e:
                summary.failed += 1
                summary.failures.append(SweepFailure(booking_id=booking_id, error=str(e.detail)))
                logger.error(f"Failed to complete booking {booking_id}: {e.code.value} {e.detail}")
                continue
            except Exception as e:
                summary.failed += 1
                summary.failures.append(SweepFailure(booking_id=booking_id, error="unexpected error"))
                logger.exception(f"Failed to complete booking {booking_id}: {e}")
                continue

            if result.already_completed:
                summary.already_completed += 1
                logger.info(f"Booking {booking_id} already completed (skipped)")
            else:
                summary.completed += 1
                logger.info(f"Completed booking {booking_id}")

        logger.info(
            f"Sweep summary: scanned={summary.scanned} completed={summary.completed} "
            f"already_completed={summary.already_completed} failed={summary.failed}"
        )
        return summary
