"""Atomic read-modify-write over bookings and their ledger.

Every confirmation or completion runs as one database transaction that
locks the booking row, reads and writes the ledger, and commits or rolls
back as a unit. Lock conflicts are retried a bounded number of times and
the whole unit of work runs under a deadline.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import AppException, ErrorCode, InternalError
from app.models.booking import Booking

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BookingStore:
    """Runs units of work against bookings in retried, deadline-bound transactions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int | None = None,
        deadline_seconds: float | None = None,
        retry_backoff_seconds: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.transaction_max_attempts
        self.deadline_seconds = deadline_seconds or settings.transaction_deadline_seconds
        self.retry_backoff_seconds = (
            settings.transaction_retry_backoff_seconds
            if retry_backoff_seconds is None
            else retry_backoff_seconds
        )

    async def run(self, work: Callable[[AsyncSession], Awaitable[T]], label: str = "transaction") -> T:
        """Run ``work`` inside a transaction, committing on success.

        Raises:
            AppException: guard failures from ``work``, unchanged
            InternalError: retryable TRANSACTION_CONFLICT or DEADLINE_EXCEEDED,
                or a generic internal error for anything unexpected
        """
        try:
            return await asyncio.wait_for(
                self._run_with_retries(work, label), timeout=self.deadline_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(f"{label}: deadline of {self.deadline_seconds}s exceeded, rolled back")
            raise InternalError(
                "The operation took too long, please retry",
                code=ErrorCode.DEADLINE_EXCEEDED,
                retryable=True,
            )

    async def _run_with_retries(self, work: Callable[[AsyncSession], Awaitable[T]], label: str) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        return await work(session)
            except AppException:
                raise
            except (OperationalError, IntegrityError) as e:
                logger.warning(
                    f"{label}: transient conflict on attempt {attempt}/{self.max_attempts}: "
                    f"{e.__class__.__name__}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_backoff_seconds * attempt)
            except SQLAlchemyError:
                logger.exception(f"{label}: database error")
                raise InternalError()
            except Exception:
                logger.exception(f"{label}: unexpected error")
                raise InternalError()

        raise InternalError(
            "The booking is busy, please retry",
            code=ErrorCode.TRANSACTION_CONFLICT,
            retryable=True,
        )

    @staticmethod
    async def get_booking_for_update(session: AsyncSession, booking_id: str) -> Booking | None:
        """Load a booking and hold its row lock until the transaction ends."""
        result = await session.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
