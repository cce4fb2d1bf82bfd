"""Privileged booking operations.

All operations here require the caller to pass the injected authorization
policy; every decision is logged.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import FailedPreconditionError, NotFoundError
from app.core.permissions import AuthorizationPolicy, Principal, require_admin
from app.domain.booking_state import (
    LEGACY_STATUS_MAP,
    BookingStatus,
    LedgerOverride,
    assert_booking_transition,
    parse_status,
)
from app.models.booking import Booking
from app.services.booking_store import BookingStore
from app.services.confirmation_service import (
    CompletionResult,
    ConfirmationService,
    require_booking_id,
)
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

# Statuses an admin may approve from, after normalisation
APPROVABLE_STATUSES = {
    BookingStatus.REQUESTED,
    BookingStatus.PENDING_ADMIN_APPROVAL,
}


@dataclass(frozen=True)
class ApprovalResult:
    booking_id: str
    status: str
    already_approved: bool


@dataclass(frozen=True)
class MigrationResult:
    scanned: int
    updated: int
    unchanged: int


def normalize_status(raw: str | None) -> BookingStatus | None:
    """Map a stored status, including legacy names and stray casing, to the current enum."""
    value = (raw or "").strip().lower()
    if value in LEGACY_STATUS_MAP:
        return LEGACY_STATUS_MAP[value]
    return parse_status(value)


class BookingAdminService:
    def __init__(
        self,
        store: BookingStore,
        confirmation_service: ConfirmationService,
        policy: AuthorizationPolicy,
        clock: Clock = utcnow,
        migration_batch_size: int | None = None,
    ) -> None:
        self.store = store
        self.confirmation_service = confirmation_service
        self.policy = policy
        self.clock = clock
        self.migration_batch_size = migration_batch_size or settings.migration_batch_size

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self.store.session_factory

    async def admin_complete_booking(self, booking_id: str, principal: Principal | None) -> CompletionResult:
        """Force an ended booking to completed, bypassing both-party confirmation."""
        principal = require_admin(self.policy, principal, "complete bookings")
        booking_id = require_booking_id(booking_id)
        logger.info(f"Admin {principal.user_id} completing booking {booking_id}")
        return await self.confirmation_service.complete_as_system(
            booking_id, override=LedgerOverride.ADMIN, admin_id=principal.user_id
        )

    async def approve_booking_as_admin(self, booking_id: str, principal: Principal | None) -> ApprovalResult:
        principal = require_admin(self.policy, principal, "approve bookings")
        booking_id = require_booking_id(booking_id)

        async def work(session: AsyncSession) -> ApprovalResult:
            booking = await self.store.get_booking_for_update(session, booking_id)
            if booking is None:
                raise NotFoundError("Booking", booking_id)

            current = normalize_status(booking.status)
            if current is BookingStatus.ADMIN_APPROVED:
                return ApprovalResult(
                    booking_id=booking_id,
                    status=BookingStatus.ADMIN_APPROVED.value,
                    already_approved=True,
                )

            if current not in APPROVABLE_STATUSES:
                raise FailedPreconditionError(
                    f'Booking must be "{BookingStatus.PENDING_ADMIN_APPROVAL.value}" before admin '
                    f'approval. Current status: "{booking.status or "unknown"}"',
                    details={"current_status": booking.status},
                )

            assert_booking_transition(current, BookingStatus.ADMIN_APPROVED)
            booking.status = BookingStatus.ADMIN_APPROVED.value
            booking.admin_approved_at = self.clock()
            booking.admin_approved_by = principal.user_id
            return ApprovalResult(
                booking_id=booking_id,
                status=BookingStatus.ADMIN_APPROVED.value,
                already_approved=False,
            )

        result = await self.store.run(work, label=f"approve:{booking_id}")
        if not result.already_approved:
            logger.info(f"Booking {booking_id} approved by admin {principal.user_id}")
        return result

    async def migrate_legacy_statuses(self, principal: Principal | None) -> MigrationResult:
        """Rewrite legacy status names to their current equivalents.

        ``requested`` and ``pending`` become ``pending_admin_approval``, ``approved``
        becomes ``host_approved``; current names stored with stray casing or
        whitespace are normalised. Unknown values are left untouched.
        """
        principal = require_admin(self.policy, principal, "migrate booking statuses")
        scanned = updated = unchanged = 0
        last_id = ""

        while True:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(Booking)
                        .where(Booking.id > last_id)
                        .order_by(Booking.id)
                        .limit(self.migration_batch_size)
                    )
                    bookings = list(result.scalars().all())
                    if not bookings:
                        break

                    for booking in bookings:
                        scanned += 1
                        target = normalize_status(booking.status)
                        if target is None or target.value == booking.status:
                            unchanged += 1
                            continue
                        booking.status = target.value
                        updated += 1

                    last_id = bookings[-1].id

        logger.info(
            f"Status migration by {principal.user_id}: scanned={scanned} "
            f"updated={updated} unchanged={unchanged}"
        )
        return MigrationResult(scanned=scanned, updated=updated, unchanged=unchanged)
