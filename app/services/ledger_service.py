"""Booking transaction ledger service.

The ledger is the source of truth for "this phase transition happened".
Entries are keyed by ``{booking_id}_{type}`` so writing one is naturally
idempotent: a second writer collides on the primary key.
"""

import logging
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.idempotency import generate_transaction_id
from app.domain.booking_state import SYSTEM_ACTOR, LedgerOverride, TransactionType
from app.domain.settlement import SettlementSplit
from app.models.booking import Booking
from app.models.ledger import BookingTransaction

logger = logging.getLogger(__name__)


class LedgerService:
    """Read and append booking transactions."""

    async def get(
        self, db: AsyncSession, booking_id: str, transaction_type: TransactionType
    ) -> BookingTransaction | None:
        return await db.get(
            BookingTransaction,
            generate_transaction_id(booking_id, transaction_type),
            populate_existing=True,
        )

    async def exists(
        self, db: AsyncSession, booking_id: str, transaction_type: TransactionType
    ) -> bool:
        result = await db.execute(
            select(BookingTransaction.id).where(
                BookingTransaction.id == generate_transaction_id(booking_id, transaction_type)
            )
        )
        return result.scalar_one_or_none() is not None

    async def any_exists(
        self, db: AsyncSession, booking_id: str, transaction_types: Iterable[TransactionType]
    ) -> bool:
        ids = [generate_transaction_id(booking_id, t) for t in transaction_types]
        result = await db.execute(
            select(BookingTransaction.id).where(BookingTransaction.id.in_(ids)).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_for_booking(self, db: AsyncSession, booking_id: str) -> list[BookingTransaction]:
        result = await db.execute(
            select(BookingTransaction)
            .where(BookingTransaction.booking_id == booking_id)
            .order_by(BookingTransaction.created_at, BookingTransaction.id)
        )
        return list(result.scalars().all())

    def build_entry(
        self,
        booking: Booking,
        transaction_type: TransactionType,
        actor: str = SYSTEM_ACTOR,
        override: LedgerOverride | None = None,
        split: SettlementSplit | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> BookingTransaction:
        entry = BookingTransaction(
            id=generate_transaction_id(booking.id, transaction_type),
            booking_id=booking.id,
            type=TransactionType(transaction_type).value,
            actor=actor,
            status="approved",
            override=override.value if override else None,
            renter_id=booking.renter_id,
            owner_id=booking.owner_id,
            vehicle_id=booking.vehicle_id,
            details=metadata or None,
        )
        if split is not None:
            entry.gross_amount = split.gross
            entry.commission_rate = split.commission_rate
            entry.platform_fee = split.fee
            entry.host_earning = split.host_earning
            entry.currency = booking.currency
        return entry

    def add_phase_entry(
        self,
        db: AsyncSession,
        booking: Booking,
        transaction_type: TransactionType,
        actor: str = SYSTEM_ACTOR,
        override: LedgerOverride | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> BookingTransaction:
        """Stage a phase entry inside the caller's transaction.

        A conflicting concurrent writer surfaces as an IntegrityError at
        flush/commit, which aborts the whole transaction.
        """
        entry = self.build_entry(
            booking, transaction_type, actor=actor, override=override, metadata=metadata
        )
        db.add(entry)
        return entry

    def add_funds_received(
        self, db: AsyncSession, booking: Booking, split: SettlementSplit
    ) -> BookingTransaction:
        entry = self.build_entry(booking, TransactionType.FUNDS_RECEIVED, split=split)
        db.add(entry)
        return entry

    async def create(
        self,
        db: AsyncSession,
        booking: Booking,
        transaction_type: TransactionType,
        actor: str = SYSTEM_ACTOR,
        override: LedgerOverride | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[BookingTransaction, bool]:
        """Create the entry if absent.

        Returns:
            (entry, created). A unique-key conflict means the transition was
            already recorded; the existing entry is returned with created=False.
        """
        existing = await self.get(db, booking.id, transaction_type)
        if existing is not None:
            return existing, False

        entry = self.build_entry(
            booking, transaction_type, actor=actor, override=override, metadata=metadata
        )
        try:
            async with db.begin_nested():
                db.add(entry)
        except IntegrityError:
            logger.info(f"Ledger entry {entry.id} already recorded by a concurrent writer")
            existing = await self.get(db, booking.id, transaction_type)
            if existing is None:
                raise
            return existing, False

        return entry, True


ledger_service = LedgerService()
