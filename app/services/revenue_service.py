"""Host revenue reporting.

Read-only view over the ``funds_received`` ledger entries written when a
trip starts. Amounts are the ones recorded at settlement time, so a later
change to the commission rate does not rewrite past earnings.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.booking_state import BookingStatus, TransactionType
from app.domain.settlement import round_money
from app.models.booking import Booking
from app.models.ledger import BookingTransaction
from app.utils.clock import ensure_utc


@dataclass
class RevenueLine:
    booking_id: str
    gross: Decimal
    platform_fee: Decimal
    host_earning: Decimal
    status: str
    vehicle_id: str | None
    settled_at: datetime | None


@dataclass
class HostRevenue:
    owner_id: str
    gross: Decimal = Decimal("0.00")
    platform_fee: Decimal = Decimal("0.00")
    net: Decimal = Decimal("0.00")
    bookings: list[RevenueLine] = field(default_factory=list)

    @property
    def booking_count(self) -> int:
        return len(self.bookings)


class RevenueService:
    async def get_host_revenue(
        self,
        db: AsyncSession,
        owner_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        completed_only: bool = True,
    ) -> HostRevenue:
        """Sum recorded settlements for a host.

        Args:
            db: Database session
            owner_id: Host whose earnings to report
            start: Only include settlements recorded at or after this time
            end: Only include settlements recorded at or before this time
            completed_only: Restrict to bookings that reached completed
        """
        query = (
            select(BookingTransaction, Booking.status)
            .join(Booking, Booking.id == BookingTransaction.booking_id)
            .where(
                BookingTransaction.owner_id == owner_id,
                BookingTransaction.type == TransactionType.FUNDS_RECEIVED.value,
            )
            .order_by(BookingTransaction.created_at, BookingTransaction.id)
        )
        if completed_only:
            query = query.where(Booking.status == BookingStatus.COMPLETED.value)
        if start is not None:
            query = query.where(BookingTransaction.created_at >= start)
        if end is not None:
            query = query.where(BookingTransaction.created_at <= end)

        result = await db.execute(query)
        revenue = HostRevenue(owner_id=owner_id)

        for entry, status in result.all():
            gross = entry.gross_amount or Decimal("0")
            fee = entry.platform_fee or Decimal("0")
            earning = entry.host_earning or Decimal("0")
            revenue.gross += gross
            revenue.platform_fee += fee
            revenue.net += earning
            revenue.bookings.append(
                RevenueLine(
                    booking_id=entry.booking_id,
                    gross=gross,
                    platform_fee=fee,
                    host_earning=earning,
                    status=status,
                    vehicle_id=entry.vehicle_id,
                    settled_at=ensure_utc(entry.created_at),
                )
            )

        revenue.gross = round_money(revenue.gross)
        revenue.platform_fee = round_money(revenue.platform_fee)
        revenue.net = round_money(revenue.net)
        return revenue


revenue_service = RevenueService()
