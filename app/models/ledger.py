"""Booking transaction ledger.

Append-only. One row per (booking, transaction type); the primary key is the
deterministic id ``{booking_id}_{type}`` so a repeated phase transition can
never write a second row.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base
from app.utils.clock import utcnow

if TYPE_CHECKING:
    from app.models.booking import Booking


class BookingTransaction(Base):
    """Immutable record that a booking phase transition happened."""

    __tablename__ = "booking_transactions"
    __table_args__ = (
        UniqueConstraint("booking_id", "type", name="uq_booking_transactions_booking_type"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    booking_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("bookings.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(
        String(32), nullable=False, index=True
    )  # booking_started, booking_ended, booking_completed, funds_received
    actor: Mapped[str] = mapped_column(String(160), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="approved")
    override: Mapped[str | None] = mapped_column(String(32))  # scheduled_sweep, admin

    # Denormalised parties for reporting
    renter_id: Mapped[str] = mapped_column(String(128), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(128))

    # Financial entries only
    gross_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    commission_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 4))
    platform_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    host_earning: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    currency: Mapped[str | None] = mapped_column(String(3))

    details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="transactions")
