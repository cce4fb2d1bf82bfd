"""Booking database model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base
from app.domain.booking_state import (
    UNCONFIRMED,
    Actor,
    BookingStatus,
    ConfirmationState,
    ConfirmedBy,
    Phase,
)
from app.utils.clock import ensure_utc, utcnow

if TYPE_CHECKING:
    from app.models.ledger import BookingTransaction


def confirmation_attr(phase: Phase, actor: Actor) -> str:
    return f"{Phase(phase).value}_{Actor(actor).value}_confirmed_at"


class Booking(Base):
    """A rental of one vehicle by a renter from its owner (host)."""

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_status_end_time", "status", "end_time"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    renter_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(128))

    # Stored as plain text so legacy values survive until migrated
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=BookingStatus.REQUESTED.value, index=True
    )

    # Scheduled rental window
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Money
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Settlement split, written once when the trip starts
    commission_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 4))
    platform_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    host_earning: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Per-phase, per-actor confirmations
    start_host_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    start_renter_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_host_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_renter_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completion_host_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completion_renter_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    damage_reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Lifecycle audit
    admin_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    admin_approved_by: Mapped[str | None] = mapped_column(String(128))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    transactions: Mapped[list["BookingTransaction"]] = relationship(
        "BookingTransaction",
        back_populates="booking",
        order_by="BookingTransaction.created_at",
        lazy="noload",
    )

    def confirmation(self, phase: Phase, actor: Actor) -> ConfirmationState:
        confirmed_at = getattr(self, confirmation_attr(phase, actor))
        if confirmed_at is None:
            return UNCONFIRMED
        return ConfirmedBy(actor=Actor(actor), confirmed_at=ensure_utc(confirmed_at))

    def record_confirmation(self, phase: Phase, actor: Actor, at: datetime) -> None:
        attr = confirmation_attr(phase, actor)
        if getattr(self, attr) is None:
            setattr(self, attr, at)

    def both_confirmed(self, phase: Phase) -> bool:
        return all(self.confirmation(phase, actor).is_confirmed for actor in Actor)

    def confirmations_view(self, phase: Phase) -> dict[str, bool]:
        return {actor.value: self.confirmation(phase, actor).is_confirmed for actor in Actor}

    def party_for(self, actor: Actor) -> str:
        return self.owner_id if Actor(actor) is Actor.HOST else self.renter_id

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.renter_id, self.owner_id)
