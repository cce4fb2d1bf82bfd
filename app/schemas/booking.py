"""Booking lifecycle Pydantic schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.domain.booking_state import Actor, Phase
from app.models.booking import Booking
from app.utils.clock import ensure_utc


class ConfirmRequest(BaseModel):
    """Schema for confirming trip start or completion."""

    actor: str = Field(..., description="renter or host")


class ConfirmEndRequest(ConfirmRequest):
    """Schema for confirming trip end."""

    has_damage: bool = False


class ConfirmationResponse(BaseModel):
    """Outcome of a confirmation."""

    booking_id: str
    phase: Phase
    actor: Actor
    advanced: bool
    both_confirmed: bool
    already_confirmed: bool
    new_status: str
    message: str


class CompletionResponse(BaseModel):
    """Outcome of a system or admin completion."""

    booking_id: str
    completed: bool
    already_completed: bool
    new_status: str
    message: str


class ApprovalResponse(BaseModel):
    booking_id: str
    status: str
    already_approved: bool


class PartyConfirmations(BaseModel):
    host: bool
    renter: bool


class BookingResponse(BaseModel):
    """Booking as seen by its parties and admins."""

    id: str
    renter_id: str
    owner_id: str
    vehicle_id: str | None
    status: str
    start_time: datetime
    end_time: datetime
    amount_paid: Decimal
    currency: str
    commission_rate: Decimal | None
    platform_fee: Decimal | None
    host_earning: Decimal | None
    damage_reported: bool
    start_confirmations: PartyConfirmations
    end_confirmations: PartyConfirmations
    completion_confirmations: PartyConfirmations
    admin_approved_at: datetime | None
    admin_approved_by: str | None
    started_at: datetime | None
    ended_at: datetime | None
    completed_at: datetime | None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            renter_id=booking.renter_id,
            owner_id=booking.owner_id,
            vehicle_id=booking.vehicle_id,
            status=booking.status,
            start_time=ensure_utc(booking.start_time),
            end_time=ensure_utc(booking.end_time),
            amount_paid=booking.amount_paid,
            currency=booking.currency,
            commission_rate=booking.commission_rate,
            platform_fee=booking.platform_fee,
            host_earning=booking.host_earning,
            damage_reported=booking.damage_reported,
            start_confirmations=PartyConfirmations(**booking.confirmations_view(Phase.START)),
            end_confirmations=PartyConfirmations(**booking.confirmations_view(Phase.END)),
            completion_confirmations=PartyConfirmations(
                **booking.confirmations_view(Phase.COMPLETION)
            ),
            admin_approved_at=ensure_utc(booking.admin_approved_at),
            admin_approved_by=booking.admin_approved_by,
            started_at=ensure_utc(booking.started_at),
            ended_at=ensure_utc(booking.ended_at),
            completed_at=ensure_utc(booking.completed_at),
        )


class TransactionResponse(BaseModel):
    """Ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    type: str
    actor: str
    status: str
    override: str | None
    renter_id: str
    owner_id: str
    vehicle_id: str | None
    gross_amount: Decimal | None
    commission_rate: Decimal | None
    platform_fee: Decimal | None
    host_earning: Decimal | None
    currency: str | None
    details: dict | None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ArtifactStatusResponse(BaseModel):
    uploaded: bool
    path: str | None = None
    url: str | None = None


class EvidenceStatusResponse(BaseModel):
    booking_id: str
    host_start_video: ArtifactStatusResponse
    renter_start_video: ArtifactStatusResponse
    return_video: ArtifactStatusResponse
    damage_photos_uploaded: bool
    damage_photo_count: int
    damage_photo_paths: list[str]
    damage_photo_urls: list[str]
    checked_at: datetime
    url_expires_in: int | None = None


class SweepFailureResponse(BaseModel):
    booking_id: str
    error: str


class SweepSummaryResponse(BaseModel):
    scanned: int
    completed: int
    already_completed: int
    failed: int
    failures: list[SweepFailureResponse] = Field(default_factory=list)


class MigrationResponse(BaseModel):
    scanned: int
    updated: int
    unchanged: int
