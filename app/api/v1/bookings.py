"""Booking confirmation endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_confirmation_service,
    get_current_principal,
    get_db,
    get_evidence_gate,
    require_booking_access,
)
from app.core.permissions import Principal
from app.models.booking import Booking
from app.schemas.booking import (
    ArtifactStatusResponse,
    BookingResponse,
    ConfirmationResponse,
    ConfirmEndRequest,
    ConfirmRequest,
    EvidenceStatusResponse,
    TransactionResponse,
)
from app.services.confirmation_service import ConfirmationResult, ConfirmationService
from app.services.evidence_service import S3EvidenceGate
from app.services.ledger_service import ledger_service

router = APIRouter()


def _to_response(result: ConfirmationResult) -> ConfirmationResponse:
    return ConfirmationResponse(
        booking_id=result.booking_id,
        phase=result.phase,
        actor=result.actor,
        advanced=result.advanced,
        both_confirmed=result.both_confirmed,
        already_confirmed=result.already_confirmed,
        new_status=result.new_status,
        message=result.message,
    )


@router.post("/{booking_id}/confirm-start", response_model=ConfirmationResponse)
async def confirm_start(
    booking_id: str,
    request: ConfirmRequest,
    principal: Annotated[Principal, Depends(get_current_principal)],
    service: Annotated[ConfirmationService, Depends(get_confirmation_service)],
) -> ConfirmationResponse:
    """Confirm trip start. The host confirms first, then the renter."""
    result = await service.confirm_start(booking_id, principal, request.actor)
    return _to_response(result)


@router.post("/{booking_id}/confirm-end", response_model=ConfirmationResponse)
async def confirm_end(
    booking_id: str,
    request: ConfirmEndRequest,
    principal: Annotated[Principal, Depends(get_current_principal)],
    service: Annotated[ConfirmationService, Depends(get_confirmation_service)],
) -> ConfirmationResponse:
    """Confirm trip end. A host reporting damage must have uploaded damage photos."""
    result = await service.confirm_end(
        booking_id, principal, request.actor, has_damage=request.has_damage
    )
    return _to_response(result)


@router.post("/{booking_id}/confirm-completion", response_model=ConfirmationResponse)
async def confirm_completion(
    booking_id: str,
    request: ConfirmRequest,
    principal: Annotated[Principal, Depends(get_current_principal)],
    service: Annotated[ConfirmationService, Depends(get_confirmation_service)],
) -> ConfirmationResponse:
    """Confirm completion. The host must have uploaded the return video."""
    result = await service.confirm_completion(booking_id, principal, request.actor)
    return _to_response(result)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking: Annotated[Booking, Depends(require_booking_access)],
) -> BookingResponse:
    return BookingResponse.from_booking(booking)


@router.get("/{booking_id}/transactions", response_model=list[TransactionResponse])
async def list_booking_transactions(
    booking: Annotated[Booking, Depends(require_booking_access)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[TransactionResponse]:
    entries = await ledger_service.list_for_booking(db, booking.id)
    return [TransactionResponse.model_validate(entry) for entry in entries]


@router.get("/{booking_id}/evidence", response_model=EvidenceStatusResponse)
async def get_evidence_status(
    booking: Annotated[Booking, Depends(require_booking_access)],
    gate: Annotated[S3EvidenceGate, Depends(get_evidence_gate)],
    include_urls: bool = Query(True),
) -> EvidenceStatusResponse:
    """Report uploaded evidence with short-lived download URLs."""
    status = await gate.get_evidence_status(booking.id, include_urls=include_urls)
    return EvidenceStatusResponse(
        booking_id=status.booking_id,
        host_start_video=ArtifactStatusResponse(**vars(status.host_start_video)),
        renter_start_video=ArtifactStatusResponse(**vars(status.renter_start_video)),
        return_video=ArtifactStatusResponse(**vars(status.return_video)),
        damage_photos_uploaded=status.damage_photo_count > 0,
        damage_photo_count=status.damage_photo_count,
        damage_photo_paths=status.damage_photo_paths,
        damage_photo_urls=status.damage_photo_urls,
        checked_at=status.checked_at,
        url_expires_in=status.url_expires_in,
    )
