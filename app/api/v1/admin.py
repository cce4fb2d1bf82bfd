"""Admin booking endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import get_admin_service, get_current_admin, get_current_principal, get_sweep_service
from app.core.permissions import Principal
from app.schemas.booking import (
    ApprovalResponse,
    CompletionResponse,
    MigrationResponse,
    SweepSummaryResponse,
)
from app.services.booking_admin_service import BookingAdminService
from app.services.sweep_service import SweepService

router = APIRouter()


@router.post("/bookings/sweep", response_model=SweepSummaryResponse)
async def run_sweep(
    admin: Annotated[Principal, Depends(get_current_admin)],
    sweep_service: Annotated[SweepService, Depends(get_sweep_service)],
) -> SweepSummaryResponse:
    """Complete stalled ended bookings now instead of waiting for the schedule."""
    summary = await sweep_service.sweep_ended_bookings()
    return SweepSummaryResponse(**summary.to_dict())


@router.post("/bookings/migrate-statuses", response_model=MigrationResponse)
async def migrate_statuses(
    principal: Annotated[Principal, Depends(get_current_principal)],
    service: Annotated[BookingAdminService, Depends(get_admin_service)],
) -> MigrationResponse:
    result = await service.migrate_legacy_statuses(principal)
    return MigrationResponse(scanned=result.scanned, updated=result.updated, unchanged=result.unchanged)


@router.post("/bookings/{booking_id}/complete", response_model=CompletionResponse)
async def complete_booking(
    booking_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    service: Annotated[BookingAdminService, Depends(get_admin_service)],
) -> CompletionResponse:
    """Force an ended booking to completed."""
    result = await service.admin_complete_booking(booking_id, principal)
    return CompletionResponse(
        booking_id=result.booking_id,
        completed=result.completed,
        already_completed=result.already_completed,
        new_status=result.new_status,
        message=result.message,
    )


@router.post("/bookings/{booking_id}/approve", response_model=ApprovalResponse)
async def approve_booking(
    booking_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    service: Annotated[BookingAdminService, Depends(get_admin_service)],
) -> ApprovalResponse:
    result = await service.approve_booking_as_admin(booking_id, principal)
    return ApprovalResponse(
        booking_id=result.booking_id,
        status=result.status,
        already_approved=result.already_approved,
    )
