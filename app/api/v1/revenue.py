"""Host revenue endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_authorization_policy, get_current_principal, get_db
from app.core.exceptions import AuthorizationError
from app.core.permissions import AuthorizationPolicy, Principal
from app.schemas.revenue import HostRevenueResponse, RevenueBookingLine
from app.services.revenue_service import revenue_service

router = APIRouter()


@router.get("/hosts/{owner_id}", response_model=HostRevenueResponse)
async def get_host_revenue(
    owner_id: str,
    principal: Annotated[Principal, Depends(get_current_principal)],
    policy: Annotated[AuthorizationPolicy, Depends(get_authorization_policy)],
    db: Annotated[AsyncSession, Depends(get_db)],
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
) -> HostRevenueResponse:
    """Earnings recorded for a host's completed bookings."""
    if principal.user_id != owner_id and not policy.is_admin(principal):
        raise AuthorizationError("You can only view your own revenue")

    revenue = await revenue_service.get_host_revenue(db, owner_id, start=start, end=end)
    return HostRevenueResponse(
        owner_id=revenue.owner_id,
        gross=revenue.gross,
        platform_fee=revenue.platform_fee,
        net=revenue.net,
        booking_count=revenue.booking_count,
        bookings=[RevenueBookingLine(**vars(line)) for line in revenue.bookings],
        start=start,
        end=end,
    )
