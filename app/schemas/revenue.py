"""Host revenue schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class RevenueBookingLine(BaseModel):
    booking_id: str
    gross: Decimal
    platform_fee: Decimal
    host_earning: Decimal
    status: str
    vehicle_id: str | None
    settled_at: datetime | None


class HostRevenueResponse(BaseModel):
    owner_id: str
    gross: Decimal
    platform_fee: Decimal
    net: Decimal
    booking_count: int
    bookings: list[RevenueBookingLine]
    start: datetime | None = None
    end: datetime | None = None
