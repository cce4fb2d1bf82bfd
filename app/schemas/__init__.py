"""Pydantic schemas for API request/response validation."""

from app.schemas.booking import (
    ApprovalResponse,
    BookingResponse,
    CompletionResponse,
    ConfirmationResponse,
    ConfirmEndRequest,
    ConfirmRequest,
    EvidenceStatusResponse,
    MigrationResponse,
    SweepSummaryResponse,
    TransactionResponse,
)
from app.schemas.revenue import HostRevenueResponse, RevenueBookingLine

__all__ = [
    # Booking
    "ConfirmRequest",
    "ConfirmEndRequest",
    "ConfirmationResponse",
    "CompletionResponse",
    "ApprovalResponse",
    "BookingResponse",
    "TransactionResponse",
    "EvidenceStatusResponse",
    # Admin
    "SweepSummaryResponse",
    "MigrationResponse",
    # Revenue
    "HostRevenueResponse",
    "RevenueBookingLine",
]
