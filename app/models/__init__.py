"""Database models."""

from app.models.booking import Booking
from app.models.ledger import BookingTransaction

__all__ = [
    "Booking",
    "BookingTransaction",
]
