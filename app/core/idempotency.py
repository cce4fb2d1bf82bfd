"""Deterministic transaction ids for the booking ledger.

A phase transition is recorded exactly once because its ledger id is derived
from the booking id and the transaction type. Any retry, replay or racing
writer computes the same id and collides on the primary key instead of
writing a second entry.
"""

from enum import Enum

from app.core.exceptions import ValidationError


def generate_transaction_id(booking_id: str, transaction_type: str | Enum) -> str:
    """Build the ledger id for a booking transaction.

    Args:
        booking_id: Booking the transaction belongs to
        transaction_type: One of the ledger transaction types

    Returns:
        ``"{booking_id}_{type}"``, byte-compatible with existing ledger rows
    """
    if not booking_id or not str(booking_id).strip():
        raise ValidationError("booking_id is required")
    type_value = transaction_type.value if isinstance(transaction_type, Enum) else str(transaction_type)
    if not type_value:
        raise ValidationError("transaction type is required")
    return f"{booking_id}_{type_value}"

