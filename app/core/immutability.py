"""Immutability enforcement for the booking ledger and booking audit fields.

Uses SQLAlchemy mapper events so that any code path, not just the services,
is stopped before it rewrites history.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import event, inspect

from app.core.exceptions import ImmutabilityViolationError
from app.domain.booking_state import can_transition, parse_status

logger = logging.getLogger(__name__)

# Booking columns that may be set once and never changed afterwards.
BOOKING_WRITE_ONCE_FIELDS = (
    "renter_id",
    "owner_id",
    "start_time",
    "end_time",
    "start_host_confirmed_at",
    "start_renter_confirmed_at",
    "end_host_confirmed_at",
    "end_renter_confirmed_at",
    "completion_host_confirmed_at",
    "completion_renter_confirmed_at",
    "commission_rate",
    "platform_fee",
    "host_earning",
    "settled_at",
    "admin_approved_at",
    "admin_approved_by",
    "started_at",
    "ended_at",
    "completed_at",
)

_registered = False


def _violation(model_name: str, operation: str, record_id: str, reason: str = "") -> ImmutabilityViolationError:
    logger.error(
        f"IMMUTABILITY_VIOLATION: Attempted to {operation} {model_name} "
        f"record_id={record_id} {reason} at {datetime.now(UTC).isoformat()}".rstrip()
    )
    message = f"Immutability violation: Cannot {operation} {model_name} record {record_id}"
    if reason:
        message = f"{message} ({reason})"
    return ImmutabilityViolationError(message)


def check_booking_update(target) -> None:
    """Reject rewrites of write-once booking fields and backwards status moves."""
    state = inspect(target)

    for name in BOOKING_WRITE_ONCE_FIELDS:
        history = state.attrs[name].history
        if not history.has_changes():
            continue
        previous = [value for value in history.deleted if value is not None]
        if previous:
            raise _violation("Booking", "UPDATE", str(target.id), f"{name} is write-once")

    status_history = state.attrs["status"].history
    if status_history.has_changes() and status_history.deleted:
        old_status = status_history.deleted[0]
        new_status = target.status
        # Unknown stored values are legacy names awaiting migration
        if parse_status(old_status) is not None and not can_transition(old_status, new_status):
            raise _violation(
                "Booking",
                "UPDATE",
                str(target.id),
                f"status cannot move from {old_status} to {new_status}",
            )


def register_immutability_enforcement() -> None:
    """Register SQLAlchemy event listeners for immutability enforcement.

    Must be called after models are imported but before session use.
    Safe to call more than once.
    """
    global _registered
    if _registered:
        return

    from app.models.booking import Booking
    from app.models.ledger import BookingTransaction

    # ============ BookingTransaction: Append-Only ============

    @event.listens_for(BookingTransaction, "before_update")
    def prevent_ledger_update(mapper, connection, target):
        raise _violation("BookingTransaction", "UPDATE", str(target.id))

    @event.listens_for(BookingTransaction, "before_delete")
    def prevent_ledger_delete(mapper, connection, target):
        raise _violation("BookingTransaction", "DELETE", str(target.id))

    # ============ Booking: write-once audit fields ============

    @event.listens_for(Booking, "before_update")
    def guard_booking_update(mapper, connection, target):
        check_booking_update(target)

    @event.listens_for(Booking, "before_delete")
    def prevent_booking_delete(mapper, connection, target):
        raise _violation("Booking", "DELETE", str(target.id))

    _registered = True
    logger.info("Immutability enforcement registered for booking ledger")
