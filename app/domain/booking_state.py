"""Booking state machine and confirmation phases."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union

from app.core.exceptions import FailedPreconditionError
from app.domain import evidence
from app.domain.evidence import EvidenceRequirement


class BookingStatus(str, Enum):
    REQUESTED = "requested"
    PENDING_ADMIN_APPROVAL = "pending_admin_approval"
    HOST_APPROVED = "host_approved"
    ADMIN_APPROVED = "admin_approved"
    STARTED = "started"
    ENDED = "ended"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Status names written before the admin approval step existed. Bare
# requests now wait for admin approval, so they move with legacy "pending".
LEGACY_STATUS_MAP = {
    "requested": BookingStatus.PENDING_ADMIN_APPROVAL,
    "pending": BookingStatus.PENDING_ADMIN_APPROVAL,
    "approved": BookingStatus.HOST_APPROVED,
}

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.REQUESTED: {
        BookingStatus.PENDING_ADMIN_APPROVAL,
        BookingStatus.HOST_APPROVED,
        BookingStatus.ADMIN_APPROVED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.PENDING_ADMIN_APPROVAL: {BookingStatus.ADMIN_APPROVED, BookingStatus.CANCELLED},
    BookingStatus.HOST_APPROVED: {BookingStatus.STARTED, BookingStatus.CANCELLED},
    BookingStatus.ADMIN_APPROVED: {BookingStatus.STARTED, BookingStatus.CANCELLED},
    BookingStatus.STARTED: {BookingStatus.ENDED},
    BookingStatus.ENDED: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


def parse_status(value: str | BookingStatus) -> BookingStatus | None:
    """Return the enum member for a stored status, or None for unknown/legacy values."""
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(value)
    except ValueError:
        return None


def is_terminal_state(status: str | BookingStatus) -> bool:
    parsed = parse_status(status)
    return parsed is not None and not BOOKING_TRANSITIONS[parsed]


def can_transition(current: str | BookingStatus, target: str | BookingStatus) -> bool:
    parsed_current = parse_status(current)
    parsed_target = parse_status(target)
    if parsed_current is None or parsed_target is None:
        return False
    return parsed_target in BOOKING_TRANSITIONS[parsed_current]


def assert_booking_transition(current: str | BookingStatus, target: str | BookingStatus) -> None:
    if not can_transition(current, target):
        current_value = current.value if isinstance(current, BookingStatus) else current
        target_value = target.value if isinstance(target, BookingStatus) else target
        raise FailedPreconditionError(
            f"Invalid booking transition: {current_value} → {target_value}",
            details={"current_status": current_value, "target_status": target_value},
        )


class Phase(str, Enum):
    START = "start"
    END = "end"
    COMPLETION = "completion"


class Actor(str, Enum):
    RENTER = "renter"
    HOST = "host"

    @property
    def other(self) -> "Actor":
        return Actor.HOST if self is Actor.RENTER else Actor.RENTER


SYSTEM_ACTOR = "system"


class TransactionType(str, Enum):
    BOOKING_STARTED = "booking_started"
    BOOKING_ENDED = "booking_ended"
    BOOKING_COMPLETED = "booking_completed"
    FUNDS_RECEIVED = "funds_received"


class LedgerOverride(str, Enum):
    """Why a phase entry was written without both parties confirming."""

    SCHEDULED_SWEEP = "scheduled_sweep"
    ADMIN = "admin"


@dataclass(frozen=True)
class Unconfirmed:
    @property
    def is_confirmed(self) -> bool:
        return False


@dataclass(frozen=True)
class ConfirmedBy:
    actor: Actor
    confirmed_at: datetime

    @property
    def is_confirmed(self) -> bool:
        return True


ConfirmationState = Union[Unconfirmed, ConfirmedBy]

UNCONFIRMED = Unconfirmed()


def _start_evidence(actor: Actor, hints: dict[str, Any]) -> Optional[EvidenceRequirement]:
    if actor is Actor.HOST:
        return evidence.HOST_START_VIDEO
    return evidence.RENTER_START_VIDEO


def _end_evidence(actor: Actor, hints: dict[str, Any]) -> Optional[EvidenceRequirement]:
    if actor is Actor.HOST and hints.get("has_damage"):
        return evidence.DAMAGE_PHOTOS
    return None


def _completion_evidence(actor: Actor, hints: dict[str, Any]) -> Optional[EvidenceRequirement]:
    if actor is Actor.HOST:
        return evidence.RETURN_VIDEO
    return None


@dataclass(frozen=True)
class PhaseDescriptor:
    """Everything the confirmation executor needs to know about one phase."""

    phase: Phase
    required_statuses: frozenset[BookingStatus]
    terminal_status: BookingStatus
    ledger_type: TransactionType
    timestamp_attr: str
    evidence_for: Callable[[Actor, dict[str, Any]], Optional[EvidenceRequirement]]
    # Other ledger types whose presence also proves the phase happened
    also_recorded_by: tuple[TransactionType, ...] = ()
    boundary_attr: Optional[str] = None
    first_actor: Optional[Actor] = None
    duplicate_is_error: bool = True
    settles: bool = False
    completed_message: str = ""
    already_done_message: str = ""
    waiting_messages: dict[Actor, str] = field(default_factory=dict)

    @property
    def recorded_by(self) -> tuple[TransactionType, ...]:
        return (self.ledger_type, *self.also_recorded_by)

    def waiting_message(self, actor: Actor) -> str:
        return self.waiting_messages.get(
            actor, f"Waiting for {actor.other.value} confirmation"
        )


PHASES: dict[Phase, PhaseDescriptor] = {
    Phase.START: PhaseDescriptor(
        phase=Phase.START,
        required_statuses=frozenset({BookingStatus.HOST_APPROVED, BookingStatus.ADMIN_APPROVED}),
        terminal_status=BookingStatus.STARTED,
        ledger_type=TransactionType.BOOKING_STARTED,
        timestamp_attr="started_at",
        evidence_for=_start_evidence,
        also_recorded_by=(TransactionType.FUNDS_RECEIVED,),
        boundary_attr="start_time",
        first_actor=Actor.HOST,
        duplicate_is_error=False,
        settles=True,
        completed_message="Both parties confirmed. Trip has started.",
        already_done_message="Trip has already started",
        waiting_messages={
            Actor.HOST: "Host confirmed. Waiting for renter to confirm.",
            Actor.RENTER: "Renter confirmed.",
        },
    ),
    Phase.END: PhaseDescriptor(
        phase=Phase.END,
        required_statuses=frozenset({BookingStatus.STARTED}),
        terminal_status=BookingStatus.ENDED,
        ledger_type=TransactionType.BOOKING_ENDED,
        timestamp_attr="ended_at",
        evidence_for=_end_evidence,
        boundary_attr="end_time",
        completed_message="Both parties confirmed. Trip has ended.",
        already_done_message="Booking already ended by both parties",
    ),
    Phase.COMPLETION: PhaseDescriptor(
        phase=Phase.COMPLETION,
        required_statuses=frozenset({BookingStatus.ENDED}),
        terminal_status=BookingStatus.COMPLETED,
        ledger_type=TransactionType.BOOKING_COMPLETED,
        timestamp_attr="completed_at",
        evidence_for=_completion_evidence,
        completed_message="Booking completed successfully",
        already_done_message="Booking has already been completed by both parties",
    ),
}


def get_phase(phase: str | Phase) -> PhaseDescriptor:
    return PHASES[Phase(phase)]
