"""Two-party confirmation protocol for booking phases.

Start, end and completion all follow the same shape: each party confirms
once, guards are checked before anything is written, and the confirmation
that makes both parties confirmed advances the booking and writes the phase
ledger entry in the same transaction. The phases differ only in the data
held by their PhaseDescriptor.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    AlreadyExistsError,
    AuthorizationError,
    ErrorCode,
    FailedPreconditionError,
    NotFoundError,
    ValidationError,
)
from app.core.permissions import Principal, require_principal
from app.domain.booking_state import (
    SYSTEM_ACTOR,
    Actor,
    BookingStatus,
    LedgerOverride,
    Phase,
    PhaseDescriptor,
    assert_booking_transition,
    get_phase,
    parse_status,
)
from app.domain.evidence import ArtifactKind, EvidenceRequirement
from app.domain.settlement import settle
from app.models.booking import Booking
from app.services.booking_store import BookingStore
from app.services.evidence_service import EvidenceGate
from app.services.ledger_service import LedgerService, ledger_service
from app.services.notification_service import PhaseEvent, PhaseNotifier
from app.utils.clock import Clock, ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmationResult:
    booking_id: str
    phase: Phase
    actor: Actor
    advanced: bool
    both_confirmed: bool
    already_confirmed: bool
    new_status: str
    message: str


@dataclass(frozen=True)
class CompletionResult:
    booking_id: str
    completed: bool
    already_completed: bool
    new_status: str
    message: str


def _status_value(status: str | BookingStatus) -> str:
    return status.value if isinstance(status, BookingStatus) else status


def parse_actor(actor: str | Actor) -> Actor:
    try:
        return Actor(actor)
    except ValueError:
        raise ValidationError(
            f"Invalid actor '{actor}', expected 'renter' or 'host'",
            code=ErrorCode.INVALID_ACTOR,
        )


def require_booking_id(booking_id: str | None) -> str:
    if not booking_id or not str(booking_id).strip():
        raise ValidationError("bookingId is required")
    return str(booking_id).strip()


class ConfirmationService:
    """Executes confirmations for any phase described by a PhaseDescriptor."""

    def __init__(
        self,
        store: BookingStore,
        evidence_gate: EvidenceGate,
        notifier: PhaseNotifier | None = None,
        ledger: LedgerService | None = None,
        clock: Clock = utcnow,
        commission_rate: Decimal | None = None,
    ) -> None:
        self.store = store
        self.evidence_gate = evidence_gate
        self.notifier = notifier
        self.ledger = ledger or ledger_service
        self.clock = clock
        self.commission_rate = (
            settings.platform_commission_rate if commission_rate is None else commission_rate
        )

    # ==================== PUBLIC OPERATIONS ====================

    async def confirm_start(self, booking_id: str, principal: Principal | None, actor: str | Actor) -> ConfirmationResult:
        return await self.confirm(booking_id, principal, actor, Phase.START)

    async def confirm_end(
        self,
        booking_id: str,
        principal: Principal | None,
        actor: str | Actor,
        has_damage: bool = False,
    ) -> ConfirmationResult:
        return await self.confirm(booking_id, principal, actor, Phase.END, {"has_damage": has_damage})

    async def confirm_completion(
        self, booking_id: str, principal: Principal | None, actor: str | Actor
    ) -> ConfirmationResult:
        return await self.confirm(booking_id, principal, actor, Phase.COMPLETION)

    async def confirm(
        self,
        booking_id: str,
        principal: Principal | None,
        actor: str | Actor,
        phase: str | Phase,
        hints: dict[str, Any] | None = None,
    ) -> ConfirmationResult:
        """Record one party's confirmation for a phase.

        Args:
            booking_id: Booking to confirm
            principal: Authenticated caller
            actor: Role the caller claims on the booking
            phase: start, end or completion
            hints: Phase-specific input, e.g. ``has_damage`` for end

        Returns:
            ConfirmationResult describing what, if anything, changed
        """
        principal = require_principal(principal)
        booking_id = require_booking_id(booking_id)
        actor = parse_actor(actor)
        descriptor = get_phase(phase)
        hints = hints or {}

        async def work(session: AsyncSession) -> tuple[ConfirmationResult, PhaseEvent | None]:
            return await self._confirm_in_transaction(
                session, booking_id, principal, actor, descriptor, hints
            )

        result, event = await self.store.run(work, label=f"confirm_{descriptor.phase.value}:{booking_id}")
        logger.info(
            f"Booking {booking_id} {descriptor.phase.value} confirmation by {actor.value}: "
            f"advanced={result.advanced} both_confirmed={result.both_confirmed} "
            f"status={result.new_status}"
        )
        await self._notify(event)
        return result

    async def complete_as_system(
        self,
        booking_id: str,
        override: LedgerOverride = LedgerOverride.SCHEDULED_SWEEP,
        admin_id: str | None = None,
    ) -> CompletionResult:
        """Complete an ended booking without waiting for both parties.

        Used by the scheduled sweep and by the admin override. Idempotent:
        a booking that already has its completion entry is reported as
        already completed and nothing is written.
        """
        booking_id = require_booking_id(booking_id)
        actor = f"admin:{admin_id}" if admin_id else SYSTEM_ACTOR

        async def work(session: AsyncSession) -> tuple[CompletionResult, PhaseEvent | None]:
            return await self._complete_in_transaction(session, booking_id, actor, override)

        result, event = await self.store.run(work, label=f"complete:{booking_id}")
        if result.completed:
            logger.info(f"Booking {booking_id} completed by {actor} (override={override.value})")
        await self._notify(event)
        return result

    # ==================== TRANSACTION BODIES ====================

    async def _confirm_in_transaction(
        self,
        session: AsyncSession,
        booking_id: str,
        principal: Principal,
        actor: Actor,
        descriptor: PhaseDescriptor,
        hints: dict[str, Any],
    ) -> tuple[ConfirmationResult, PhaseEvent | None]:
        # Phase already recorded: replay as success
        if await self.ledger.any_exists(session, booking_id, descriptor.recorded_by):
            booking = await session.get(Booking, booking_id)
            return self._already_done(booking_id, descriptor, actor, booking), None

        booking = await self.store.get_booking_for_update(session, booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)

        # A concurrent winner may have committed while we waited for the lock
        if await self.ledger.any_exists(session, booking_id, descriptor.recorded_by):
            return self._already_done(booking_id, descriptor, actor, booking), None

        if booking.party_for(actor) != principal.user_id:
            raise AuthorizationError(
                f"Only the booking's {actor.value} can confirm {descriptor.phase.value}",
                code=ErrorCode.UNAUTHORIZED,
            )

        self._check_status(booking, descriptor)

        if booking.confirmation(descriptor.phase, actor).is_confirmed:
            if descriptor.duplicate_is_error:
                raise AlreadyExistsError(
                    f"{actor.value.capitalize()} has already confirmed {descriptor.phase.value}"
                )
            return (
                ConfirmationResult(
                    booking_id=booking_id,
                    phase=descriptor.phase,
                    actor=actor,
                    advanced=False,
                    both_confirmed=booking.both_confirmed(descriptor.phase),
                    already_confirmed=True,
                    new_status=booking.status,
                    message=f"{actor.value.capitalize()} has already confirmed trip {descriptor.phase.value}",
                ),
                None,
            )

        if descriptor.first_actor is not None and actor is not descriptor.first_actor:
            if not booking.confirmation(descriptor.phase, descriptor.first_actor).is_confirmed:
                raise FailedPreconditionError(
                    f"{descriptor.first_actor.value.capitalize()} must confirm "
                    f"{descriptor.phase.value} before the {actor.value}",
                    details={"waiting_for": descriptor.first_actor.value},
                )

        now = self.clock()
        self._check_time(booking, descriptor, now)

        requirement = descriptor.evidence_for(actor, hints)
        if requirement is not None:
            await self._check_evidence(booking_id, requirement)

        booking.record_confirmation(descriptor.phase, actor, now)
        if descriptor.phase is Phase.END and actor is Actor.HOST and hints.get("has_damage"):
            booking.damage_reported = True

        both_confirmed = booking.both_confirmed(descriptor.phase)
        if both_confirmed:
            self._advance(
                session,
                booking,
                descriptor,
                now,
                metadata={"completed_by": actor.value},
            )
            message = descriptor.completed_message
        else:
            message = descriptor.waiting_message(actor)

        result = ConfirmationResult(
            booking_id=booking_id,
            phase=descriptor.phase,
            actor=actor,
            advanced=both_confirmed,
            both_confirmed=both_confirmed,
            already_confirmed=False,
            new_status=booking.status,
            message=message,
        )
        event = PhaseEvent(
            booking_id=booking_id,
            phase=descriptor.phase.value,
            actor=actor.value,
            new_status=booking.status,
            both_confirmed=both_confirmed,
            renter_id=booking.renter_id,
            owner_id=booking.owner_id,
        )
        return result, event

    async def _complete_in_transaction(
        self,
        session: AsyncSession,
        booking_id: str,
        actor: str,
        override: LedgerOverride,
    ) -> tuple[CompletionResult, PhaseEvent | None]:
        descriptor = get_phase(Phase.COMPLETION)

        if await self.ledger.any_exists(session, booking_id, descriptor.recorded_by):
            return self._already_completed(booking_id), None

        booking = await self.store.get_booking_for_update(session, booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)

        if await self.ledger.any_exists(session, booking_id, descriptor.recorded_by):
            return self._already_completed(booking_id), None

        if booking.status == BookingStatus.COMPLETED.value:
            logger.warning(f"Booking {booking_id} is completed but has no completion ledger entry")
            return self._already_completed(booking_id), None

        self._check_status(booking, descriptor)

        self._advance(
            session,
            booking,
            descriptor,
            self.clock(),
            actor=actor,
            override=override,
        )

        result = CompletionResult(
            booking_id=booking_id,
            completed=True,
            already_completed=False,
            new_status=booking.status,
            message=descriptor.completed_message,
        )
        event = PhaseEvent(
            booking_id=booking_id,
            phase=descriptor.phase.value,
            actor=actor,
            new_status=booking.status,
            both_confirmed=booking.both_confirmed(descriptor.phase),
            renter_id=booking.renter_id,
            owner_id=booking.owner_id,
            override=override.value,
        )
        return result, event

    # ==================== GUARDS & EFFECTS ====================

    @staticmethod
    def _check_status(booking: Booking, descriptor: PhaseDescriptor) -> None:
        status = parse_status(booking.status)
        if status not in descriptor.required_statuses:
            required = sorted(s.value for s in descriptor.required_statuses)
            raise FailedPreconditionError(
                f"Cannot confirm {descriptor.phase.value}: booking must be "
                f"{' or '.join(required)}, current status is {booking.status}",
                details={"required_status": required, "current_status": booking.status},
            )

    @staticmethod
    def _check_time(booking: Booking, descriptor: PhaseDescriptor, now: datetime) -> None:
        if descriptor.boundary_attr is None:
            return
        boundary = ensure_utc(getattr(booking, descriptor.boundary_attr))
        if now < boundary:
            raise FailedPreconditionError(
                f"Cannot confirm {descriptor.phase.value} before {boundary.isoformat()}",
                code=ErrorCode.TIME_NOT_REACHED,
                details={descriptor.boundary_attr: boundary.isoformat()},
            )

    async def _check_evidence(self, booking_id: str, requirement: EvidenceRequirement) -> None:
        if requirement.kind is ArtifactKind.DAMAGE_PHOTO:
            count = await self.evidence_gate.count_damage_photos(booking_id)
            present = count >= requirement.min_count
        else:
            present = await self.evidence_gate.exists(booking_id, requirement.kind)

        if not present:
            raise FailedPreconditionError(
                requirement.message,
                code=requirement.code,
                required_action=requirement.required_action,
            )

    def _advance(
        self,
        session: AsyncSession,
        booking: Booking,
        descriptor: PhaseDescriptor,
        now: datetime,
        actor: str = SYSTEM_ACTOR,
        override: LedgerOverride | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Move the booking to the phase's terminal status and write its ledger entries."""
        assert_booking_transition(booking.status, descriptor.terminal_status)
        booking.status = descriptor.terminal_status.value
        setattr(booking, descriptor.timestamp_attr, now)

        self.ledger.add_phase_entry(
            session,
            booking,
            descriptor.ledger_type,
            actor=actor,
            override=override,
            metadata=metadata,
        )

        if descriptor.settles:
            split = settle(booking.amount_paid, self.commission_rate)
            booking.commission_rate = split.commission_rate
            booking.platform_fee = split.fee
            booking.host_earning = split.host_earning
            booking.settled_at = now
            self.ledger.add_funds_received(session, booking, split)
            logger.info(
                f"Booking {booking.id} settled: gross={split.gross} fee={split.fee} "
                f"host_earning={split.host_earning}"
            )

    # ==================== HELPERS ====================

    @staticmethod
    def _already_done(
        booking_id: str, descriptor: PhaseDescriptor, actor: Actor, booking: Booking | None
    ) -> ConfirmationResult:
        status = booking.status if booking is not None else descriptor.terminal_status.value
        return ConfirmationResult(
            booking_id=booking_id,
            phase=descriptor.phase,
            actor=actor,
            advanced=False,
            both_confirmed=True,
            already_confirmed=True,
            new_status=_status_value(status),
            message=descriptor.already_done_message,
        )

    @staticmethod
    def _already_completed(booking_id: str) -> CompletionResult:
        return CompletionResult(
            booking_id=booking_id,
            completed=False,
            already_completed=True,
            new_status=BookingStatus.COMPLETED.value,
            message="Booking is already completed",
        )

    async def _notify(self, event: PhaseEvent | None) -> None:
        if event is None or self.notifier is None:
            return
        try:
            await self.notifier.publish_phase_changed(event)
        except Exception:
            logger.exception(f"Failed to publish phase event for booking {event.booking_id}")
