"""API dependencies for authentication and service wiring."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from app.core.permissions import (
    AuthorizationPolicy,
    ClaimsAuthorizationPolicy,
    Principal,
    can_view_booking,
)
from app.core.security import principal_from_claims, verify_token
from app.database import async_session_maker
from app.models.booking import Booking
from app.services.booking_admin_service import BookingAdminService
from app.services.booking_store import BookingStore
from app.services.confirmation_service import ConfirmationService
from app.services.evidence_service import S3EvidenceGate, evidence_gate
from app.services.notification_service import PhaseNotifier, notification_service
from app.services.sweep_service import SweepService
from app.utils.clock import Clock, utcnow

# Security scheme
security = HTTPBearer(auto_error=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_maker


async def get_db(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


def get_clock() -> Clock:
    return utcnow


def get_evidence_gate() -> S3EvidenceGate:
    return evidence_gate


def get_notifier() -> PhaseNotifier:
    return notification_service


def get_authorization_policy() -> AuthorizationPolicy:
    return ClaimsAuthorizationPolicy(
        admin_roles=settings.admin_roles,
        admin_user_ids=settings.admin_user_ids,
    )


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Principal:
    """Get the authenticated caller from the bearer token."""
    if credentials is None:
        raise AuthenticationError("User must be authenticated")
    payload = verify_token(credentials.credentials, token_type="access")
    return principal_from_claims(payload)


def get_booking_store(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> BookingStore:
    return BookingStore(session_factory)


def get_confirmation_service(
    store: Annotated[BookingStore, Depends(get_booking_store)],
    gate: Annotated[S3EvidenceGate, Depends(get_evidence_gate)],
    notifier: Annotated[PhaseNotifier, Depends(get_notifier)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> ConfirmationService:
    return ConfirmationService(store, gate, notifier=notifier, clock=clock)


def get_sweep_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    confirmation_service: Annotated[ConfirmationService, Depends(get_confirmation_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> SweepService:
    return SweepService(session_factory, confirmation_service, clock=clock)


def get_admin_service(
    store: Annotated[BookingStore, Depends(get_booking_store)],
    confirmation_service: Annotated[ConfirmationService, Depends(get_confirmation_service)],
    policy: Annotated[AuthorizationPolicy, Depends(get_authorization_policy)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> BookingAdminService:
    return BookingAdminService(store, confirmation_service, policy, clock=clock)


async def get_current_admin(
    principal: Annotated[Principal, Depends(get_current_principal)],
    policy: Annotated[AuthorizationPolicy, Depends(get_authorization_policy)],
) -> Principal:
    """Get current principal and verify the policy grants admin."""
    if not policy.is_admin(principal):
        raise AuthorizationError("Admin access required")
    return principal


class BookingAccessChecker:
    """Load a booking the caller is a party to (or any booking, for admins)."""

    async def __call__(
        self,
        booking_id: str,
        principal: Annotated[Principal, Depends(get_current_principal)],
        policy: Annotated[AuthorizationPolicy, Depends(get_authorization_policy)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> Booking:
        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        if not can_view_booking(policy, principal, booking):
            raise AuthorizationError("You don't have permission to access this booking")
        return booking


# Convenience instance
require_booking_access = BookingAccessChecker()
