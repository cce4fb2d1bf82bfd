"""Principals and the admin authorization policy.

There is no built-in super-admin identity. Privileged operations ask an
injected AuthorizationPolicy, configured from role claims and an optional
allow-list of user ids.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from app.core.exceptions import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as asserted by the identity provider."""

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)


class AuthorizationPolicy(Protocol):
    def is_admin(self, principal: Principal) -> bool: ...


class ClaimsAuthorizationPolicy:
    """Admin if the principal carries an admin role claim or is allow-listed."""

    def __init__(self, admin_roles: Iterable[str] = ("admin",), admin_user_ids: Iterable[str] = ()):
        self.admin_roles = frozenset(admin_roles)
        self.admin_user_ids = frozenset(admin_user_ids)

    def is_admin(self, principal: Principal) -> bool:
        if principal.user_id in self.admin_user_ids:
            return True
        return bool(self.admin_roles & principal.roles)


def require_principal(principal: Principal | None) -> Principal:
    if principal is None or not principal.user_id:
        raise AuthenticationError("User must be authenticated")
    return principal


def require_admin(policy: AuthorizationPolicy, principal: Principal | None, action: str) -> Principal:
    """Raise unless the policy grants admin to the principal. Decisions are logged."""
    principal = require_principal(principal)
    if not policy.is_admin(principal):
        logger.warning(f"AUTHZ_DENIED: user={principal.user_id} action={action}")
        raise AuthorizationError(f"Admin access required to {action}")
    logger.info(f"AUTHZ_GRANTED: user={principal.user_id} action={action}")
    return principal


def can_view_booking(policy: AuthorizationPolicy, principal: Principal, booking) -> bool:
    """Parties to the booking and admins may read it."""
    return booking.is_party(principal.user_id) or policy.is_admin(principal)
