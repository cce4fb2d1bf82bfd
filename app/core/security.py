"""Bearer token handling.

Tokens are issued by the identity provider; this service only verifies them
and turns the claims into a Principal. ``create_access_token`` exists for
local tooling and tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Iterable

from jose import JWTError, jwt

from app.config import settings
from app.core.exceptions import AuthenticationError
from app.core.permissions import Principal


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_user_token(user_id: str, roles: Iterable[str] = (), expires_delta: timedelta | None = None) -> str:
    return create_access_token(
        {"sub": user_id, settings.jwt_roles_claim: sorted(roles)},
        expires_delta=expires_delta,
    )


def verify_token(token: str, token_type: str = "access") -> dict[str, Any]:
    """Verify and decode a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")
    if payload.get("type") != token_type:
        raise AuthenticationError("Invalid token type")
    return payload


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    roles = payload.get(settings.jwt_roles_claim) or []
    if isinstance(roles, str):
        roles = [roles]
    # Single boolean admin claim used by some identity providers
    if payload.get("admin") is True:
        roles = [*roles, "admin"]
    return Principal(user_id=str(user_id), roles=frozenset(str(role) for role in roles))
