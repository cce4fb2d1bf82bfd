"""Core utilities and security modules."""

from app.core.exceptions import (
    AlreadyExistsError,
    AppException,
    AuthenticationError,
    AuthorizationError,
    ErrorCode,
    ErrorKind,
    FailedPreconditionError,
    ImmutabilityViolationError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from app.core.security import create_access_token, create_user_token, verify_token

__all__ = [
    "AlreadyExistsError",
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "ErrorCode",
    "ErrorKind",
    "FailedPreconditionError",
    "ImmutabilityViolationError",
    "InternalError",
    "NotFoundError",
    "ValidationError",
    "create_access_token",
    "create_user_token",
    "verify_token",
]
