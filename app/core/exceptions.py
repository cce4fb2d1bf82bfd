"""Custom application exceptions.

Every failure surfaced to a caller carries a kind (the broad category a
client switches on) and a machine-readable code (the specific reason).
"""

from enum import Enum
from typing import Any

from fastapi import HTTPException, status


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_ARGUMENT = "invalid-argument"
    PERMISSION_DENIED = "permission-denied"
    NOT_FOUND = "not-found"
    FAILED_PRECONDITION = "failed-precondition"
    ALREADY_EXISTS = "already-exists"
    INTERNAL = "internal"


class ErrorCode(str, Enum):
    # Evidence
    VIDEO_REQUIRED = "VIDEO_REQUIRED"
    DAMAGE_PHOTOS_REQUIRED = "DAMAGE_PHOTOS_REQUIRED"
    RETURN_VIDEO_REQUIRED = "RETURN_VIDEO_REQUIRED"
    # State
    INVALID_STATE = "INVALID_STATE"
    DUPLICATE_ACTION = "DUPLICATE_ACTION"
    TIME_NOT_REACHED = "TIME_NOT_REACHED"
    # Auth
    UNAUTHENTICATED = "UNAUTHENTICATED"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_ACTOR = "INVALID_ACTOR"
    # Resource
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    # Input
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    # Internal
    TRANSACTION_CONFLICT = "TRANSACTION_CONFLICT"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    IMMUTABLE_RECORD = "IMMUTABLE_RECORD"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(HTTPException):
    """Base application exception."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        self.code = code
        self.details = details or {}
        self.retryable = retryable
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "detail": self.detail,
            "kind": self.kind.value,
            "code": self.code.value,
        }
        if self.details:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class AuthenticationError(AppException):
    """Authentication failed exception."""

    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
            code=ErrorCode.UNAUTHENTICATED,
        )


class ValidationError(AppException):
    """Malformed or out-of-range input."""

    kind = ErrorKind.INVALID_ARGUMENT

    def __init__(
        self,
        detail: str = "Validation failed",
        code: ErrorCode = ErrorCode.INVALID_ARGUMENT,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            code=code,
            details=details,
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    kind = ErrorKind.PERMISSION_DENIED

    def __init__(
        self,
        detail: str = "You don't have permission to access this resource",
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
    ) -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail, code=code)


class NotFoundError(AppException):
    """Resource not found exception."""

    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        resource: str = "Resource",
        identifier: str | None = None,
        code: ErrorCode = ErrorCode.BOOKING_NOT_FOUND,
    ) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail, code=code)


class FailedPreconditionError(AppException):
    """The booking is not in a state that allows the operation."""

    kind = ErrorKind.FAILED_PRECONDITION

    def __init__(
        self,
        detail: str = "This operation is not allowed for the current booking status",
        code: ErrorCode = ErrorCode.INVALID_STATE,
        details: dict[str, Any] | None = None,
        required_action: str | None = None,
    ) -> None:
        details = dict(details or {})
        if required_action:
            details["required_action"] = required_action
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            code=code,
            details=details,
        )


class AlreadyExistsError(AppException):
    """The caller already performed this action."""

    kind = ErrorKind.ALREADY_EXISTS

    def __init__(
        self,
        detail: str = "This action has already been performed",
        code: ErrorCode = ErrorCode.DUPLICATE_ACTION,
    ) -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail, code=code)


class InternalError(AppException):
    """Unexpected or transient failure. Retryable errors map to 503."""

    kind = ErrorKind.INTERNAL

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        retryable: bool = False,
    ) -> None:
        status_code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if retryable
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        super().__init__(status_code=status_code, detail=detail, code=code, retryable=retryable)


class ImmutabilityViolationError(InternalError):
    """Raised when code attempts to rewrite an append-only or write-once record."""

    def __init__(self, detail: str = "Record is immutable") -> None:
        super().__init__(detail=detail, code=ErrorCode.IMMUTABLE_RECORD)
