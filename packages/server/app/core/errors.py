"""
Result values and error kinds shared by every auth service.

Services return ``Ok(value)`` or ``Err(DomainError)`` for expected conditions
and never raise for them. Store adapters raise ``StorageFailure``; the
``storage_errors`` decorator turns that into an ``Err`` at the service
boundary. Routes call ``raise_for_error`` to map a kind onto an HTTP status.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

import structlog

log = structlog.get_logger()

T = TypeVar("T")


class ErrorType(str, Enum):
    # not found
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ORGANIZATION_NOT_FOUND = "ORGANIZATION_NOT_FOUND"
    MEMBERSHIP_NOT_FOUND = "MEMBERSHIP_NOT_FOUND"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    CREDENTIAL_NOT_FOUND = "CREDENTIAL_NOT_FOUND"
    INVITATION_NOT_FOUND = "INVITATION_NOT_FOUND"

    # conflict
    ALREADY_MEMBER = "ALREADY_MEMBER"
    CANNOT_LEAVE_PERSONAL_ORG = "CANNOT_LEAVE_PERSONAL_ORG"
    LAST_ADMIN = "LAST_ADMIN"
    CANNOT_CHANGE_OWNER_ROLE = "CANNOT_CHANGE_OWNER_ROLE"
    CANNOT_DELETE_LAST_PASSKEY = "CANNOT_DELETE_LAST_PASSKEY"
    TOKEN_LIMIT_REACHED = "TOKEN_LIMIT_REACHED"
    EMAIL_ALREADY_REGISTERED = "EMAIL_ALREADY_REGISTERED"
    CREDENTIAL_ALREADY_REGISTERED = "CREDENTIAL_ALREADY_REGISTERED"

    # expiry / consumed
    INVITATION_EXPIRED = "INVITATION_EXPIRED"
    INVITATION_ALREADY_ACCEPTED = "INVITATION_ALREADY_ACCEPTED"
    CHALLENGE_EXPIRED = "CHALLENGE_EXPIRED"

    # authentication
    INVALID_TOKEN_FORMAT = "INVALID_TOKEN_FORMAT"
    INVALID_SECRET = "INVALID_SECRET"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SESSION = "INVALID_SESSION"
    INVALID_ADMIN_PASSWORD = "INVALID_ADMIN_PASSWORD"
    UNAUTHENTICATED = "UNAUTHENTICATED"

    # authorization
    NOT_A_MEMBER = "NOT_A_MEMBER"
    NO_MEMBERSHIPS = "NO_MEMBERSHIPS"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    TOKEN_OWNERSHIP_ERROR = "TOKEN_OWNERSHIP_ERROR"
    CREDENTIAL_OWNERSHIP_ERROR = "CREDENTIAL_OWNERSHIP_ERROR"

    # validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    CHALLENGE_INVALID = "CHALLENGE_INVALID"
    INVITATION_EMAIL_MISMATCH = "INVITATION_EMAIL_MISMATCH"

    # storage
    USER_STORAGE_ERROR = "USER_STORAGE_ERROR"
    ORGANIZATION_STORAGE_ERROR = "ORGANIZATION_STORAGE_ERROR"
    MEMBERSHIP_STORAGE_ERROR = "MEMBERSHIP_STORAGE_ERROR"
    TOKEN_STORAGE_ERROR = "TOKEN_STORAGE_ERROR"
    SESSION_STORAGE_ERROR = "SESSION_STORAGE_ERROR"
    CREDENTIAL_STORAGE_ERROR = "CREDENTIAL_STORAGE_ERROR"
    INVITATION_STORAGE_ERROR = "INVITATION_STORAGE_ERROR"

    # boundary
    INTERNAL_ERROR = "INTERNAL_ERROR"


STORAGE_ERRORS = frozenset(
    {
        ErrorType.USER_STORAGE_ERROR,
        ErrorType.ORGANIZATION_STORAGE_ERROR,
        ErrorType.MEMBERSHIP_STORAGE_ERROR,
        ErrorType.TOKEN_STORAGE_ERROR,
        ErrorType.SESSION_STORAGE_ERROR,
        ErrorType.CREDENTIAL_STORAGE_ERROR,
        ErrorType.INVITATION_STORAGE_ERROR,
    }
)


@dataclass(frozen=True)
class DomainError:
    type: ErrorType
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: DomainError

    @property
    def ok(self) -> bool:
        return False

    @property
    def type(self) -> ErrorType:
        return self.error.type


Result = Union[Ok[T], Err]


def fail(kind: ErrorType, message: str, **details: Any) -> Err:
    return Err(DomainError(type=kind, message=message, details=details))


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def user_not_found(user_id: Any) -> Err:
    return fail(ErrorType.USER_NOT_FOUND, "User not found", user_id=str(user_id))


def organization_not_found(organization_id: Any) -> Err:
    return fail(
        ErrorType.ORGANIZATION_NOT_FOUND,
        "Organization not found",
        organization_id=str(organization_id),
    )


def membership_not_found(**details: Any) -> Err:
    return fail(
        ErrorType.MEMBERSHIP_NOT_FOUND,
        "Membership not found",
        **{key: str(value) for key, value in details.items()},
    )


def not_a_member(user_id: Any, organization_id: Any) -> Err:
    return fail(
        ErrorType.NOT_A_MEMBER,
        "User is not a member of this organization",
        user_id=str(user_id),
        organization_id=str(organization_id),
    )


def insufficient_permissions(required: str) -> Err:
    return fail(
        ErrorType.INSUFFICIENT_PERMISSIONS,
        f"This action requires the {required} role",
        required_role=required,
    )


def verification_failed(reason: str) -> Err:
    return fail(ErrorType.VERIFICATION_FAILED, f"Passkey verification failed: {reason}", reason=reason)


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class StorageFailure(Exception):
    """Raised by store adapters when the backing database fails."""

    def __init__(self, kind: ErrorType, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause


def storage_errors(fn):
    """Convert ``StorageFailure`` raised inside a service call into an ``Err``."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except StorageFailure as exc:
            log.error(
                "storage.failure",
                operation=fn.__qualname__,
                kind=exc.kind.value,
                error=str(exc.cause or exc),
            )
            return Err(DomainError(type=exc.kind, message=exc.message, cause=exc.cause))

    return wrapper


# ---------------------------------------------------------------------------
# HTTP mapping
# ---------------------------------------------------------------------------

ERROR_STATUS: dict[ErrorType, int] = {
    ErrorType.USER_NOT_FOUND: 404,
    ErrorType.ORGANIZATION_NOT_FOUND: 404,
    ErrorType.MEMBERSHIP_NOT_FOUND: 404,
    ErrorType.TOKEN_NOT_FOUND: 404,
    ErrorType.SESSION_NOT_FOUND: 404,
    ErrorType.CREDENTIAL_NOT_FOUND: 404,
    ErrorType.INVITATION_NOT_FOUND: 404,
    ErrorType.ALREADY_MEMBER: 409,
    ErrorType.CANNOT_LEAVE_PERSONAL_ORG: 409,
    ErrorType.LAST_ADMIN: 409,
    ErrorType.CANNOT_CHANGE_OWNER_ROLE: 409,
    ErrorType.CANNOT_DELETE_LAST_PASSKEY: 409,
    ErrorType.TOKEN_LIMIT_REACHED: 409,
    ErrorType.EMAIL_ALREADY_REGISTERED: 409,
    ErrorType.CREDENTIAL_ALREADY_REGISTERED: 409,
    ErrorType.INVITATION_EXPIRED: 410,
    ErrorType.INVITATION_ALREADY_ACCEPTED: 410,
    ErrorType.CHALLENGE_EXPIRED: 410,
    ErrorType.INVALID_TOKEN_FORMAT: 401,
    ErrorType.INVALID_SECRET: 401,
    ErrorType.INVALID_TOKEN: 401,
    ErrorType.INVALID_SESSION: 401,
    ErrorType.INVALID_ADMIN_PASSWORD: 401,
    ErrorType.UNAUTHENTICATED: 401,
    ErrorType.NOT_A_MEMBER: 403,
    ErrorType.NO_MEMBERSHIPS: 403,
    ErrorType.INSUFFICIENT_PERMISSIONS: 403,
    ErrorType.TOKEN_OWNERSHIP_ERROR: 403,
    ErrorType.CREDENTIAL_OWNERSHIP_ERROR: 403,
    ErrorType.VALIDATION_ERROR: 400,
    ErrorType.VERIFICATION_FAILED: 400,
    ErrorType.CHALLENGE_INVALID: 400,
    ErrorType.INVITATION_EMAIL_MISMATCH: 400,
    ErrorType.USER_STORAGE_ERROR: 500,
    ErrorType.ORGANIZATION_STORAGE_ERROR: 500,
    ErrorType.MEMBERSHIP_STORAGE_ERROR: 500,
    ErrorType.TOKEN_STORAGE_ERROR: 500,
    ErrorType.SESSION_STORAGE_ERROR: 500,
    ErrorType.CREDENTIAL_STORAGE_ERROR: 500,
    ErrorType.INVITATION_STORAGE_ERROR: 500,
    ErrorType.INTERNAL_ERROR: 500,
}

GENERIC_SERVER_MESSAGE = "Internal server error"


class ApiError(Exception):
    """Raised by route handlers; rendered by the app's exception handler."""

    def __init__(self, code: ErrorType, message: str, status: int):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def to_body(self) -> dict:
        return {"error": {"code": self.code.value, "message": self.message, "status": self.status}}


def to_api_error(err: Union[Err, DomainError]) -> ApiError:
    error = err.error if isinstance(err, Err) else err
    status = ERROR_STATUS[error.type]
    message = GENERIC_SERVER_MESSAGE if status >= 500 else error.message
    return ApiError(error.type, message, status)


def raise_for_error(err: Union[Err, DomainError]):
    raise to_api_error(err)


def unwrap(result: Result[T]) -> T:
    """Return the value of ``Ok`` or raise the mapped ``ApiError`` for ``Err``."""
    if isinstance(result, Err):
        raise_for_error(result)
    return result.value
