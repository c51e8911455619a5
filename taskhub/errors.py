"""Domain errors and their mapping onto transport status codes."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class ErrorKind(str, Enum):
    """Coarse error categories surfaced to API clients."""

    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    UNAUTHORIZED = "unauthorized"
    DUPLICATE_KEY = "duplicate_key"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    INVALID_TRANSITION = "invalid_transition"
    INTERNAL = "internal"


class TaskHubError(Exception):
    """Base class for every error raised by the use-case layer."""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class NotFoundError(TaskHubError):
    kind = ErrorKind.NOT_FOUND
    default_message = "resource not found"


class UserNotFoundError(NotFoundError):
    default_message = "user not found"


class CreatorNotFoundError(UserNotFoundError):
    default_message = "creator user not found"


class AssigneeNotFoundError(UserNotFoundError):
    default_message = "assignee user not found"


class TaskNotFoundError(NotFoundError):
    default_message = "task not found"


class InvalidInputError(TaskHubError):
    kind = ErrorKind.INVALID_INPUT
    default_message = "invalid input"


class UnknownResourceKindError(InvalidInputError):
    def __init__(self, resource_kind: str) -> None:
        super().__init__(f"unknown resource type: {resource_kind}")
        self.resource_kind = resource_kind


class UnauthorizedError(TaskHubError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "unauthorized access"


class DuplicateKeyError(TaskHubError):
    """Raised when a unique field collides with an existing record."""

    kind = ErrorKind.DUPLICATE_KEY
    default_message = "duplicate key error"

    def __init__(self, field: str | None = None, message: str | None = None) -> None:
        if message is None and field:
            message = f"duplicate value for {field}"
        super().__init__(message)
        self.field = field


class DuplicateUsernameError(DuplicateKeyError):
    def __init__(self) -> None:
        super().__init__("username", "username already taken")


class DuplicateEmailError(DuplicateKeyError):
    def __init__(self) -> None:
        super().__init__("email", "email already registered")


class InvalidCredentialsError(TaskHubError):
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "invalid login credentials"


class InvalidTokenError(TaskHubError):
    kind = ErrorKind.INVALID_TOKEN
    default_message = "invalid or expired token"


class InvalidTransitionError(TaskHubError):
    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"invalid status transition from {current} to {requested}")
        self.current = current
        self.requested = requested


class InternalError(TaskHubError):
    kind = ErrorKind.INTERNAL


class HashingError(InternalError):
    default_message = "failed to hash password"


class SigningError(InternalError):
    default_message = "failed to sign token"


class StoreError(InternalError):
    default_message = "persistence failure"


@dataclass(frozen=True)
class TransportStatus:
    http_status: int
    grpc_code: str
    message: str


# grpc codes are kept as names so this module does not depend on grpcio.
_STATUS_TABLE: Dict[ErrorKind, Tuple[int, str]] = {
    ErrorKind.NOT_FOUND: (404, "NOT_FOUND"),
    ErrorKind.INVALID_INPUT: (400, "INVALID_ARGUMENT"),
    ErrorKind.UNAUTHORIZED: (403, "PERMISSION_DENIED"),
    ErrorKind.DUPLICATE_KEY: (409, "ALREADY_EXISTS"),
    ErrorKind.INVALID_CREDENTIALS: (401, "UNAUTHENTICATED"),
    ErrorKind.INVALID_TOKEN: (401, "UNAUTHENTICATED"),
    ErrorKind.INVALID_TRANSITION: (409, "FAILED_PRECONDITION"),
    ErrorKind.INTERNAL: (500, "INTERNAL"),
}


def transport_status(exc: BaseException) -> TransportStatus:
    """Return the HTTP/gRPC status for ``exc``.

    Anything that is not a :class:`TaskHubError`, and every internal error,
    is reported with a generic message so store or library details never
    reach the client.
    """

    kind = exc.kind if isinstance(exc, TaskHubError) else ErrorKind.INTERNAL
    http_status, grpc_code = _STATUS_TABLE[kind]
    if kind is ErrorKind.INTERNAL:
        message = InternalError.default_message
    else:
        message = str(exc)
    return TransportStatus(http_status=http_status, grpc_code=grpc_code, message=message)


__all__ = [
    "AssigneeNotFoundError",
    "CreatorNotFoundError",
    "DuplicateEmailError",
    "DuplicateKeyError",
    "DuplicateUsernameError",
    "ErrorKind",
    "HashingError",
    "InternalError",
    "InvalidCredentialsError",
    "InvalidInputError",
    "InvalidTokenError",
    "InvalidTransitionError",
    "NotFoundError",
    "SigningError",
    "StoreError",
    "TaskHubError",
    "TaskNotFoundError",
    "TransportStatus",
    "UnauthorizedError",
    "UnknownResourceKindError",
    "UserNotFoundError",
    "transport_status",
]
