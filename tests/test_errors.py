from __future__ import annotations

import pytest

from taskhub.errors import (
    AssigneeNotFoundError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidInputError,
    InvalidTokenError,
    InvalidTransitionError,
    StoreError,
    TaskNotFoundError,
    UnauthorizedError,
    transport_status,
)


@pytest.mark.parametrize(
    "error,http_status,grpc_code",
    [
        (TaskNotFoundError(), 404, "NOT_FOUND"),
        (AssigneeNotFoundError(), 404, "NOT_FOUND"),
        (InvalidInputError("title is required"), 400, "INVALID_ARGUMENT"),
        (UnauthorizedError(), 403, "PERMISSION_DENIED"),
        (DuplicateEmailError(), 409, "ALREADY_EXISTS"),
        (InvalidCredentialsError(), 401, "UNAUTHENTICATED"),
        (InvalidTokenError(), 401, "UNAUTHENTICATED"),
        (InvalidTransitionError("completed", "pending"), 409, "FAILED_PRECONDITION"),
        (StoreError(), 500, "INTERNAL"),
    ],
)
def test_status_mapping(error, http_status: int, grpc_code: str) -> None:
    mapped = transport_status(error)
    assert mapped.http_status == http_status
    assert mapped.grpc_code == grpc_code


def test_domain_message_is_passed_through() -> None:
    assert transport_status(InvalidInputError("title is required")).message == "title is required"
    assert transport_status(InvalidTransitionError("completed", "pending")).message == (
        "invalid status transition from completed to pending"
    )


def test_internal_details_are_hidden() -> None:
    assert transport_status(StoreError("connection refused by db-01:27017")).message == "internal server error"
    unexpected = transport_status(RuntimeError("boom"))
    assert unexpected.http_status == 500
    assert unexpected.message == "internal server error"
