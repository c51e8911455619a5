"""User directory: registration, lookup, profile changes and credential checks."""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Optional

from .errors import (
    DuplicateEmailError,
    DuplicateKeyError,
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
    UserNotFoundError,
)
from .models import UNSET, User, utcnow
from .repositories import UserRepository
from .security import PasswordHasher

logger = logging.getLogger("taskhub.users")

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_PATTERN.fullmatch(value or ""))


def _normalize_email(value: str) -> str:
    return value.strip().lower()


def _normalize_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _check_password(password: str) -> None:
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInputError(f"password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if "\x00" in password:
        raise InvalidInputError("password must not contain NUL characters")


def _translate_duplicate(exc: DuplicateKeyError) -> DuplicateKeyError:
    if exc.field == "email":
        return DuplicateEmailError()
    if exc.field == "username":
        return DuplicateUsernameError()
    return exc


class UserDirectory:
    """Owns the user records; the store's unique indexes are the final arbiter of uniqueness."""

    def __init__(self, users: UserRepository, hasher: PasswordHasher) -> None:
        self._users = users
        self._hasher = hasher

    def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        username = (username or "").strip()
        email = _normalize_email(email or "")

        if len(username) < MIN_USERNAME_LENGTH:
            raise InvalidInputError(f"username must be at least {MIN_USERNAME_LENGTH} characters long")
        if not is_valid_email(email):
            raise InvalidInputError("invalid email format")
        _check_password(password)

        # Fast-path checks; a concurrent registration is still caught by the store.
        if self._exists(self._users.find_by_email, email):
            raise DuplicateEmailError()
        if self._exists(self._users.find_by_username, username):
            raise DuplicateUsernameError()

        now = utcnow()
        candidate = User(
            id="",
            username=username,
            email=email,
            password_hash=self._hasher.hash(password),
            first_name=_normalize_name(first_name),
            last_name=_normalize_name(last_name),
            created_at=now,
            updated_at=now,
        )
        try:
            user = self._users.create(candidate)
        except DuplicateKeyError as exc:
            raise _translate_duplicate(exc) from exc

        logger.info("Registered user %s (%s)", user.id, user.username)
        return user

    def get_by_id(self, user_id: str) -> User:
        return self._lookup(self._users.find_by_id, user_id)

    def get_by_email(self, email: str) -> User:
        return self._lookup(self._users.find_by_email, _normalize_email(email or ""))

    def get_by_username(self, username: str) -> User:
        return self._lookup(self._users.find_by_username, (username or "").strip())

    def update(
        self,
        user_id: str,
        *,
        email: object = UNSET,
        first_name: object = UNSET,
        last_name: object = UNSET,
        password: object = UNSET,
    ) -> User:
        """Apply a partial profile update.

        Arguments left as ``UNSET`` (or ``None`` for ``email``/``password``)
        keep their stored value; ``None`` clears the optional name fields.
        Callers are responsible for checking that the requester is ``user_id``.
        """

        user = self.get_by_id(user_id)
        changes = {}

        if email is not UNSET and email is not None:
            normalized = _normalize_email(str(email))
            if normalized != user.email:
                if not is_valid_email(normalized):
                    raise InvalidInputError("invalid email format")
                try:
                    holder = self._users.find_by_email(normalized)
                except NotFoundError:
                    holder = None
                if holder is not None and holder.id != user.id:
                    raise DuplicateEmailError()
                changes["email"] = normalized

        if first_name is not UNSET:
            changes["first_name"] = _normalize_name(first_name)  # type: ignore[arg-type]
        if last_name is not UNSET:
            changes["last_name"] = _normalize_name(last_name)  # type: ignore[arg-type]

        if password is not UNSET and password is not None:
            _check_password(str(password))
            changes["password_hash"] = self._hasher.hash(str(password))

        updated = replace(user, updated_at=utcnow(), **changes)
        try:
            self._users.update(updated)
        except DuplicateKeyError as exc:
            raise _translate_duplicate(exc) from exc
        except NotFoundError as exc:
            raise UserNotFoundError() from exc
        return updated

    def delete(self, user_id: str) -> None:
        try:
            self._users.delete(user_id)
        except NotFoundError as exc:
            raise UserNotFoundError() from exc
        logger.info("Deleted user %s", user_id)

    def validate_credentials(self, identifier: str, password: str) -> User:
        """Resolve ``identifier`` as an email or username and check the password.

        Unknown identifiers and wrong passwords raise the same error.
        """

        identifier = (identifier or "").strip()
        try:
            if is_valid_email(identifier):
                user = self._users.find_by_email(_normalize_email(identifier))
            else:
                user = self._users.find_by_username(identifier)
        except NotFoundError:
            logger.warning("Failed login attempt for unknown account")
            raise InvalidCredentialsError() from None

        if not self._hasher.verify(user.password_hash, password):
            logger.warning("Failed login attempt for user %s", user.id)
            raise InvalidCredentialsError()
        return user

    @staticmethod
    def _lookup(finder, key: str) -> User:
        try:
            return finder(key)
        except NotFoundError as exc:
            raise UserNotFoundError() from exc

    @staticmethod
    def _exists(finder, key: str) -> bool:
        try:
            finder(key)
        except NotFoundError:
            return False
        return True


__all__ = [
    "MIN_PASSWORD_LENGTH",
    "MIN_USERNAME_LENGTH",
    "UserDirectory",
    "is_valid_email",
]
