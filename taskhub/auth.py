"""Login, token refresh and the single-owner access check."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import FrozenSet, Optional

from .errors import UnauthorizedError, UnknownResourceKindError
from .models import User
from .security import TokenService
from .users import UserDirectory

logger = logging.getLogger("taskhub.auth")

RESOURCE_KINDS: FrozenSet[str] = frozenset({"task", "user"})


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    expires_at: datetime
    user_id: str
    username: str


class AuthService:
    def __init__(self, users: UserDirectory, tokens: TokenService) -> None:
        self._users = users
        self._tokens = tokens

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    def login(self, identifier: str, password: str, *, ttl: Optional[timedelta] = None) -> LoginResult:
        user = self._users.validate_credentials(identifier, password)
        logger.info("User %s logged in", user.id)
        return self._issue(user, ttl)

    def refresh_token(self, token: str, *, ttl: Optional[timedelta] = None) -> LoginResult:
        """Exchange a still-valid token for a fresh one.

        The user is looked up again so a deleted account cannot keep
        refreshing its way past deletion.
        """

        user_id = self._tokens.validate_token(token)
        user = self._users.get_by_id(user_id)
        return self._issue(user, ttl)

    def user_from_token(self, token: str) -> User:
        return self._users.get_by_id(self._tokens.validate_token(token))

    def authorize_resource_access(self, user_id: str, owner_id: str, resource_kind: str) -> None:
        if resource_kind not in RESOURCE_KINDS:
            raise UnknownResourceKindError(resource_kind)
        if not user_id or user_id != owner_id:
            raise UnauthorizedError()

    def _issue(self, user: User, ttl: Optional[timedelta]) -> LoginResult:
        issued = self._tokens.issue_token(user.id, user.username, ttl)
        return LoginResult(
            access_token=issued.token,
            expires_at=issued.expires_at,
            user_id=user.id,
            username=user.username,
        )


__all__ = ["AuthService", "LoginResult", "RESOURCE_KINDS"]
