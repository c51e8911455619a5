"""Password hashing, signed access tokens and the bearer-token dependency."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from .errors import HashingError, InvalidTokenError, SigningError

logger = logging.getLogger("taskhub.security")

DEFAULT_BCRYPT_ROUNDS = 12
JWT_ALGORITHM = "HS256"


class PasswordHasher:
    """One-way adaptive password hashing backed by bcrypt."""

    def __init__(self, *, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        try:
            return self._context.hash(password)
        except (ValueError, TypeError, OSError) as exc:
            raise HashingError() from exc

    def verify(self, hashed: str, password: str) -> bool:
        """Return ``True`` if ``password`` matches ``hashed``; never raises on mismatch."""

        if not hashed or password is None:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            return False


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    username: str
    issued_at: datetime
    expires_at: datetime
    token_id: str


def _from_timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class TokenService:
    """Issues and validates HS256-signed JWTs.

    Tokens carry no server-side state: a token is valid exactly when its
    signature checks out and the current time lies inside its ``nbf``/``exp``
    window. Each token gets a random ``jti`` so two tokens minted in the same
    second for the same user are still distinct.
    """

    def __init__(self, secret: str, *, default_ttl: timedelta = timedelta(hours=24)) -> None:
        self._secret = secret or ""
        self._default_ttl = default_ttl

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    def issue_token(self, user_id: str, username: str, ttl: Optional[timedelta] = None) -> IssuedToken:
        if not self._secret:
            raise SigningError("token signing secret is not configured")

        lifetime = self._default_ttl if ttl is None else ttl
        now = datetime.now(timezone.utc)
        expires_at = now + lifetime
        payload: Dict[str, Any] = {
            "sub": user_id,
            "user_id": user_id,
            "username": username,
            "iat": now,
            "nbf": now,
            "exp": expires_at,
            "jti": uuid.uuid4().hex,
        }
        try:
            token = jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            raise SigningError() from exc

        # The encoded exp claim is whole seconds.
        return IssuedToken(token=token, expires_at=_from_timestamp(expires_at.timestamp()))

    def decode_claims(self, token: str) -> TokenClaims:
        if not token or not self._secret:
            raise InvalidTokenError()
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp", "iat", "nbf"]},
            )
        except jwt.PyJWTError as exc:
            logger.debug("Rejected token: %s", exc)
            raise InvalidTokenError() from exc

        user_id = payload.get("user_id")
        if not isinstance(user_id, str) or not user_id:
            raise InvalidTokenError()
        return TokenClaims(
            user_id=user_id,
            username=str(payload.get("username") or ""),
            issued_at=_from_timestamp(payload["iat"]),
            expires_at=_from_timestamp(payload["exp"]),
            token_id=str(payload.get("jti") or ""),
        )

    def validate_token(self, token: str) -> str:
        """Return the user id a valid token was issued for."""

        return self.decode_claims(token).user_id


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization`` value.

    ``Bearer <token>`` is the documented form; a bare token is also accepted,
    which is what gRPC clients commonly send as metadata.
    """

    if not header:
        return None
    parts = header.strip().split(" ", 1)
    if len(parts) == 2:
        if parts[0].lower() != "bearer":
            return None
        token = parts[1].strip()
    elif parts[0].lower() == "bearer":
        return None
    else:
        token = parts[0]
    return token or None


class TokenAuth:
    """FastAPI dependency resolving the bearer token to the caller's user id."""

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> str:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise InvalidTokenError("authorization header is required")
        return self._tokens.validate_token(credentials.credentials)


__all__ = [
    "DEFAULT_BCRYPT_ROUNDS",
    "IssuedToken",
    "JWT_ALGORITHM",
    "PasswordHasher",
    "TokenAuth",
    "TokenClaims",
    "TokenService",
    "parse_bearer",
]
