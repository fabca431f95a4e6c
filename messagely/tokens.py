"""Signed, stateless session tokens.

Tokens are HS256 JWTs carrying the ``username`` claim and the issue time.
An ``exp`` claim is added only when a token TTL is configured; there is no
server-side session table and no revocation.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .errors import AuthError, ConfigurationError

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    username: str
    issued_at: Optional[datetime]
    expires_at: Optional[datetime]


class SessionIssuer:
    """Mint and check tokens signed with the process-wide secret."""

    def __init__(self, secret: str, *, ttl: Optional[timedelta] = None) -> None:
        if not secret:
            raise ConfigurationError("A signing secret must be provided")
        self._secret = secret
        self._ttl = ttl

    @property
    def ttl(self) -> Optional[timedelta]:
        return self._ttl

    def issue(self, username: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"username": username, "iat": now}
        if self._ttl is not None:
            payload["exp"] = now + self._ttl
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode ``token`` and return its claims, or raise :class:`AuthError`."""

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["username"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError("Invalid token") from exc

        username = payload["username"]
        if not isinstance(username, str) or not username:
            raise AuthError("Invalid token")

        return TokenClaims(
            username=username,
            issued_at=_from_timestamp(payload.get("iat")),
            expires_at=_from_timestamp(payload.get("exp")),
        )


def _from_timestamp(value: object) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)  # type: ignore[arg-type]


__all__ = ["SessionIssuer", "TokenClaims"]
