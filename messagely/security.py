"""Security helpers for the messaging API."""
from __future__ import annotations

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import AuthError
from .tokens import SessionIssuer


class BearerTokenAuth:
    """Resolve the username asserted by an ``Authorization: Bearer`` token."""

    def __init__(self, issuer: SessionIssuer) -> None:
        self._issuer = issuer
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> str:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise AuthError("Missing bearer token")

        return self._issuer.verify(credentials.credentials).username


def ensure_correct_user(current_username: str, username: str) -> None:
    """Only the owner of an account may read its profile or mailbox."""

    if current_username != username:
        raise AuthError("Unauthorized")


__all__ = ["BearerTokenAuth", "ensure_correct_user"]
