"""Password hashing built on passlib's bcrypt context."""
from __future__ import annotations

from passlib.context import CryptContext

from .config import DEFAULT_WORK_FACTOR


class PasswordHasher:
    """Hash and verify passwords with a configurable bcrypt work factor."""

    def __init__(self, work_factor: int = DEFAULT_WORK_FACTOR) -> None:
        self._work_factor = work_factor
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=work_factor,
        )

    @property
    def work_factor(self) -> int:
        return self._work_factor

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return self._context.verify(password, hashed)
        except ValueError:
            # Stored value is not a hash passlib recognises.
            return False

    def dummy_verify(self) -> None:
        """Spend the same effort as a real verification against a throwaway hash."""

        self._context.dummy_verify()


__all__ = ["PasswordHasher"]
