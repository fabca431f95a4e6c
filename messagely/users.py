"""Credential store: user records, password checks and login bookkeeping."""
from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence

import anyio

from .database import (
    Database,
    QueryResult,
    current_timestamp,
    parse_datetime,
    serialize_datetime,
)
from .errors import ConflictError, NotFoundError, ValidationError
from .models import MailboxMessage, RegisteredUser, UserProfile, UserSummary
from .passwords import PasswordHasher

logger = logging.getLogger("messagely.users")

REQUIRED_FIELDS = ("username", "password", "first_name", "last_name", "phone")


def normalize_username(value: Optional[str]) -> Optional[str]:
    """Usernames are stored and looked up without surrounding whitespace."""

    if not isinstance(value, str):
        return None
    return value.strip() or None


def _required_text(fields: Mapping[str, object]) -> dict:
    values = {}
    missing = []
    for name in REQUIRED_FIELDS:
        raw = fields.get(name)
        value = raw.strip() if isinstance(raw, str) else raw
        if not value or not isinstance(value, str):
            missing.append(name)
            continue
        values[name] = value
    if missing:
        raise ValidationError(
            "username, password, first name, last name and phone are all required "
            f"(missing: {', '.join(missing)})"
        )
    # Passwords are taken verbatim; only the emptiness check uses the stripped value.
    values["password"] = fields["password"]
    return values


class UserStore:
    """Stateless access layer for the ``users`` table.

    Every call is a coroutine. SQLite access and bcrypt work run in worker
    threads so that concurrent requests keep making progress while a hash is
    being computed.
    """

    def __init__(self, database: Database, hasher: PasswordHasher) -> None:
        self._database = database
        self._hasher = hasher

    async def _query(self, statement: str, params: Sequence[object] = ()) -> QueryResult:
        return await anyio.to_thread.run_sync(self._database.query, statement, params)

    async def register(self, fields: Mapping[str, object]) -> RegisteredUser:
        """Create a user and return its public fields plus the password hash."""

        values = _required_text(fields)
        hashed = await anyio.to_thread.run_sync(self._hasher.hash, values["password"])
        now = serialize_datetime(current_timestamp())

        try:
            await self._query(
                """
                INSERT INTO users (
                    username, password, first_name, last_name, phone, join_at, last_login_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    values["username"],
                    hashed,
                    values["first_name"],
                    values["last_name"],
                    values["phone"],
                    now,
                    now,
                ),
            )
        except ConflictError as exc:
            raise ConflictError(f"Username already taken: {values['username']}") from exc

        logger.info("Registered user %s", values["username"])
        return RegisteredUser(
            username=values["username"],
            password=hashed,
            first_name=values["first_name"],
            last_name=values["last_name"],
            phone=values["phone"],
        )

    async def authenticate(self, username: Optional[str], password: Optional[str]) -> bool:
        """Return ``True`` only when the username exists and the password matches.

        Unknown usernames still pay for one bcrypt verification so callers
        cannot tell them apart from wrong passwords by timing.
        """

        username = normalize_username(username)
        row = None
        if username:
            result = await self._query(
                "SELECT password FROM users WHERE username = ?",
                (username,),
            )
            row = result.first()

        if row is None or not password:
            await anyio.to_thread.run_sync(self._hasher.dummy_verify)
            return False

        return await anyio.to_thread.run_sync(self._hasher.verify, password, str(row["password"]))

    async def update_login_timestamp(self, username: str) -> None:
        result = await self._query(
            "UPDATE users SET last_login_at = ? WHERE username = ?",
            (serialize_datetime(current_timestamp()), username),
        )
        if result.rowcount == 0:
            raise NotFoundError(f"User does not exist: {username}")

    async def all(self) -> List[UserSummary]:
        result = await self._query(
            """
            SELECT username, first_name, last_name, phone
              FROM users
             ORDER BY username
            """
        )
        return [_row_to_summary(row) for row in result.rows]

    async def get(self, username: str) -> UserProfile:
        result = await self._query(
            """
            SELECT username, first_name, last_name, phone, join_at, last_login_at
              FROM users
             WHERE username = ?
            """,
            (username,),
        )
        row = result.first()
        if row is None:
            raise NotFoundError(f"User does not exist: {username}")
        return UserProfile(
            username=str(row["username"]),
            first_name=str(row["first_name"]),
            last_name=str(row["last_name"]),
            phone=str(row["phone"]),
            join_at=parse_datetime(row["join_at"]),
            last_login_at=parse_datetime(row["last_login_at"]),
        )

    async def exists(self, username: str) -> bool:
        result = await self._query("SELECT 1 FROM users WHERE username = ?", (username,))
        return result.first() is not None

    async def messages_from(self, username: str) -> List[MailboxMessage]:
        """Messages sent by ``username``; each entry carries the recipient."""

        return await self._mailbox(username, own_column="from_username", other_column="to_username")

    async def messages_to(self, username: str) -> List[MailboxMessage]:
        """Messages received by ``username``; each entry carries the sender."""

        return await self._mailbox(username, own_column="to_username", other_column="from_username")

    async def _mailbox(self, username: str, *, own_column: str, other_column: str) -> List[MailboxMessage]:
        if not await self.exists(username):
            raise NotFoundError(f"User does not exist: {username}")

        result = await self._query(
            f"""
            SELECT m.id, m.body, m.sent_at, m.read_at,
                   u.username, u.first_name, u.last_name, u.phone
              FROM messages AS m
              JOIN users AS u ON m.{other_column} = u.username
             WHERE m.{own_column} = ?
             ORDER BY m.sent_at, m.id
            """,
            (username,),
        )
        return [
            MailboxMessage(
                id=int(row["id"]),
                counterpart=_row_to_summary(row),
                body=str(row["body"]),
                sent_at=parse_datetime(row["sent_at"]),
                read_at=parse_datetime(row["read_at"]),
            )
            for row in result.rows
        ]


def _row_to_summary(row) -> UserSummary:
    return UserSummary(
        username=str(row["username"]),
        first_name=str(row["first_name"]),
        last_name=str(row["last_name"]),
        phone=str(row["phone"]),
    )


__all__ = ["REQUIRED_FIELDS", "UserStore", "normalize_username"]
