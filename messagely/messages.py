"""Message persistence: sending, lookup and read receipts."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence, Tuple

import anyio

from .database import (
    Database,
    QueryResult,
    current_timestamp,
    parse_datetime,
    serialize_datetime,
)
from .errors import NotFoundError, ValidationError
from .models import Message, MessageDetail, UserSummary

logger = logging.getLogger("messagely.messages")


class MessageStore:
    """Stateless access layer for the ``messages`` table."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def _query(self, statement: str, params: Sequence[object] = ()) -> QueryResult:
        return await anyio.to_thread.run_sync(self._database.query, statement, params)

    async def create(self, from_username: str, to_username: str, body: str) -> Message:
        """Store a new message; both users must already exist."""

        if not from_username or not to_username:
            raise ValidationError("Both sender and recipient are required")
        if not body or not body.strip():
            raise ValidationError("Message body must not be empty")

        sent_at = current_timestamp()
        try:
            result = await self._query(
                """
                INSERT INTO messages (from_username, to_username, body, sent_at)
                VALUES (?, ?, ?, ?)
                """,
                (from_username, to_username, body, serialize_datetime(sent_at)),
            )
        except NotFoundError as exc:
            raise NotFoundError(
                f"Cannot send message from {from_username} to {to_username}: user does not exist"
            ) from exc

        message_id = int(result.last_row_id)
        logger.info("Message %s sent from %s to %s", message_id, from_username, to_username)
        return Message(
            id=message_id,
            from_username=from_username,
            to_username=to_username,
            body=body,
            sent_at=sent_at,
        )

    async def get(self, message_id: int) -> MessageDetail:
        result = await self._query(
            """
            SELECT m.id, m.body, m.sent_at, m.read_at,
                   f.username AS from_username,
                   f.first_name AS from_first_name,
                   f.last_name AS from_last_name,
                   f.phone AS from_phone,
                   t.username AS to_username,
                   t.first_name AS to_first_name,
                   t.last_name AS to_last_name,
                   t.phone AS to_phone
              FROM messages AS m
              JOIN users AS f ON m.from_username = f.username
              JOIN users AS t ON m.to_username = t.username
             WHERE m.id = ?
            """,
            (message_id,),
        )
        row = result.first()
        if row is None:
            raise NotFoundError(f"No such message: {message_id}")

        return MessageDetail(
            id=int(row["id"]),
            from_user=UserSummary(
                username=str(row["from_username"]),
                first_name=str(row["from_first_name"]),
                last_name=str(row["from_last_name"]),
                phone=str(row["from_phone"]),
            ),
            to_user=UserSummary(
                username=str(row["to_username"]),
                first_name=str(row["to_first_name"]),
                last_name=str(row["to_last_name"]),
                phone=str(row["to_phone"]),
            ),
            body=str(row["body"]),
            sent_at=parse_datetime(row["sent_at"]),
            read_at=parse_datetime(row["read_at"]),
        )

    async def mark_read(self, message_id: int) -> Tuple[int, Optional[datetime]]:
        """Stamp ``read_at`` the first time a message is read.

        Later calls leave the original timestamp in place and return it.
        """

        await self._query(
            "UPDATE messages SET read_at = ? WHERE id = ? AND read_at IS NULL",
            (serialize_datetime(current_timestamp()), message_id),
        )
        result = await self._query(
            "SELECT id, read_at FROM messages WHERE id = ?",
            (message_id,),
        )
        row = result.first()
        if row is None:
            raise NotFoundError(f"No such message: {message_id}")
        return int(row["id"]), parse_datetime(row["read_at"])


__all__ = ["MessageStore"]
