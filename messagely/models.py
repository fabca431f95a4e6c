"""Domain records returned by the user and message stores."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UserSummary:
    """Public identity fields shown wherever a user is referenced."""

    username: str
    first_name: str
    last_name: str
    phone: str


@dataclass(frozen=True)
class RegisteredUser:
    """Result of a successful registration, including the stored hash."""

    username: str
    password: str
    first_name: str
    last_name: str
    phone: str


@dataclass(frozen=True)
class UserProfile:
    username: str
    first_name: str
    last_name: str
    phone: str
    join_at: datetime
    last_login_at: Optional[datetime]


@dataclass(frozen=True)
class Message:
    """A message row as stored, without the joined user details."""

    id: int
    from_username: str
    to_username: str
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


@dataclass(frozen=True)
class MailboxMessage:
    """A message seen from one side of the conversation.

    ``counterpart`` is the recipient for sent messages and the sender for
    received ones.
    """

    id: int
    counterpart: UserSummary
    body: str
    sent_at: datetime
    read_at: Optional[datetime]


@dataclass(frozen=True)
class MessageDetail:
    id: int
    from_user: UserSummary
    to_user: UserSummary
    body: str
    sent_at: datetime
    read_at: Optional[datetime]


__all__ = [
    "MailboxMessage",
    "Message",
    "MessageDetail",
    "RegisteredUser",
    "UserProfile",
    "UserSummary",
]
