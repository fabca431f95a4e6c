"""SQLite-backed persistence for users and messages."""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import ConflictError, NotFoundError, StorageError

logger = logging.getLogger("messagely.database")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    username TEXT PRIMARY KEY,
    password TEXT NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    phone TEXT NOT NULL,
    join_at TEXT NOT NULL,
    last_login_at TEXT
);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_username TEXT NOT NULL REFERENCES users(username) ON DELETE CASCADE,
    to_username TEXT NOT NULL REFERENCES users(username) ON DELETE CASCADE,
    body TEXT NOT NULL,
    sent_at TEXT NOT NULL,
    read_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_messages_from_username ON messages(from_username);
CREATE INDEX IF NOT EXISTS idx_messages_to_username ON messages(to_username);
"""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "messagely.sqlite3").resolve(strict=False)


def current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


@dataclass
class QueryResult:
    """Rows and bookkeeping returned from :meth:`Database.query`."""

    rows: List[sqlite3.Row] = field(default_factory=list)
    rowcount: int = 0
    last_row_id: Optional[int] = None

    def first(self) -> Optional[sqlite3.Row]:
        return self.rows[0] if self.rows else None


class Database:
    """Simple wrapper around SQLite exposing a parameterised query interface."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Schema ensured at %s", self._path)

    def query(self, statement: str, params: Sequence[object] = ()) -> QueryResult:
        """Run a single statement with ``?`` placeholders and return its rows.

        Constraint violations are translated into the service's error kinds:
        a duplicate key becomes :class:`ConflictError`, a dangling foreign key
        becomes :class:`NotFoundError`. Anything else the driver reports is
        raised as :class:`StorageError`.
        """

        try:
            with self._connect() as conn:
                cursor = conn.execute(statement, tuple(params))
                rows = cursor.fetchall()
                return QueryResult(
                    rows=rows,
                    rowcount=cursor.rowcount,
                    last_row_id=cursor.lastrowid,
                )
        except sqlite3.IntegrityError as exc:
            detail = str(exc)
            if "UNIQUE" in detail or "PRIMARY KEY" in detail:
                raise ConflictError("A record with that key already exists") from exc
            if "FOREIGN KEY" in detail:
                raise NotFoundError("Referenced record does not exist") from exc
            raise StorageError(f"Constraint violation: {detail}") from exc
        except sqlite3.Error as exc:
            raise StorageError(f"Database operation failed: {exc}") from exc


__all__ = [
    "Database",
    "QueryResult",
    "current_timestamp",
    "parse_datetime",
    "resolve_database_path",
    "serialize_datetime",
]
