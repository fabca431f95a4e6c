from __future__ import annotations

from pathlib import Path

import pytest

from messagely.database import Database, resolve_database_path
from messagely.errors import ConflictError, NotFoundError, StorageError


INSERT_USER = """
INSERT INTO users (username, password, first_name, last_name, phone, join_at, last_login_at)
VALUES (?, 'hash', 'First', 'Last', '555', '2024-01-01T00:00:00+00:00', NULL)
"""


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "nested" / "messagely.sqlite3")
    db.initialize()
    return db


def test_initialize_creates_tables(database: Database) -> None:
    result = database.query("SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name")
    names = {row["name"] for row in result.rows}

    assert {"users", "messages"} <= names
    assert database.path.parent.is_dir()


def test_initialize_is_idempotent(database: Database) -> None:
    database.query(INSERT_USER, ("alice",))
    database.initialize()

    assert database.query("SELECT COUNT(*) AS total FROM users").first()["total"] == 1


def test_query_reports_rowcount_and_last_row_id(database: Database) -> None:
    database.query(INSERT_USER, ("alice",))
    database.query(INSERT_USER, ("bob",))

    inserted = database.query(
        "INSERT INTO messages (from_username, to_username, body, sent_at) VALUES (?, ?, ?, ?)",
        ("alice", "bob", "hi", "2024-01-01T00:00:00+00:00"),
    )
    assert inserted.last_row_id is not None
    assert inserted.rows == []

    updated = database.query("UPDATE users SET phone = '999' WHERE username = ?", ("nobody",))
    assert updated.rowcount == 0
    assert updated.first() is None


def test_duplicate_key_raises_conflict(database: Database) -> None:
    database.query(INSERT_USER, ("alice",))

    with pytest.raises(ConflictError):
        database.query(INSERT_USER, ("alice",))


def test_dangling_foreign_key_raises_not_found(database: Database) -> None:
    database.query(INSERT_USER, ("alice",))

    with pytest.raises(NotFoundError):
        database.query(
            "INSERT INTO messages (from_username, to_username, body, sent_at) VALUES (?, ?, ?, ?)",
            ("alice", "ghost", "hi", "2024-01-01T00:00:00+00:00"),
        )


def test_driver_errors_become_storage_errors(database: Database) -> None:
    with pytest.raises(StorageError):
        database.query("SELECT * FROM no_such_table")


def test_resolve_database_path(tmp_path: Path) -> None:
    explicit = resolve_database_path(str(tmp_path / "custom.sqlite3"))
    assert explicit == (tmp_path / "custom.sqlite3").resolve()

    default = resolve_database_path(None)
    assert default.name == "messagely.sqlite3"
    assert default.parent.name == "data"
