from __future__ import annotations

from pathlib import Path
from unittest import mock

import anyio
import pytest

from messagely.database import Database
from messagely.errors import ConflictError, NotFoundError, ValidationError
from messagely.messages import MessageStore
from messagely.passwords import PasswordHasher
from messagely.users import REQUIRED_FIELDS, UserStore, normalize_username


ALICE = {
    "username": "alice",
    "password": "secret1",
    "first_name": "Alice",
    "last_name": "A",
    "phone": "111",
}
BOB = {
    "username": "bob",
    "password": "secret2",
    "first_name": "Bob",
    "last_name": "B",
    "phone": "222",
}


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "messagely.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def store(database: Database) -> UserStore:
    return UserStore(database, PasswordHasher(work_factor=4))


@pytest.mark.anyio
async def test_register_returns_public_fields_and_hash(store: UserStore, database: Database) -> None:
    user = await store.register(ALICE)

    assert user.username == "alice"
    assert user.first_name == "Alice"
    assert user.last_name == "A"
    assert user.phone == "111"
    assert user.password != "secret1"
    assert user.password.startswith("$2b$04$")

    stored = database.query("SELECT password FROM users WHERE username = ?", ("alice",)).first()
    assert stored is not None
    assert stored["password"] == user.password


@pytest.mark.anyio
async def test_authenticate_accepts_only_the_registered_password(store: UserStore) -> None:
    await store.register(ALICE)

    assert await store.authenticate("alice", "secret1") is True
    assert await store.authenticate("alice", "wrong") is False
    assert await store.authenticate("bob", "x") is False


@pytest.mark.anyio
async def test_authenticate_unknown_user_still_runs_a_hash_check(store: UserStore) -> None:
    with mock.patch.object(PasswordHasher, "dummy_verify") as dummy_verify:
        assert await store.authenticate("nobody", "whatever") is False
    dummy_verify.assert_called_once()


@pytest.mark.anyio
async def test_authenticate_with_missing_credentials_returns_false(store: UserStore) -> None:
    await store.register(ALICE)

    assert await store.authenticate(None, "secret1") is False
    assert await store.authenticate("alice", None) is False
    assert await store.authenticate("alice", "") is False


@pytest.mark.anyio
async def test_authenticate_strips_username_like_register(store: UserStore) -> None:
    await store.register({**ALICE, "username": "  alice "})

    assert await store.authenticate("alice", "secret1") is True
    assert await store.authenticate(" alice  ", "secret1") is True
    assert await store.authenticate("   ", "secret1") is False


@pytest.mark.anyio
@pytest.mark.parametrize("field", REQUIRED_FIELDS)
async def test_register_requires_every_field(store: UserStore, field: str) -> None:
    missing = {key: value for key, value in ALICE.items() if key != field}
    empty = {**ALICE, field: "   "}

    with pytest.raises(ValidationError):
        await store.register(missing)
    with pytest.raises(ValidationError):
        await store.register(empty)

    assert await store.all() == []


@pytest.mark.anyio
async def test_register_validates_before_hashing(store: UserStore) -> None:
    with mock.patch.object(PasswordHasher, "hash") as hash_password:
        with pytest.raises(ValidationError):
            await store.register({"username": "alice"})
    hash_password.assert_not_called()


@pytest.mark.anyio
async def test_register_duplicate_username_conflicts(store: UserStore) -> None:
    await store.register(ALICE)

    with pytest.raises(ConflictError):
        await store.register({**ALICE, "password": "other", "first_name": "Mallory"})

    profile = await store.get("alice")
    assert profile.first_name == "Alice"
    assert await store.authenticate("alice", "secret1") is True
    assert await store.authenticate("alice", "other") is False


@pytest.mark.anyio
async def test_register_stamps_join_and_login_times(store: UserStore) -> None:
    await store.register(ALICE)
    profile = await store.get("alice")

    assert profile.join_at is not None
    assert profile.last_login_at == profile.join_at
    assert profile.join_at.tzinfo is not None


@pytest.mark.anyio
async def test_update_login_timestamp_advances_last_login(store: UserStore) -> None:
    await store.register(ALICE)
    before = await store.get("alice")

    await anyio.sleep(0.01)
    await store.update_login_timestamp("alice")

    after = await store.get("alice")
    assert after.last_login_at > before.last_login_at
    assert after.join_at == before.join_at


@pytest.mark.anyio
async def test_update_login_timestamp_unknown_user(store: UserStore) -> None:
    with pytest.raises(NotFoundError):
        await store.update_login_timestamp("ghost")


@pytest.mark.anyio
async def test_get_never_exposes_password(store: UserStore) -> None:
    await store.register(ALICE)
    profile = await store.get("alice")

    assert not hasattr(profile, "password")
    assert profile.username == "alice"
    assert profile.phone == "111"


@pytest.mark.anyio
async def test_get_unknown_user(store: UserStore) -> None:
    with pytest.raises(NotFoundError):
        await store.get("ghost")


@pytest.mark.anyio
async def test_all_is_sorted_by_username(store: UserStore) -> None:
    for username in ("carol", "alice", "bob"):
        await store.register({**ALICE, "username": username})

    users = await store.all()
    assert [user.username for user in users] == ["alice", "bob", "carol"]
    assert not hasattr(users[0], "password")


@pytest.mark.anyio
async def test_mailboxes_join_counterpart_details(store: UserStore, database: Database) -> None:
    await store.register(ALICE)
    await store.register(BOB)
    assert await store.messages_from("alice") == []
    assert await store.messages_to("bob") == []

    message = await MessageStore(database).create("alice", "bob", "hello bob")

    sent = await store.messages_from("alice")
    assert len(sent) == 1
    assert sent[0].id == message.id
    assert sent[0].counterpart.username == "bob"
    assert sent[0].counterpart.first_name == "Bob"
    assert sent[0].body == "hello bob"
    assert sent[0].sent_at == message.sent_at
    assert sent[0].read_at is None

    received = await store.messages_to("bob")
    assert len(received) == 1
    assert received[0].counterpart.username == "alice"
    assert received[0].counterpart.phone == "111"

    assert await store.messages_to("alice") == []


@pytest.mark.anyio
async def test_mailboxes_are_ordered_by_send_time(store: UserStore, database: Database) -> None:
    await store.register(ALICE)
    await store.register(BOB)
    messages = MessageStore(database)
    first = await messages.create("alice", "bob", "first")
    second = await messages.create("alice", "bob", "second")

    sent = await store.messages_from("alice")
    assert [entry.id for entry in sent] == [first.id, second.id]


@pytest.mark.anyio
async def test_mailboxes_reject_unknown_user(store: UserStore) -> None:
    with pytest.raises(NotFoundError):
        await store.messages_from("ghost")
    with pytest.raises(NotFoundError):
        await store.messages_to("ghost")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("alice", "alice"), ("  alice\t", "alice"), ("   ", None), ("", None), (None, None), (42, None)],
)
def test_normalize_username(raw, expected) -> None:
    assert normalize_username(raw) == expected
