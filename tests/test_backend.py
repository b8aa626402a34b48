"""Tests for the Redis room store."""
import pytest
import redis

from backend import RedisBackend
from errors import StorageError


def test_create_and_get_room(store):
    room = store.create_room("General", 5, "u1")

    fetched = store.get_room(room.id)
    assert fetched == room
    assert fetched.name == "General"
    assert fetched.capacity == 5
    assert fetched.creator == "u1"
    assert fetched.archived is False
    assert fetched.createdAt


def test_room_ids_are_sequential(store):
    first = store.create_room("one", None, "u1")
    second = store.create_room("two", None, "u1")
    assert second.id == first.id + 1


def test_unlimited_room_has_no_capacity(store):
    room = store.create_room("Lobby", None, "u1")
    assert store.get_room(room.id).capacity is None


def test_get_missing_room_returns_none(store):
    assert store.get_room(999) is None


def test_archive_moves_room_between_lists(store):
    keep = store.create_room("keep", None, "u1")
    gone = store.create_room("gone", None, "u1")

    assert store.archive_room(gone.id) is True

    assert [r.id for r in store.list_active_rooms()] == [keep.id]
    archived = store.list_archived_rooms()
    assert [r.id for r in archived] == [gone.id]
    assert archived[0].archived is True
    assert store.get_room(gone.id).archived is True


def test_archive_only_transitions_once(store):
    room = store.create_room("General", None, "u1")
    assert store.archive_room(room.id) is True
    assert store.archive_room(room.id) is False
    assert store.archive_room(12345) is False


def test_messages_keep_append_order(store):
    room = store.create_room("General", None, "u1")
    other = store.create_room("Other", None, "u1")
    m1 = store.append_message(room.id, "u1", "Ada", "first")
    store.append_message(other.id, "u2", "Bob", "elsewhere")
    m2 = store.append_message(room.id, "u2", "Bob", "second")

    messages = store.get_messages(room.id)
    assert [m.content for m in messages] == ["first", "second"]
    assert m1.id < m2.id
    assert messages[0].nickname == "Ada"
    assert messages[1].userId == "u2"


def test_get_messages_limit_returns_latest(store):
    room = store.create_room("General", None, "u1")
    for i in range(5):
        store.append_message(room.id, "u1", "Ada", f"m{i}")

    assert [m.content for m in store.get_messages(room.id, limit=2)] == ["m3", "m4"]
    assert store.get_messages(999) == []


def test_redis_failure_becomes_storage_error(store, monkeypatch):
    def boom(*args, **kwargs):
        raise redis.ConnectionError("connection refused")

    monkeypatch.setattr(store.redis_client, "incr", boom)
    with pytest.raises(StorageError):
        store.create_room("General", None, "u1")


def test_ping(store):
    assert store.ping() is True


def test_backend_builds_client_from_environment():
    backend = RedisBackend()
    assert isinstance(backend.redis_client, redis.Redis)


def test_archive_is_a_single_set_move(store, monkeypatch):
    room = store.create_room("General", None, "u1")

    def no_hash_writes(*args, **kwargs):
        raise redis.ConnectionError("connection lost")

    monkeypatch.setattr(store.redis_client, "hset", no_hash_writes)
    assert store.archive_room(room.id) is True

    assert store.get_room(room.id).archived is True
    assert "archived" not in store.redis_client.hgetall(f"room:meta:{room.id}")


def test_failed_archive_leaves_room_active(store, monkeypatch):
    room = store.create_room("General", None, "u1")

    def boom(*args, **kwargs):
        raise redis.ConnectionError("connection lost")

    monkeypatch.setattr(store.redis_client, "smove", boom)
    with pytest.raises(StorageError):
        store.archive_room(room.id)
    monkeypatch.undo()

    assert store.get_room(room.id).archived is False
    assert [r.id for r in store.list_active_rooms()] == [room.id]
    assert store.list_archived_rooms() == []
    assert store.archive_room(room.id) is True


def test_private_rooms_are_not_listed(store):
    public = store.create_room("Lobby", None, "u1")
    private = store.create_room("Secret", None, "u1", is_private=True)

    assert [r.id for r in store.list_active_rooms()] == [public.id]
    assert [r.id for r in store.list_active_rooms(include_private=True)] == [public.id, private.id]
    assert store.get_room(private.id).isPrivate is True


def test_message_keeps_sender_color(store):
    room = store.create_room("General", None, "u1")
    store.append_message(room.id, "u1", "Ada", "hi", color="#ff8800")
    store.append_message(room.id, "u2", "Bob", "hey")

    assert [m.color for m in store.get_messages(room.id)] == ["#ff8800", None]
