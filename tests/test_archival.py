"""Tests for the inactivity sweep."""
import asyncio

import pytest
import redis

from errors import ChatError, ErrorCode
from relay.hub import ChatHub


@pytest.mark.asyncio
async def test_tick_archives_only_idle_rooms(chat_hub, store):
    idle = chat_hub.rooms.create_room("Idle", None, "u1")
    fresh = chat_hub.rooms.create_room("Fresh", None, "u1")
    chat_hub.clock.touch(idle.id, at=1000.0)
    chat_hub.clock.touch(fresh.id, at=1050.0)

    archived = await chat_hub.scheduler.tick(now=1060.0)

    assert archived == [idle.id]
    assert store.get_room(idle.id).archived is True
    assert store.get_room(fresh.id).archived is False
    assert idle.id not in chat_hub.clock
    assert fresh.id in chat_hub.clock


@pytest.mark.asyncio
async def test_untracked_rooms_are_never_swept(chat_hub, store):
    # rooms left over from a previous process have no activity entry
    room = store.create_room("Leftover", None, "u1")
    assert await chat_hub.scheduler.tick(now=10**12) == []
    assert store.get_room(room.id).archived is False


@pytest.mark.asyncio
async def test_sweep_notifies_participants_once(chat_hub, store, connect):
    room = chat_hub.rooms.create_room("General", 5, "u1")
    ada, bob = await connect("u1"), await connect("u2")
    await chat_hub.presence.join(room.id, ada, "Ada")
    await chat_hub.presence.join(room.id, bob, "Bob")
    chat_hub.clock.touch(room.id, at=0.0)

    assert await chat_hub.scheduler.tick(now=60.0) == [room.id]
    assert await chat_hub.scheduler.tick(now=120.0) == []
    await ada.flush()
    await bob.flush()

    for conn in (ada, bob):
        assert conn.websocket.of_type("roomDestroyed") == [{"type": "roomDestroyed", "roomId": room.id}]
        assert conn.rooms == set()
    assert [r.id for r in store.list_archived_rooms()] == [room.id]


@pytest.mark.asyncio
async def test_activity_postpones_the_sweep(chat_hub, store, connect):
    room = chat_hub.rooms.create_room("General", None, "u1")
    ada = await connect("u1")
    await chat_hub.presence.join(room.id, ada, "Ada")
    chat_hub.clock.touch(room.id, at=0.0)

    chat_hub.relay.send(ada, room.id, "still here")

    assert await chat_hub.scheduler.tick(now=60.0) == []
    assert store.get_room(room.id).archived is False


@pytest.mark.asyncio
async def test_a_failing_room_does_not_stop_the_sweep(chat_hub, store, monkeypatch):
    broken = chat_hub.rooms.create_room("Broken", None, "u1")
    healthy = chat_hub.rooms.create_room("Healthy", None, "u1")
    chat_hub.clock.touch(broken.id, at=0.0)
    chat_hub.clock.touch(healthy.id, at=0.0)

    archive_room = store.archive_room

    def flaky_archive(room_id):
        if room_id == broken.id:
            raise RuntimeError("boom")
        return archive_room(room_id)

    monkeypatch.setattr(store, "archive_room", flaky_archive)

    assert await chat_hub.scheduler.tick(now=100.0) == [healthy.id]
    assert broken.id in chat_hub.clock


@pytest.mark.asyncio
async def test_owner_archive_and_sweep_race_notifies_once(chat_hub, store, connect):
    room = chat_hub.rooms.create_room("General", None, "u1")
    ada = await connect("u1")
    await chat_hub.presence.join(room.id, ada, "Ada")
    chat_hub.clock.touch(room.id, at=0.0)

    results = await asyncio.gather(
        chat_hub.rooms.retire(room.id),
        chat_hub.scheduler.tick(now=100.0),
    )
    await ada.flush()

    assert sorted([results[0], bool(results[1])]) == [False, True]
    assert len(ada.websocket.of_type("roomDestroyed")) == 1


@pytest.mark.asyncio
async def test_start_and_stop(chat_hub):
    scheduler = chat_hub.scheduler
    scheduler.start()
    assert scheduler.running
    scheduler.start()
    await scheduler.stop()
    assert not scheduler.running
    await scheduler.stop()


@pytest.mark.asyncio
async def test_background_loop_runs_ticks(store):
    hub = ChatHub(store, room_ttl=0, sweep_interval=0.01)
    room = hub.rooms.create_room("General", None, "u1")
    hub.start()
    try:
        for _ in range(100):
            if store.get_room(room.id).archived:
                break
            await asyncio.sleep(0.01)
    finally:
        await hub.stop()
    assert store.get_room(room.id).archived is True


@pytest.mark.asyncio
async def test_storage_failure_during_sweep_is_retried_next_tick(chat_hub, store, connect, monkeypatch):
    room = chat_hub.rooms.create_room("General", None, "u1")
    ada = await connect("u1")
    await chat_hub.presence.join(room.id, ada, "Ada")
    chat_hub.clock.touch(room.id, at=0.0)

    def connection_lost(*args, **kwargs):
        raise redis.ConnectionError("connection lost")

    monkeypatch.setattr(store.redis_client, "smove", connection_lost)
    assert await chat_hub.scheduler.tick(now=100.0) == []

    # nothing half archived: the room is still fully active and tracked
    assert store.get_room(room.id).archived is False
    assert room.id in chat_hub.clock
    assert chat_hub.presence.is_member(room.id, ada)

    monkeypatch.undo()
    assert await chat_hub.scheduler.tick(now=200.0) == [room.id]
    await ada.flush()

    assert ada.websocket.of_type("roomDestroyed") == [{"type": "roomDestroyed", "roomId": room.id}]
    with pytest.raises(ChatError) as exc:
        await chat_hub.presence.join(room.id, ada, "Ada")
    assert exc.value.code == ErrorCode.ROOM_ARCHIVED
    with pytest.raises(ChatError) as exc:
        chat_hub.relay.send(ada, room.id, "anyone?")
    assert exc.value.code == ErrorCode.ROOM_ARCHIVED
