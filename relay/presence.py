"""Who is in which room right now, and when each room last saw activity.

Presence is in-memory only; the store knows rooms and messages but nothing
about live sockets. A room whose presence set drops to zero is kept: it
stays readable until the archival sweep retires it.
"""
import asyncio
import html
import time
from typing import Optional

from backend import RedisBackend
from constants import MAX_COLOR_LENGTH, MAX_NICKNAME_LENGTH
from errors import ChatError, ErrorCode
from logging_config import get_logger
from relay.connection import Connection
from schemas.rooms import ConnectedClient

logger = get_logger(__name__)


class ActivityClock:
    """room id -> last activity timestamp (epoch seconds).

    Only rooms present here are eligible for the TTL sweep.
    """

    def __init__(self):
        self._last_activity: dict[int, float] = {}

    def touch(self, room_id: int, at: Optional[float] = None):
        self._last_activity[room_id] = time.time() if at is None else at

    def last_activity(self, room_id: int) -> Optional[float]:
        return self._last_activity.get(room_id)

    def discard(self, room_id: int):
        self._last_activity.pop(room_id, None)

    def expired(self, now: float, ttl: float) -> list[int]:
        return [room_id for room_id, last in list(self._last_activity.items()) if now - last >= ttl]

    def __contains__(self, room_id: int) -> bool:
        return room_id in self._last_activity

    def __len__(self):
        return len(self._last_activity)


def clean_nickname(nickname: Optional[str]) -> str:
    if not isinstance(nickname, str) or not nickname.strip():
        raise ChatError(ErrorCode.NICKNAME_REQUIRED, "A nickname is required to join a room")
    return html.escape(nickname.strip()[:MAX_NICKNAME_LENGTH])


def clean_color(color: Optional[str]) -> Optional[str]:
    if color is None or not color.strip():
        return None
    return html.escape(color.strip()[:MAX_COLOR_LENGTH])


class RoomPresence:
    def __init__(self, store: RedisBackend, clock: ActivityClock):
        self.store = store
        self.clock = clock
        self._members: dict[int, set[Connection]] = {}
        self._lock = asyncio.Lock()

    async def join(
        self,
        room_id: int,
        connection: Connection,
        nickname: Optional[str],
        exclusive: bool = False,
        color: Optional[str] = None,
    ) -> list[int]:
        """Add ``connection`` to the room under ``nickname``.

        ``color`` is optional and shown next to the nickname.

        With ``exclusive`` the connection first leaves every other room it is
        in, inside the same critical section, so it is never seen in two
        rooms. Returns the ids of the rooms it left that way.

        Raises:
            ChatError: ROOM_NOT_FOUND, ROOM_ARCHIVED, ROOM_FULL or
                NICKNAME_REQUIRED, checked in that order. Nothing is mutated
                when it raises.
        """
        async with self._lock:
            room = self.store.get_room(room_id)
            if room is None:
                raise ChatError(ErrorCode.ROOM_NOT_FOUND, f"Room {room_id} does not exist")
            if room.archived:
                raise ChatError(ErrorCode.ROOM_ARCHIVED, f"Room {room_id} is archived")
            present = self._members.get(room_id, set())
            if connection not in present and room.is_full(len(present)):
                raise ChatError(ErrorCode.ROOM_FULL, f"Room {room_id} is full ({len(present)}/{room.capacity})")
            nickname = clean_nickname(nickname)
            color = clean_color(color)

            left = []
            if exclusive:
                left = [other for other in sorted(connection.rooms) if other != room_id and self._remove(other, connection)]
                for other in left:
                    self.clock.touch(other)

            members = self._members.setdefault(room_id, set())
            members.add(connection)
            connection.nicknames[room_id] = nickname
            if color is None:
                connection.colors.pop(room_id, None)
            else:
                connection.colors[room_id] = color
            self.clock.touch(room_id)
        logger.info(f"{connection} joined room {room_id} as {nickname!r} ({len(members)} present)")
        return left

    async def leave(self, room_id: int, connection: Connection) -> bool:
        async with self._lock:
            left = self._remove(room_id, connection)
            if left:
                self.clock.touch(room_id)
        if left:
            logger.info(f"{connection} left room {room_id}")
        return left

    async def leave_all(self, connection: Connection) -> list[int]:
        async with self._lock:
            left = [room_id for room_id in sorted(connection.rooms) if self._remove(room_id, connection)]
            for room_id in left:
                self.clock.touch(room_id)
        if left:
            logger.info(f"{connection} left rooms {left}")
        return left

    async def clear(self, room_id: int) -> list[Connection]:
        """Drop the whole presence set of a room, returning who was in it."""
        async with self._lock:
            members = self._members.pop(room_id, set())
            for connection in members:
                connection.nicknames.pop(room_id, None)
                connection.colors.pop(room_id, None)
        return list(members)

    def _remove(self, room_id: int, connection: Connection) -> bool:
        connection.nicknames.pop(room_id, None)
        connection.colors.pop(room_id, None)
        members = self._members.get(room_id)
        if not members or connection not in members:
            return False
        members.discard(connection)
        if not members:
            del self._members[room_id]
        return True

    # Snapshot reads; callers iterate over copies, never the live sets.

    def members(self, room_id: int) -> list[Connection]:
        return list(self._members.get(room_id, ()))

    def count(self, room_id: int) -> int:
        return len(self._members.get(room_id, ()))

    def clients(self, room_id: int) -> list[ConnectedClient]:
        clients = [
            ConnectedClient(
                userId=conn.identity or "",
                nickname=conn.nicknames.get(room_id, ""),
                color=conn.colors.get(room_id),
            )
            for conn in self._members.get(room_id, ())
        ]
        return sorted(clients, key=lambda c: (c.nickname.lower(), c.userId))

    def is_member(self, room_id: int, connection: Connection) -> bool:
        return connection in self._members.get(room_id, ())
