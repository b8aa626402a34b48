import asyncio
from typing import Optional

from logging_config import get_logger
from relay.connection import Connection
from relay.presence import RoomPresence

logger = get_logger(__name__)


class ConnectionRegistry:
    """Authenticated identity -> its single live connection."""

    def __init__(self, presence: RoomPresence):
        self.presence = presence
        self._connections: dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    async def register(self, identity: str, connection: Connection) -> Optional[Connection]:
        """Bind ``identity`` to ``connection``.

        Returns the connection previously holding the identity, which the
        caller must evict. The swap itself is atomic: there is never a moment
        with two entries, or none, for the identity.
        """
        async with self._lock:
            previous = self._connections.get(identity)
            connection.identity = identity
            self._connections[identity] = connection
        if previous is not None and previous is not connection:
            logger.info(f"Identity {identity} moved from {previous} to {connection}")
            return previous
        return None

    def find(self, identity: str) -> Optional[Connection]:
        return self._connections.get(identity)

    async def remove(self, identity: str, connection: Connection) -> list[int]:
        """Leave every room of ``connection`` and drop its registry entry.

        The entry is only dropped while it still points at ``connection``; an
        evicted socket closing late leaves its replacement alone. Returns the
        rooms that were left so the caller can broadcast presence.
        """
        async with self._lock:
            left = await self.presence.leave_all(connection)
            if self._connections.get(identity) is connection:
                del self._connections[identity]
                logger.info(f"Unregistered {connection}")
        return left

    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    def __len__(self):
        return len(self._connections)
