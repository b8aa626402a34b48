from typing import Iterable

from backend import RedisBackend
from logging_config import get_logger
from relay.connection import Connection
from relay.presence import RoomPresence
from relay.registry import ConnectionRegistry
from schemas import frames
from schemas.rooms import Room, RoomSnapshot

logger = get_logger(__name__)


class Broadcaster:
    """Builds room snapshots and fans them out.

    Snapshots are assembled without suspending between the store read and
    the presence read, so a snapshot never mixes state from before and after
    a concurrent archive. Delivery only enqueues on each connection.
    """

    def __init__(self, store: RedisBackend, registry: ConnectionRegistry, presence: RoomPresence):
        self.store = store
        self.registry = registry
        self.presence = presence

    def room_snapshot(self, room: Room) -> RoomSnapshot:
        return RoomSnapshot(
            id=room.id,
            name=room.name,
            participantCount=0 if room.archived else self.presence.count(room.id),
            capacity=room.capacity,
            creator=room.creator,
            isPrivate=room.isPrivate,
            archived=room.archived,
            createdAt=room.createdAt,
        )

    def active_rooms(self) -> list[RoomSnapshot]:
        return [self.room_snapshot(room) for room in self.store.list_active_rooms()]

    def archived_rooms(self) -> list[RoomSnapshot]:
        return [self.room_snapshot(room) for room in self.store.list_archived_rooms()]

    def broadcast_room(self, room_id: int):
        """Presence and room state to everyone currently in the room."""
        room = self.store.get_room(room_id)
        if room is None or room.archived:
            return
        members = self.presence.members(room_id)
        if not members:
            return
        clients_frame = frames.room_connected_clients(room_id, self.presence.clients(room_id))
        room_frame = frames.room_data(self.room_snapshot(room))
        for connection in members:
            connection.send(clients_frame)
            connection.send(room_frame)
        logger.debug(f"Broadcast presence of room {room_id} to {len(members)} connections")

    def broadcast_all_rooms(self):
        """Active room list to every authenticated connection."""
        frame = frames.all_active_rooms(self.active_rooms())
        connections = self.registry.connections()
        for connection in connections:
            connection.send(frame)
        logger.debug(f"Broadcast {len(frame['rooms'])} active rooms to {len(connections)} connections")

    def notify_room_destroyed(self, room_id: int, connections: Iterable[Connection]):
        frame = frames.room_destroyed(room_id)
        for connection in connections:
            connection.send(frame)
