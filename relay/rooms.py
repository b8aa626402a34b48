"""Room lifecycle: creation, owner archival and the shared retire primitive."""
import asyncio
import html
from typing import Any, Optional

from backend import RedisBackend
from constants import HISTORY_LIMIT, MAX_ROOM_NAME_LENGTH
from errors import ChatError, ErrorCode
from logging_config import get_logger
from relay.broadcaster import Broadcaster
from relay.presence import ActivityClock, RoomPresence
from schemas.rooms import Message, Room

logger = get_logger(__name__)


def clean_room_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ChatError(ErrorCode.ROOM_NAME_REQUIRED, "Room name is required")
    return html.escape(name.strip()[:MAX_ROOM_NAME_LENGTH])


def clean_capacity(capacity: Any) -> Optional[int]:
    if capacity is None:
        return None
    # bool is an int subclass; True is not a participant count
    if isinstance(capacity, bool):
        raise ChatError(ErrorCode.INVALID_MAX_PARTICIPANTS, "Capacity must be a positive number")
    if isinstance(capacity, float) and capacity.is_integer():
        capacity = int(capacity)
    if not isinstance(capacity, int) or capacity <= 0:
        raise ChatError(ErrorCode.INVALID_MAX_PARTICIPANTS, "Capacity must be a positive number")
    return capacity


class RoomService:
    def __init__(self, store: RedisBackend, presence: RoomPresence, clock: ActivityClock, broadcaster: Broadcaster):
        self.store = store
        self.presence = presence
        self.clock = clock
        self.broadcaster = broadcaster
        self._archive_lock = asyncio.Lock()

    def create_room(self, name: Any, capacity: Any, creator: str, is_private: bool = False) -> Room:
        """Create and start tracking a room. Private rooms are joinable by id but never listed."""
        name = clean_room_name(name)
        capacity = clean_capacity(capacity)
        room = self.store.create_room(name, capacity, creator, is_private=is_private)
        self.clock.touch(room.id)
        logger.info(f"Room {room.id} created by {creator}: name={name!r}, capacity={capacity}, private={is_private}")
        self.broadcaster.broadcast_all_rooms()
        return room

    async def archive_room(self, room_id: int, requester: str):
        """Owner-initiated archival.

        Raises:
            ChatError: ROOM_NOT_FOUND, ROOM_ARCHIVED (already archived) or
                NOT_ROOM_OWNER.
        """
        room = self.store.get_room(room_id)
        if room is None:
            raise ChatError(ErrorCode.ROOM_NOT_FOUND, f"Room {room_id} does not exist")
        if room.archived:
            raise ChatError(ErrorCode.ROOM_ARCHIVED, f"Room {room_id} is already archived")
        if room.creator != requester:
            logger.warning(f"{requester} tried to archive room {room_id} owned by {room.creator}")
            raise ChatError(ErrorCode.NOT_ROOM_OWNER, "Only the room creator can archive it")
        if not await self.retire(room_id):
            # the sweep got there between our read and the archive
            raise ChatError(ErrorCode.ROOM_ARCHIVED, f"Room {room_id} is already archived")

    async def retire(self, room_id: int) -> bool:
        """Archive a room and displace everyone in it.

        Shared by owner archival and the inactivity sweep. Safe to call any
        number of times: only the call that flips the store record notifies
        anyone, every later call returns False and does nothing.
        """
        async with self._archive_lock:
            if not self.store.archive_room(room_id):
                self.clock.discard(room_id)
                return False
            displaced = await self.presence.clear(room_id)
            self.clock.discard(room_id)
        logger.info(f"Room {room_id} archived, displacing {len(displaced)} connections")
        self.broadcaster.notify_room_destroyed(room_id, displaced)
        self.broadcaster.broadcast_all_rooms()
        return True

    def archived_room(self, room_id: int) -> tuple[Room, list[Message]]:
        room = self.store.get_room(room_id)
        if room is None:
            raise ChatError(ErrorCode.ROOM_NOT_FOUND, f"Room {room_id} does not exist")
        if not room.archived:
            raise ChatError(ErrorCode.ROOM_NOT_ARCHIVED, f"Room {room_id} is still active")
        return room, self.store.get_messages(room_id)

    def history(self, room_id: int, limit: int = HISTORY_LIMIT) -> list[Message]:
        return self.store.get_messages(room_id, limit=limit)
