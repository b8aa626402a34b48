import html
from typing import Any

from backend import RedisBackend
from constants import MAX_MESSAGE_LENGTH
from errors import ChatError, ErrorCode
from logging_config import get_logger
from relay.connection import Connection
from relay.presence import ActivityClock, RoomPresence
from schemas import frames
from schemas.rooms import Message

logger = get_logger(__name__)


class MessageRelay:
    def __init__(self, store: RedisBackend, presence: RoomPresence, clock: ActivityClock, max_length: int = MAX_MESSAGE_LENGTH):
        self.store = store
        self.presence = presence
        self.clock = clock
        self.max_length = max_length

    def validate_content(self, content: Any) -> str:
        if not isinstance(content, str):
            raise ChatError(ErrorCode.INVALID_MESSAGE_FORMAT, "Message content must be text")
        content = content.strip()
        if not content:
            raise ChatError(ErrorCode.INVALID_MESSAGE_FORMAT, "Message content is empty")
        if len(content) > self.max_length:
            raise ChatError(ErrorCode.INVALID_MESSAGE_FORMAT, f"Message exceeds {self.max_length} characters")
        return content

    def send(self, connection: Connection, room_id: int, content: Any) -> Message:
        """Persist a chat message and fan it out to the room.

        Persisting and enqueueing happen in one synchronous step, so frames
        reach every participant in the order the store assigned ids.

        Raises:
            ChatError: INVALID_MESSAGE_FORMAT, ROOM_NOT_FOUND, ROOM_ARCHIVED
                or NOT_IN_ROOM.
            StorageError: the store rejected the write.
        """
        content = self.validate_content(content)

        room = self.store.get_room(room_id)
        if room is None:
            raise ChatError(ErrorCode.ROOM_NOT_FOUND, f"Room {room_id} does not exist")
        if room.archived:
            raise ChatError(ErrorCode.ROOM_ARCHIVED, f"Room {room_id} is archived")
        if not self.presence.is_member(room_id, connection):
            raise ChatError(ErrorCode.NOT_IN_ROOM, f"Join room {room_id} before sending to it")

        message = self.store.append_message(
            room_id,
            connection.identity,
            connection.nicknames.get(room_id),
            html.escape(content),
            color=connection.colors.get(room_id),
        )
        self.clock.touch(room_id)

        frame = frames.chat_message(message)
        members = self.presence.members(room_id)
        delivered = sum(1 for member in members if member.send(frame))
        logger.debug(f"Message {message.id} in room {room_id} queued for {delivered}/{len(members)} connections")
        return message
