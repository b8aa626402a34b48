import redis
import functools
from typing import Optional
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB
from redis_keys import (
    REDIS_ROOM_SEQ_KEY,
    REDIS_MESSAGE_SEQ_KEY,
    REDIS_META_KEY,
    REDIS_MESSAGES_KEY,
    REDIS_ACTIVE_ROOMS_KEY,
    REDIS_ARCHIVED_ROOMS_KEY,
)
from errors import StorageError
from schemas.rooms import Room, Message, now_iso
from logging_config import get_logger

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    logger.info(f"Creating Redis client for {REDIS_HOST}:{REDIS_PORT} db={REDIS_DB}")
    return redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True)


def storage_call(method):
    """Turn redis failures into StorageError so callers never see driver exceptions."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except redis.RedisError as e:
            logger.error(f"Redis failure in {method.__name__}: {e}", exc_info=True)
            raise StorageError(f"{method.__name__} failed: {e}") from e
    return wrapper


class RedisBackend:
    """Durable store for rooms and their message history.

    Rooms live in ``room:meta:{id}`` hashes and are indexed by two sets
    (active / archived). Set membership is the only record of whether a
    room is archived, so the archive transition is one SMOVE and cannot be
    left half done. Messages are appended as JSON to a per-room list; their
    ids come from one global counter, so within a room list order and id
    order agree.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client if redis_client is not None else create_redis_client()
        logger.info("Initializing RedisBackend")

    @storage_call
    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    @storage_call
    def create_room(self, name: str, capacity: Optional[int], creator: str, is_private: bool = False) -> Room:
        room_id = int(self.redis_client.incr(REDIS_ROOM_SEQ_KEY))
        room = Room(id=room_id, name=name, capacity=capacity, creator=creator, isPrivate=is_private, archived=False, createdAt=now_iso())
        key = REDIS_META_KEY.format(room_id=room_id)
        # Convert values to strings for the Redis hash, skip None values
        room_data = {
            "id": str(room.id),
            "name": room.name,
            "creator": room.creator,
            "is_private": "1" if is_private else "0",
            "created_at": room.createdAt,
        }
        if capacity is not None:
            room_data["capacity"] = str(capacity)
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.hset(key, mapping=room_data)
        pipe.sadd(REDIS_ACTIVE_ROOMS_KEY, room_id)
        pipe.execute()
        logger.debug(f"Room {room_id} stored under {key} (private={is_private})")
        return room

    @storage_call
    def get_room(self, room_id: int) -> Optional[Room]:
        logger.debug(f"Fetching room {room_id}")
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.hgetall(REDIS_META_KEY.format(room_id=room_id))
        pipe.sismember(REDIS_ARCHIVED_ROOMS_KEY, room_id)
        room_data, archived = pipe.execute()
        if not room_data:
            logger.debug(f"Room {room_id} not found in Redis")
            return None
        return self._room_from_hash(room_data, archived=bool(archived))

    @storage_call
    def list_active_rooms(self, include_private: bool = False) -> list[Room]:
        """Active rooms in id order; private rooms only when asked for."""
        rooms = self._rooms_in(REDIS_ACTIVE_ROOMS_KEY, archived=False)
        if include_private:
            return rooms
        return [room for room in rooms if not room.isPrivate]

    @storage_call
    def list_archived_rooms(self) -> list[Room]:
        return self._rooms_in(REDIS_ARCHIVED_ROOMS_KEY, archived=True)

    @storage_call
    def archive_room(self, room_id: int) -> bool:
        """Move a room to the archived set.

        Returns True only for the call that performed the transition; a room
        that is unknown or already archived returns False. SMOVE is atomic, so
        two racing callers can never both win, and a failure leaves the room
        fully active.
        """
        moved = self.redis_client.smove(REDIS_ACTIVE_ROOMS_KEY, REDIS_ARCHIVED_ROOMS_KEY, room_id)
        if not moved:
            logger.debug(f"Room {room_id} was not active, nothing to archive")
            return False
        logger.info(f"Room {room_id} archived in Redis")
        return True

    @storage_call
    def append_message(self, room_id: int, user_id: str, nickname: Optional[str], content: str, color: Optional[str] = None) -> Message:
        message_id = int(self.redis_client.incr(REDIS_MESSAGE_SEQ_KEY))
        message = Message(
            id=message_id,
            roomId=room_id,
            userId=user_id,
            nickname=nickname,
            color=color,
            content=content,
            sentAt=now_iso(),
        )
        self.redis_client.rpush(REDIS_MESSAGES_KEY.format(room_id=room_id), message.model_dump_json())
        logger.debug(f"Appended message {message_id} to room {room_id}")
        return message

    @storage_call
    def get_messages(self, room_id: int, limit: Optional[int] = None) -> list[Message]:
        """Return a room's messages oldest first, optionally only the last ``limit``."""
        key = REDIS_MESSAGES_KEY.format(room_id=room_id)
        start = -limit if limit else 0
        raw_messages = self.redis_client.lrange(key, start, -1)
        messages = []
        for raw in raw_messages:
            try:
                messages.append(Message.model_validate_json(raw))
            except ValueError as e:
                logger.warning(f"Skipping unreadable message in room {room_id}: {e}")
        return messages

    def _rooms_in(self, set_key: str, archived: bool) -> list[Room]:
        room_ids = sorted(int(room_id) for room_id in self.redis_client.smembers(set_key))
        if not room_ids:
            return []
        pipe = self.redis_client.pipeline()
        for room_id in room_ids:
            pipe.hgetall(REDIS_META_KEY.format(room_id=room_id))
        return [self._room_from_hash(data, archived=archived) for data in pipe.execute() if data]

    @staticmethod
    def _room_from_hash(room_data: dict, archived: bool) -> Room:
        capacity = room_data.get("capacity")
        return Room(
            id=int(room_data["id"]),
            name=room_data.get("name", ""),
            capacity=int(capacity) if capacity not in (None, "") else None,
            creator=room_data.get("creator", ""),
            isPrivate=room_data.get("is_private") == "1",
            archived=archived,
            createdAt=room_data.get("created_at", ""),
        )
