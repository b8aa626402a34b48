"""Socket lifecycle and frame dispatch for the chat relay.

``ChatHub`` owns one instance of every relay component and is what the
FastAPI endpoint hands each accepted socket to. Per socket it runs the auth
handshake, then dispatches each inbound frame by ``type``. Errors are
reported to the offending socket only; nothing here lets one socket's
failure reach another.
"""
import asyncio
import uuid
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect

from backend import RedisBackend
from constants import (
    AUTH_TIMEOUT_SECONDS,
    HISTORY_LIMIT,
    MAX_MESSAGE_LENGTH,
    OUTBOUND_QUEUE_SIZE,
    ROOM_TTL_SECONDS,
    SINGLE_ROOM_PER_CONNECTION,
    SWEEP_INTERVAL_SECONDS,
)
from errors import ChatError, CloseCode, ErrorCode, StorageError, SuccessCode, WS_POLICY_VIOLATION
from logging_config import get_logger
from relay.archival import ArchivalScheduler
from relay.auth import AuthGate
from relay.broadcaster import Broadcaster
from relay.connection import Connection
from relay.messages import MessageRelay
from relay.presence import ActivityClock, RoomPresence
from relay.registry import ConnectionRegistry
from relay.rooms import RoomService
from schemas import frames

logger = get_logger(__name__)


class ChatHub:
    def __init__(
        self,
        store: RedisBackend,
        auth_timeout: float = AUTH_TIMEOUT_SECONDS,
        room_ttl: float = ROOM_TTL_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        single_room: bool = SINGLE_ROOM_PER_CONNECTION,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        history_limit: int = HISTORY_LIMIT,
        queue_size: int = OUTBOUND_QUEUE_SIZE,
    ):
        self.store = store
        self.auth_timeout = auth_timeout
        self.single_room = single_room
        self.history_limit = history_limit
        self.queue_size = queue_size

        self.clock = ActivityClock()
        self.presence = RoomPresence(store, self.clock)
        self.registry = ConnectionRegistry(self.presence)
        self.broadcaster = Broadcaster(store, self.registry, self.presence)
        self.relay = MessageRelay(store, self.presence, self.clock, max_length=max_message_length)
        self.rooms = RoomService(store, self.presence, self.clock, self.broadcaster)
        self.scheduler = ArchivalScheduler(self.clock, self.rooms, ttl=room_ttl, interval=sweep_interval)

        self._handlers = {
            frames.AuthFrame: self._on_auth_again,
            frames.RequestUserIdFrame: self._on_request_user_id,
            frames.GetAllRoomsFrame: self._on_get_all_rooms,
            frames.GetAllArchivedRoomsFrame: self._on_get_all_archived_rooms,
            frames.GetArchivedRoomFrame: self._on_get_archived_room,
            frames.JoinRoomFrame: self._on_join_room,
            frames.LeaveRoomFrame: self._on_leave_room,
            frames.SendMessageFrame: self._on_send_message,
            frames.CreateRoomFrame: self._on_create_room,
            frames.ArchiveRoomFrame: self._on_archive_room,
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, sweeper: bool = True):
        if sweeper:
            self.scheduler.start()

    async def stop(self):
        await self.scheduler.stop()
        for connection in self.registry.connections():
            connection.close(1001, "Server shutting down")

    async def serve(self, websocket: WebSocket):
        """Run one socket from accept to close."""
        await websocket.accept()
        connection = Connection(websocket, auth=AuthGate(self.auth_timeout), queue_size=self.queue_size)
        connection.start()
        connection.auth.open()
        logger.info(f"WebSocket accepted: {connection}, awaiting auth for {self.auth_timeout}s")

        try:
            while connection.is_open and not connection.auth.is_finished:
                try:
                    raw = await self._receive(websocket, connection.auth.remaining())
                except asyncio.TimeoutError:
                    logger.info(f"{connection} did not authenticate in time, closing")
                    connection.auth.reject()
                    connection.send(frames.error(ErrorCode.AUTH_TIMEOUT, f"Authentication required within {self.auth_timeout:g} seconds"))
                    connection.close(WS_POLICY_VIOLATION, "Authentication timeout")
                    break
                if raw is None:
                    connection.send(frames.error(ErrorCode.INVALID_JSON, "Binary frames are not supported"))
                    continue
                await self.handle_frame(connection, raw)
        except WebSocketDisconnect as e:
            logger.info(f"WebSocket disconnected for {connection} (code {e.code})")
        except Exception as e:
            logger.error(f"WebSocket error for {connection}: {e}", exc_info=True)
        finally:
            connection.auth.close()
            await self.disconnect(connection)
            connection.close()
            await connection.wait_closed()

    @staticmethod
    async def _receive(websocket: WebSocket, timeout: Optional[float]) -> Optional[str]:
        if timeout is None:
            message = await websocket.receive()
        else:
            message = await asyncio.wait_for(websocket.receive(), timeout=timeout)
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
        if message.get("text") is not None:
            return message["text"]
        try:
            return message.get("bytes", b"").decode("utf-8")
        except UnicodeDecodeError:
            return None

    async def disconnect(self, connection: Connection):
        """Registry removal plus presence cleanup for a closing socket."""
        if connection.identity is None:
            return
        try:
            left = await self.registry.remove(connection.identity, connection)
            self._announce_left(left)
        except Exception as e:
            logger.error(f"Cleanup after {connection} failed: {e}", exc_info=True)

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle_frame(self, connection: Connection, raw: str):
        try:
            try:
                frame = frames.parse_frame(raw)
            except ChatError:
                if not connection.auth.is_authenticated:
                    raise ChatError(ErrorCode.UNAUTHORIZED, "First message must be 'auth' with a valid userId")
                raise
            logger.debug(f"Received {frame.type} from {connection}")
            if connection.auth.is_authenticated:
                await self._handlers[type(frame)](connection, frame)
            else:
                await self._handle_unauthenticated(connection, frame)
        except ChatError as e:
            logger.warning(f"Rejected frame from {connection}: {e}")
            connection.send(frames.error(e.code, e.reason))
        except StorageError as e:
            logger.error(f"Storage unavailable while serving {connection}: {e}")
            connection.send(frames.error(ErrorCode.STORAGE_UNAVAILABLE, "Storage is unavailable, try again later"))
        except Exception as e:
            logger.error(f"Unexpected error handling frame from {connection}: {e}", exc_info=True)
            connection.send(frames.error(ErrorCode.INTERNAL_ERROR, "Internal server error"))

    async def _handle_unauthenticated(self, connection: Connection, frame):
        if isinstance(frame, frames.RequestUserIdFrame):
            await self._on_request_user_id(connection, frame)
            return
        if not isinstance(frame, frames.AuthFrame):
            raise ChatError(ErrorCode.UNAUTHORIZED, "First message must be 'auth' with a valid userId")
        identity = connection.auth.validate_identity(frame.userId)
        await self.authenticate(connection, identity)

    async def authenticate(self, connection: Connection, identity: str):
        """Promote a socket to authenticated, evicting any older holder of ``identity``."""
        connection.auth.authenticate(identity)
        previous = await self.registry.register(identity, connection)
        connection.send(frames.auth_ok(identity))
        logger.info(f"{connection} authenticated as {identity}")
        if previous is not None:
            await self.evict(previous)

    async def evict(self, connection: Connection):
        logger.info(f"Evicting {connection}: identity reconnected elsewhere")
        connection.auth.close()
        left = await self.registry.remove(connection.identity, connection)
        connection.send(frames.closed(CloseCode.DUPLICATE_CONNECTION))
        connection.close(WS_POLICY_VIOLATION, "Duplicate connection")
        self._announce_left(left)

    def _announce_left(self, room_ids: list[int]):
        for room_id in room_ids:
            self.broadcaster.broadcast_room(room_id)
        if room_ids:
            self.broadcaster.broadcast_all_rooms()

    # =========================================================================
    # Handlers (authenticated sockets only)
    # =========================================================================

    async def _on_auth_again(self, connection: Connection, frame: frames.AuthFrame):
        connection.auth.validate_identity(frame.userId)

    async def _on_request_user_id(self, connection: Connection, frame: frames.RequestUserIdFrame):
        user_id = uuid.uuid4().hex
        logger.info(f"Issued user id {user_id} to {connection}")
        connection.send(frames.user_id_issued(user_id))

    async def _on_get_all_rooms(self, connection: Connection, frame: frames.GetAllRoomsFrame):
        connection.send(frames.all_active_rooms(self.broadcaster.active_rooms()))

    async def _on_get_all_archived_rooms(self, connection: Connection, frame: frames.GetAllArchivedRoomsFrame):
        connection.send(frames.all_archived_rooms(self.broadcaster.archived_rooms()))

    async def _on_get_archived_room(self, connection: Connection, frame: frames.GetArchivedRoomFrame):
        room, messages = self.rooms.archived_room(frame.roomId)
        connection.send(frames.archived_room_data(self.broadcaster.room_snapshot(room), messages))

    async def _on_join_room(self, connection: Connection, frame: frames.JoinRoomFrame):
        left = await self.presence.join(frame.roomId, connection, frame.nickname, exclusive=self.single_room, color=frame.color)
        connection.send(frames.success(SuccessCode.ROOM_JOINED, roomId=frame.roomId))
        # membership is committed: presence goes out even if the history read fails
        try:
            connection.send(frames.room_history(frame.roomId, self.rooms.history(frame.roomId, self.history_limit)))
        finally:
            for room_id in left:
                self.broadcaster.broadcast_room(room_id)
            self.broadcaster.broadcast_room(frame.roomId)
            self.broadcaster.broadcast_all_rooms()

    async def _on_leave_room(self, connection: Connection, frame: frames.LeaveRoomFrame):
        if frame.roomId is None:
            left = await self.presence.leave_all(connection)
        else:
            left = [frame.roomId] if await self.presence.leave(frame.roomId, connection) else []
        connection.send(frames.success(SuccessCode.ROOM_LEFT, roomIds=left))
        self._announce_left(left)

    async def _on_send_message(self, connection: Connection, frame: frames.SendMessageFrame):
        self.relay.send(connection, frame.roomId, frame.content)

    async def _on_create_room(self, connection: Connection, frame: frames.CreateRoomFrame):
        room = self.rooms.create_room(frame.name, frame.capacity, connection.identity, is_private=frame.isPrivate)
        connection.send(frames.success(SuccessCode.ROOM_CREATED, roomId=room.id))

    async def _on_archive_room(self, connection: Connection, frame: frames.ArchiveRoomFrame):
        await self.rooms.archive_room(frame.roomId, connection.identity)
        connection.send(frames.success(SuccessCode.ROOM_CLOSED, roomId=frame.roomId))
