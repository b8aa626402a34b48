"""One live client socket and its outbound frame queue.

Frames are never written to the socket by the code that produces them.
``send`` only enqueues, and a per-connection writer task drains the queue in
order. Producers therefore never suspend on a slow client, and frames that
were enqueued in one synchronous step (e.g. persist + fan-out) reach every
socket in that same order.
"""
import asyncio
import json
import uuid
from typing import Optional

from fastapi.websockets import WebSocket, WebSocketState

from constants import OUTBOUND_QUEUE_SIZE
from logging_config import get_logger
from relay.auth import AuthGate

logger = get_logger(__name__)


class _CloseRequest:
    def __init__(self, code: int, reason: str):
        self.code = code
        self.reason = reason


class Connection:
    def __init__(self, websocket: WebSocket, auth: Optional[AuthGate] = None, queue_size: int = OUTBOUND_QUEUE_SIZE):
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex[:8]
        self.identity: Optional[str] = None
        self.auth = auth if auth is not None else AuthGate()
        # room id -> nickname used in that room; keys are the joined rooms
        self.nicknames: dict[int, str] = {}
        # room id -> display color, only for rooms joined with one
        self.colors: dict[int, str] = {}
        self.alive = True
        self._queue_size = queue_size
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closing = False
        self._writer: Optional[asyncio.Task] = None

    def __repr__(self):
        return f"Connection({self.connection_id}, identity={self.identity!r})"

    @property
    def rooms(self) -> set[int]:
        return set(self.nicknames)

    @property
    def is_open(self) -> bool:
        return self.alive and not self._closing

    def start(self):
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name=f"writer-{self.connection_id}")

    def send(self, frame: dict) -> bool:
        """Queue a frame for delivery. Returns False when it was dropped."""
        if self._closing or not self.alive:
            return False
        if self._queue.qsize() >= self._queue_size:
            logger.warning(f"Outbound queue full for {self}, dropping {frame.get('type')} frame")
            return False
        self._queue.put_nowait(frame)
        return True

    def close(self, code: int = 1000, reason: str = ""):
        """Flush what is already queued, then close the socket."""
        if self._closing:
            return
        self._closing = True
        self._queue.put_nowait(_CloseRequest(code, reason))

    async def flush(self):
        await self._queue.join()

    async def wait_closed(self, timeout: float = 5.0):
        if self._writer is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._writer), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Writer for {self} did not finish in {timeout}s, cancelling")
            self._writer.cancel()

    def _socket_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def _drain(self):
        try:
            while True:
                item = await self._queue.get()
                try:
                    if isinstance(item, _CloseRequest):
                        await self._close_socket(item)
                        return
                    if not self.alive or not self._socket_open():
                        self.alive = False
                        continue
                    try:
                        await self.websocket.send_text(json.dumps(item))
                    except Exception as e:
                        # the receive loop notices the disconnect and cleans up
                        logger.debug(f"Send to {self} failed, marking dead: {e}")
                        self.alive = False
                finally:
                    self._queue.task_done()
        finally:
            self.alive = False
            # release anyone waiting in flush()
            while not self._queue.empty():
                self._queue.get_nowait()
                self._queue.task_done()

    async def _close_socket(self, request: _CloseRequest):
        self.alive = False
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=request.code, reason=request.reason or None)
        except Exception as e:
            logger.debug(f"Error closing WebSocket for {self}: {e}")
