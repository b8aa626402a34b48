import asyncio
import time
from typing import Optional

from constants import ROOM_TTL_SECONDS, SWEEP_INTERVAL_SECONDS
from logging_config import get_logger
from relay.presence import ActivityClock
from relay.rooms import RoomService

logger = get_logger(__name__)


class ArchivalScheduler:
    """Periodically retires rooms idle for at least ``ttl`` seconds."""

    def __init__(self, clock: ActivityClock, rooms: RoomService, ttl: float = ROOM_TTL_SECONDS, interval: float = SWEEP_INTERVAL_SECONDS):
        self.clock = clock
        self.rooms = rooms
        self.ttl = ttl
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        logger.info(f"Starting archival sweep every {self.interval}s with TTL {self.ttl}s")
        self._task = asyncio.create_task(self._loop(), name="archival-sweep")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Archival sweep stopped")

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Archival sweep tick failed: {e}", exc_info=True)

    async def tick(self, now: Optional[float] = None) -> list[int]:
        """Run one sweep and return the ids of the rooms it archived."""
        now = time.time() if now is None else now
        archived = []
        for room_id in self.clock.expired(now, self.ttl):
            try:
                if await self.rooms.retire(room_id):
                    archived.append(room_id)
            except Exception as e:
                # leave the room tracked so the next tick retries it
                logger.error(f"Failed to archive idle room {room_id}: {e}", exc_info=True)
        if archived:
            logger.info(f"Sweep archived {len(archived)} idle rooms: {archived}")
        return archived
