import asyncio
from typing import Optional

from backend import RoomStore
from constants import REAPER_INTERVAL_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class Reaper:
    """Periodically evicts idle peers and empty rooms from a RoomStore."""

    def __init__(self, store: RoomStore, interval: float = REAPER_INTERVAL_SECONDS):
        self.store = store
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self):
        peers_removed, rooms_removed = self.store.reap()
        if peers_removed or rooms_removed:
            logger.info(f"Reaper removed {peers_removed} idle peers and {rooms_removed} empty rooms")
        else:
            logger.debug("Reaper found nothing to remove")
        return peers_removed, rooms_removed

    async def _run(self):
        logger.info(f"Reaper started, sweeping every {self.interval} seconds")
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Reaper sweep failed: {e}", exc_info=True)

    def start(self):
        if self.running:
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reaper stopped")
