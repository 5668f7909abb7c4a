from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from file2link.permissions.store import ReloadResult

logger = logging.getLogger(__name__)

Reloader = Callable[[], ReloadResult]


class RefreshScheduler:
    """
    Periodically re-reads the permissions file.

    The reload itself is synchronous (file read + parse + swap, serialized by
    the store) and runs in a worker thread so the event loop keeps serving.
    An interval of 0 disables the scheduler entirely.
    """

    def __init__(self, reloader: Reloader, interval_seconds: float) -> None:
        self._reloader = reloader
        self.interval_seconds = max(0.0, float(interval_seconds or 0))
        self.ticks = 0

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    async def _wait(self, stop_event: asyncio.Event) -> bool:
        """Sleep one interval; True if the stop event fired first."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        if not self.enabled:
            logger.info("Periodic permissions refresh disabled")
            return

        stop = stop_event or asyncio.Event()
        logger.info("Periodic permissions refresh every %.0fs", self.interval_seconds)
        while not stop.is_set():
            if await self._wait(stop):
                break
            self.ticks += 1
            try:
                result = await asyncio.to_thread(self._reloader)
            except Exception:
                # Keep ticking; the next interval may succeed.
                logger.exception("Scheduled permissions refresh crashed")
                continue
            if not result.ok:
                logger.warning("Scheduled permissions refresh failed: %s", result.error)
        logger.info("Permissions refresh scheduler stopped")
