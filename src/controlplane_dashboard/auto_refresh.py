"""Periodic refresh for the dashboard.

Re-runs every sync cycle on a fixed interval while the main view is shown,
and fans out "view updated" events to anyone watching the dashboard.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import AsyncGenerator, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 10.0


class RefreshCoordinator:
    """Coordinates view-update events between the dashboard and subscribers."""

    def __init__(self):
        self._subscribers: list[asyncio.Queue] = []
        self._last_update: Optional[datetime] = None
        self._update_count = 0

    async def subscribe(self) -> AsyncGenerator[dict, None]:
        """Subscribe to view-update events.

        Yields:
            Event dictionaries with type, timestamp, and optional data.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=100)
        self._subscribers.append(queue)

        try:
            # Send initial heartbeat
            yield {
                "type": "heartbeat",
                "timestamp": datetime.now().isoformat(),
            }

            while True:
                event = await queue.get()
                yield event

        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def notify(self, reason: str = "update") -> None:
        """Queue a view-update event for every subscriber without blocking."""

        self._last_update = datetime.now()
        self._update_count += 1

        event = {
            "type": "view:updated",
            "timestamp": self._last_update.isoformat(),
            "reason": reason,
            "count": self._update_count,
        }

        dead_queues = []
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Subscriber queue full, dropping subscriber")
                dead_queues.append(queue)

        for queue in dead_queues:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def get_stats(self) -> dict:
        """Get coordinator statistics."""
        return {
            "subscribers": len(self._subscribers),
            "last_update": self._last_update.isoformat() if self._last_update else None,
            "update_count": self._update_count,
        }


class PollScheduler:
    """Background task that re-runs a full refresh every ``interval`` seconds."""

    def __init__(
        self,
        refresh: Callable[[], Awaitable[None]],
        interval: float = DEFAULT_INTERVAL,
    ):
        """Initialize the scheduler.

        Args:
            refresh: Coroutine function refreshing every resource kind.
            interval: Seconds between refreshes (default: 10)
        """
        self.refresh = refresh
        self.interval = interval

        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._last_tick: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._tick_count = 0
        self._error_count = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the polling loop."""
        if self._running:
            logger.debug("Poll scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Started polling every {self.interval}s")

    def cancel(self) -> Optional[asyncio.Task]:
        """Stop the loop without waiting; safe to call from inside a refresh.

        Returns the cancelled task, if it still has to be awaited.
        """
        if not self._running:
            return None

        self._running = False
        task, self._task = self._task, None
        logger.info("Stopped polling")
        # Called from within the loop itself: it exits after this refresh.
        if task is None or task is asyncio.current_task():
            return None
        task.cancel()
        return task

    async def stop(self):
        """Stop the polling loop."""
        task = self.cancel()
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _poll_loop(self):
        """Main polling loop."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)

                if not self._running:
                    break

                self._tick_count += 1
                self._last_tick = datetime.now()
                await self.refresh()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in poll loop: {e}")
                self._last_error = str(e)
                self._error_count += 1

    def get_stats(self) -> dict:
        """Get scheduler statistics."""
        return {
            "running": self._running,
            "interval": self.interval,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "error_count": self._error_count,
            "last_error": self._last_error,
        }
