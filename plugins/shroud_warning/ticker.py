"""
plugins/shroud_warning/ticker.py

Asyncio tick source for a running countdown.

A single background task calls on_tick every interval. The ticker only
runs while a countdown is active; the engine starts it on start and
stops it on every stop path, including from inside on_tick itself.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


class Ticker:
    """
    Periodic callback loop.

    Args:
        on_tick: Async callback run once per interval.
        interval: Seconds between ticks.
    """

    def __init__(
        self,
        on_tick: Callable[[], Awaitable[None]],
        interval: float = 0.05
    ):
        self.on_tick = on_tick
        self.interval = interval
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self.logger = logging.getLogger(f"{__name__}.ticker")

    async def start(self) -> None:
        """Start the tick loop."""
        if self.running:
            self.logger.warning("Ticker already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._tick_loop())
        self.logger.debug(f"Ticker started (interval: {self.interval}s)")

    async def stop(self) -> None:
        """
        Stop the tick loop.

        When called from inside on_tick the loop simply exits after the
        current tick instead of cancelling and awaiting itself.
        """
        if not self.running:
            return

        self.running = False
        task, self._task = self._task, None

        if task is None or task is asyncio.current_task():
            self.logger.debug("Ticker stopped")
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        self.logger.debug("Ticker stopped")

    async def _tick_loop(self) -> None:
        # A restart from inside on_tick hands over to a new task
        while self.running and self._task is asyncio.current_task():
            try:
                await asyncio.sleep(self.interval)
                if not self.running or self._task is not asyncio.current_task():
                    break
                await self.on_tick()

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.exception(f"Error in tick callback: {e}")
