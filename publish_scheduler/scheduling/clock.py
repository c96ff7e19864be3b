"""
Fixed-interval clock that fires an async callback.

Each fire spawns the callback as its own tracked task, so a slow tick never
delays the next fire.  Overlapping ticks are therefore possible; they are
logged, not prevented.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from publish_scheduler.exceptions import ValidationError

logger = logging.getLogger(__name__)


class Clock:
    """Calls *callback* every *interval_seconds*, starting immediately.

    Fire times follow a fixed cadence measured on the event loop's monotonic
    clock, so time spent scheduling a tick does not drift the schedule.

    Args:
        interval_seconds: Period between fires.
        callback: Coroutine function with no arguments.
        name: Used in log lines.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[Any]],
        name: str = "clock",
    ) -> None:
        if interval_seconds <= 0:
            raise ValidationError(
                f"interval_seconds must be positive, got {interval_seconds}"
            )
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.name = name
        self.fire_count: int = 0
        self._loop_task: Optional["asyncio.Task[None]"] = None
        self._in_flight: Set["asyncio.Task[None]"] = set()

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> int:
        """Number of callback runs that have not finished yet."""
        return len(self._in_flight)

    def start(self) -> None:
        """Start firing.  Must be called inside a running event loop."""
        if self.is_running:
            logger.info("[CLOCK] %s is already running", self.name)
            return
        self._loop_task = asyncio.create_task(self._run())
        logger.info("[CLOCK] %s started (interval=%ss)", self.name, self.interval_seconds)

    async def stop(self) -> None:
        """Stop firing and wait for in-flight callbacks to finish.

        Ticks are never cancelled midway.
        """
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._in_flight:
            logger.info(
                "[CLOCK] %s waiting for %d in-flight ticks", self.name, len(self._in_flight)
            )
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        logger.info("[CLOCK] %s stopped", self.name)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time()
        while True:
            self._fire()
            next_fire += self.interval_seconds
            await asyncio.sleep(max(next_fire - loop.time(), 0))

    def _fire(self) -> None:
        if self._in_flight:
            logger.debug(
                "[CLOCK] %s firing while %d previous ticks are still running",
                self.name,
                len(self._in_flight),
            )
        self.fire_count += 1
        task = asyncio.create_task(self._guarded())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _guarded(self) -> None:
        try:
            await self.callback()
        except Exception:
            logger.exception("[CLOCK] %s callback raised", self.name)


__all__ = [
    "Clock",
]
