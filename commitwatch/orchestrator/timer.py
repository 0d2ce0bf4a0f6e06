from __future__ import annotations
import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Generic, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """At most one run at a time. A trigger that arrives while busy is dropped, not queued."""

    def __init__(self, fn: Callable[[], Awaitable[T]]):
        self._fn = fn
        self._running = False
        self.dropped = 0

    @property
    def busy(self) -> bool:
        return self._running

    async def run(self) -> Optional[T]:
        if self._running:
            self.dropped += 1
            return None
        self._running = True
        try:
            return await self._fn()
        finally:
            self._running = False


class IntervalTimer:
    """Fires `on_tick` once immediately, then on every multiple of `interval_s`
    since the epoch (cron `*/N` style) until `stop()` is called.

    Ticks are started as background tasks so a slow tick never delays the schedule;
    overlap protection is the tick's own concern (see SingleFlight).
    """

    def __init__(self, interval_s: float, on_tick: Callable[[], Awaitable[object]], *,
                 run_immediately: bool = True, align: bool = True,
                 clock: Callable[[], float] = time.time):
        self.interval_s = float(interval_s)
        self._on_tick = on_tick
        self._run_immediately = run_immediately
        self._align = align
        self._clock = clock
        self._stop = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()

    def _delay_to_next(self) -> float:
        now = self._clock()
        if not self._align:
            return self.interval_s
        nxt = (math.floor(now / self.interval_s) + 1) * self.interval_s
        return max(0.0, nxt - now)

    def _fire(self) -> None:
        task = asyncio.create_task(self._on_tick())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def in_flight(self) -> Set[asyncio.Task]:
        return set(self._tasks)

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        if self._run_immediately:
            self._fire()
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._delay_to_next())
            except asyncio.TimeoutError:
                self._fire()

    async def drain(self, grace_s: float) -> None:
        """Wait up to `grace_s` for in-flight ticks, then cancel the rest."""
        pending = self.in_flight
        if not pending:
            return
        _, still = await asyncio.wait(pending, timeout=grace_s)
        for t in still:
            t.cancel()
        if still:
            logger.warning(f"Cancelled {len(still)} in-flight sweep(s) at shutdown")
            await asyncio.gather(*still, return_exceptions=True)
