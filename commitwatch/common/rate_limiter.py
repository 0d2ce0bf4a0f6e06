from __future__ import annotations
import asyncio
import time
from typing import AsyncIterator, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


class TokenBucket:
    def __init__(self, rate_per_sec: float, burst: int | None = None,
                 clock: Callable[[], float] = time.monotonic, sleep: Sleep = asyncio.sleep):
        self.rate = max(rate_per_sec, 0.1)
        self.capacity = burst if burst is not None else int(max(rate_per_sec * 2, 2))
        self.tokens = float(self.capacity)
        self._clock = clock
        self._sleep = sleep
        self.updated = clock()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                now = self._clock()
                elapsed = now - self.updated
                self.updated = now
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
                if self.tokens >= 1.0:
                    self.tokens -= 1.0
                    return
                # need to wait
                wait_time = (1.0 - self.tokens) / self.rate
            await self._sleep(wait_time)


class Pacer:
    """Strictly ordered sequence with a fixed gap between consecutive items.

    The first item is released immediately; every following item waits
    `interval_s` after the previous item was handed out and processed.
    """

    def __init__(self, interval_s: float, sleep: Sleep = asyncio.sleep):
        self.interval_s = max(float(interval_s), 0.0)
        self._sleep = sleep

    async def sequence(self, items: Iterable[T]) -> AsyncIterator[T]:
        first = True
        for item in items:
            if not first and self.interval_s > 0:
                await self._sleep(self.interval_s)
            first = False
            yield item
