# ecosnap/throttle.py — outbound call limiter (model API) + inbound per-caller rate limit
from __future__ import annotations
import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Tuple, TypeVar

T = TypeVar("T")


class CallLimiter:
    """
    At most `concurrency` calls in flight and at most `per_window` call starts
    per `window` seconds. Saturated callers wait their turn; nothing is rejected.
    """

    def __init__(self, concurrency: int = 5, per_window: int = 10, window: float = 1.0,
                 clock: Callable[[], float] = time.monotonic):
        self.concurrency = concurrency
        self.per_window = per_window
        self.window = window
        self._clock = clock
        self._sem = asyncio.Semaphore(concurrency)
        self._starts: Deque[float] = deque()
        self._window_lock = asyncio.Lock()
        self._pending = 0

    @property
    def pending(self) -> int:
        """Calls queued or running."""
        return self._pending

    async def _wait_for_slot(self) -> None:
        while True:
            async with self._window_lock:
                now = self._clock()
                while self._starts and now - self._starts[0] >= self.window:
                    self._starts.popleft()
                if len(self._starts) < self.per_window:
                    self._starts.append(now)
                    return
                delay = self.window - (now - self._starts[0])
            await asyncio.sleep(max(delay, 0.001))

    async def submit(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        self._pending += 1
        try:
            async with self._sem:
                await self._wait_for_slot()
                return await fn(*args, **kwargs)
        finally:
            self._pending -= 1


@dataclass
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # epoch seconds when the window resets

    def as_dict(self) -> Dict[str, int]:
        return {"limit": self.limit, "remaining": self.remaining, "reset": self.reset}


class RateLimiter:
    """Fixed window per caller key (50 requests / 60 s by default). No retries, just a verdict."""

    def __init__(self, limit: int = 50, window: float = 60.0, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._counts: Dict[str, Tuple[int, float]] = {}
        self._next_sweep = 0.0

    def _sweep(self, now: float) -> None:
        # at most once per window: forget callers whose window has passed
        if now < self._next_sweep:
            return
        self._counts = {k: v for k, v in self._counts.items() if v[1] > now}
        self._next_sweep = now + self.window

    def check(self, key: str) -> RateDecision:
        now = self._clock()
        self._sweep(now)
        count, reset_at = self._counts.get(key, (0, 0.0))
        if now >= reset_at:
            count, reset_at = 0, now + self.window
        if count >= self.limit:
            self._counts[key] = (count, reset_at)
            return RateDecision(False, self.limit, 0, int(reset_at))
        count += 1
        self._counts[key] = (count, reset_at)
        return RateDecision(True, self.limit, self.limit - count, int(reset_at))

    def __len__(self) -> int:
        """Callers currently tracked."""
        return len(self._counts)
