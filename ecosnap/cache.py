# ecosnap/cache.py — small in-memory TTL cache for chat replies
from __future__ import annotations
import time
from typing import Any, Callable, Dict, Optional, Tuple

DEFAULT_TTL = 3600.0  # 1 hour


class TTLCache:
    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._data: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        v = self._data.get(key)
        if not v:
            return None
        t, data = v
        if self._clock() - t >= self.ttl:
            self._data.pop(key, None)
            return None
        return data

    def set(self, key: str, data: Any) -> None:
        self.purge()
        self._data[key] = (self._clock(), data)

    def purge(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        dead = [k for k, (t, _) in self._data.items() if now - t >= self.ttl]
        for k in dead:
            self._data.pop(k, None)
        return len(dead)

    def __len__(self) -> int:
        return len(self._data)
