"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractCounterStore, CounterSnapshot


@dataclass
class _WindowState:
    count: int
    expires_at: float


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping one expiring counter per key in a dict.

    Windows start at the first increment for a key and last ``window_ms``,
    mirroring the INCR + PEXPIRE behavior of the Redis store.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the in-memory counter store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, s in self._state_by_key.items() if s.expires_at <= now]
        for key in expired:
            del self._state_by_key[key]

    def increment(self, key: str, *, window_ms: int) -> CounterSnapshot:
        """Increment the counter for ``key``, starting a window when needed.

        Raises:
            ValueError: If key is empty or window_ms is invalid.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        now = self._clock()

        with self._lock:
            state = self._state_by_key.get(key)
            if state is None or state.expires_at <= now:
                # Opportunistic cleanup keeps the dict bounded by active keys
                self._purge_expired(now)
                state = _WindowState(count=0, expires_at=now + window_ms / 1000.0)
                self._state_by_key[key] = state

            state.count += 1
            ttl_ms = max(0, int(math.ceil((state.expires_at - now) * 1000)))
            return CounterSnapshot(count=state.count, ttl_ms=ttl_ms)

    def reset(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    def size(self) -> int:
        """Return the number of tracked keys, including not-yet-purged ones."""
        with self._lock:
            return len(self._state_by_key)
