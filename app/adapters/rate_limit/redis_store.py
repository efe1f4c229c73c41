"""Redis-backed counter store shared by every API worker.

The increment, first-window expiry and TTL read run inside a single Lua
script, so Redis serializes concurrent callers on the same key and no two of
them can observe the same count.
"""

from __future__ import annotations

import logging

import redis
from redis.exceptions import RedisError

from app.adapters.rate_limit.base import AbstractCounterStore, CounterSnapshot
from app.core.config import RedisSettings
from app.core.errors import CounterStoreUnavailable

logger = logging.getLogger(__name__)


# KEYS[1] = counter key, ARGV[1] = window in milliseconds.
# A key without TTL (-1) would never reset, so it gets re-armed as well.
INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
local ttl = redis.call('PTTL', KEYS[1])
if count == 1 or ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


class RedisCounterStore(AbstractCounterStore):
    """Counter store using a Redis server for atomic window counters."""

    def __init__(self, client: redis.Redis) -> None:
        """Initialize the store with an explicit client handle.

        Args:
            client: Connected (or lazily connecting) redis-py client.
        """
        self._client = client
        self._increment = client.register_script(INCREMENT_SCRIPT)

    @classmethod
    def from_settings(cls, redis_settings: RedisSettings) -> "RedisCounterStore":
        """Build a store from settings with bounded socket timeouts.

        Raises:
            ValueError: If no Redis URL is configured.
        """
        if not redis_settings.url:
            raise ValueError("REDIS_URL must be set to use the Redis counter store")

        client = redis.Redis.from_url(
            redis_settings.url,
            socket_timeout=redis_settings.socket_timeout_seconds,
            socket_connect_timeout=redis_settings.connect_timeout_seconds,
            decode_responses=True,
        )
        return cls(client)

    def increment(self, key: str, *, window_ms: int) -> CounterSnapshot:
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        try:
            reply = self._increment(keys=[key], args=[window_ms])
        except RedisError as exc:
            raise CounterStoreUnavailable(
                code="counter_store_unavailable",
                message=f"Counter store increment failed: {type(exc).__name__}",
            ) from exc

        try:
            count, ttl_ms = (int(v) for v in reply)
        except (TypeError, ValueError) as exc:
            raise CounterStoreUnavailable(
                code="counter_store_bad_reply",
                message="Counter store returned an unexpected reply",
            ) from exc

        return CounterSnapshot(count=count, ttl_ms=max(0, ttl_ms))

    def reset(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as exc:
            raise CounterStoreUnavailable(
                code="counter_store_unavailable",
                message=f"Counter store reset failed: {type(exc).__name__}",
            ) from exc

    def ping(self) -> bool:
        """Return True when the server answers, False otherwise."""
        try:
            return bool(self._client.ping())
        except RedisError:
            logger.warning("counter_store.ping_failed")
            return False
