"""
Redis façade for the Cache Service.

Every method forwards to the backing store and returns its reply verbatim.
Plain key/value access goes through ``CacheStore``; counters, appends,
hashes, sets and pub/sub use the raw connection because the store does not
model them.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Set, TYPE_CHECKING

from shared.errors import CacheLayerException, ValidationError
from shared.logging import get_logger
from .connection import RedisConnection, translate_store_errors
from .pubsub import MessageCallback, Subscription
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class RedisService:
    """Façade mediating all access to the backing Redis store."""

    def __init__(
        self,
        connection: RedisConnection,
        store: Optional[CacheStore] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.connection = connection
        self.store = store if store is not None else CacheStore(connection)
        self.metrics = metrics
        self.logger = get_logger("cache.facade")

    @staticmethod
    def _require(name: str, value: Any, allow_empty: bool = False) -> None:
        if value is None or (not allow_empty and value == ""):
            raise ValidationError(f"'{name}' is required", {"parameter": name})

    @asynccontextmanager
    async def _forward(self, operation: str):
        """Time a store round-trip and translate its errors."""
        start_time = time.time()
        try:
            async with translate_store_errors(operation, self.connection):
                yield
        except CacheLayerException as e:
            self.logger.error("Cache operation failed", operation=operation, code=e.code, error=e.message)
            self._record(operation, "error", start_time)
            raise
        self._record(operation, "ok", start_time)

    def _record(self, operation: str, status: str, start_time: float) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("cache_operations_total", operation=operation, status=status)
        self.metrics.observe_histogram(
            "cache_operation_duration_seconds", time.time() - start_time, operation=operation
        )

    # Key/value operations through the cache store

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key`` with the default expiry, if any."""
        self._require("key", key)
        self._require("value", value, allow_empty=True)
        async with self._forward("set"):
            await self.store.set(key, value)

    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None:
        """Store ``value`` under ``key`` expiring after ``ttl`` seconds."""
        self._require("key", key)
        self._require("value", value, allow_empty=True)
        self._require("ttl", ttl)
        async with self._forward("set_with_ttl"):
            await self.store.set(key, value, ttl=ttl)

    async def get(self, key: str) -> Optional[str]:
        """Return the value for ``key``, or None when absent."""
        self._require("key", key)
        async with self._forward("get"):
            return await self.store.get(key)

    async def delete(self, key: str) -> None:
        self._require("key", key)
        async with self._forward("delete"):
            await self.store.delete(key)

    async def reset(self) -> None:
        async with self._forward("reset"):
            await self.store.reset()

    async def list_keys(self) -> List[str]:
        async with self._forward("list_keys"):
            return await self.store.keys()

    # Direct-connection operations

    async def increment(self, key: str) -> int:
        """Add one to the integer at ``key``; an absent key becomes 1."""
        self._require("key", key)
        async with self._forward("increment"):
            return await self.connection.client.incr(key)

    async def decrement(self, key: str) -> int:
        """Subtract one from the integer at ``key``; an absent key becomes -1."""
        self._require("key", key)
        async with self._forward("decrement"):
            return await self.connection.client.decr(key)

    async def append(self, key: str, value: str) -> int:
        """Append to the string at ``key`` and return its new length."""
        self._require("key", key)
        self._require("value", value, allow_empty=True)
        async with self._forward("append"):
            return await self.connection.client.append(key, value)

    async def hset(self, key: str, field: str, value: str) -> int:
        self._require("key", key)
        self._require("field", field)
        self._require("value", value, allow_empty=True)
        async with self._forward("hset"):
            return await self.connection.client.hset(key, field, value)

    async def hget(self, key: str, field: str) -> Optional[str]:
        self._require("key", key)
        self._require("field", field)
        async with self._forward("hget"):
            return await self.connection.client.hget(key, field)

    async def hgetall(self, key: str) -> Dict[str, str]:
        self._require("key", key)
        async with self._forward("hgetall"):
            return await self.connection.client.hgetall(key)

    async def sadd(self, key: str, value: str) -> int:
        self._require("key", key)
        self._require("value", value, allow_empty=True)
        async with self._forward("sadd"):
            return await self.connection.client.sadd(key, value)

    async def srem(self, key: str, value: str) -> int:
        self._require("key", key)
        self._require("value", value, allow_empty=True)
        async with self._forward("srem"):
            return await self.connection.client.srem(key, value)

    async def smembers(self, key: str) -> Set[str]:
        self._require("key", key)
        async with self._forward("smembers"):
            return await self.connection.client.smembers(key)

    # Pub/sub

    async def publish(self, channel: str, message: str) -> int:
        """Publish ``message``; returns how many subscribers received it."""
        self._require("channel", channel)
        self._require("message", message, allow_empty=True)
        async with self._forward("publish"):
            return await self.connection.client.publish(channel, message)

    async def subscribe(self, channel: str, callback: MessageCallback) -> Subscription:
        """Subscribe ``callback`` to ``channel`` on a duplicated connection.

        The returned handle is not tracked here; call ``unsubscribe`` on it
        to release the connection.
        """
        self._require("channel", channel)
        self._require("callback", callback)
        async with self._forward("subscribe"):
            subscription = Subscription(
                channel,
                callback,
                self.connection.duplicate(),
                metrics=self.metrics,
            )
            return await subscription.start()
