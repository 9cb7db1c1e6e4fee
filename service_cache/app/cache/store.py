"""
Generic cache store over the shared Redis connection.

Models the get/set/del/reset/keys surface of a cache-manager style store and
applies the process-wide default expiry on writes.
"""

from typing import List, Optional

from shared.logging import get_logger
from .connection import RedisConnection


class CacheStore:
    """Cache abstraction used by the façade for plain key/value access."""

    def __init__(self, connection: RedisConnection, default_ttl: Optional[int] = None):
        self.connection = connection
        self.default_ttl = default_ttl
        self.logger = get_logger("cache.store")

    async def get(self, key: str) -> Optional[str]:
        return await self.connection.client.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store ``value``; ``ttl`` overrides the default expiry, in seconds."""
        expiry = ttl if ttl is not None else self.default_ttl
        if expiry is None:
            await self.connection.client.set(key, value)
        else:
            await self.connection.client.set(key, value, ex=expiry)
        self.logger.debug("Cached value", key=key, ttl=expiry)

    async def delete(self, key: str) -> int:
        return await self.connection.client.delete(key)

    async def reset(self) -> None:
        """Remove every key in the current database."""
        await self.connection.client.flushdb()
        self.logger.info("Cache reset")

    async def keys(self, pattern: str = "*") -> List[str]:
        return await self.connection.client.keys(pattern)
