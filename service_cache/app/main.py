"""
Cache service for the Cache Access Layer.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import Response

from shared.base_service import BaseService

from .cache.connection import CLOSE, CONNECT, ERROR, RedisConnection
from .cache.facade import RedisService
from .cache.store import CacheStore


class CacheService(BaseService):
    """Cache service implementation."""

    def __init__(self, **config_overrides):
        super().__init__("cache", 8013, **config_overrides)

        self.connection = RedisConnection(
            self.config.redis_url,
            socket_timeout=self.config.redis_socket_timeout,
        )
        self.connection.add_listener(CONNECT, self._log_connection_event)
        self.connection.add_listener(ERROR, self._log_connection_event)
        self.connection.add_listener(CLOSE, self._log_connection_event)

        self.store = CacheStore(self.connection, default_ttl=self.config.default_ttl)
        self.redis_service = RedisService(self.connection, self.store, metrics=self.metrics)

        self._setup_cache_routes()

    def _log_connection_event(self, event: str, error: Optional[BaseException]) -> None:
        if event == CONNECT:
            self.logger.info("Connected to Redis")
        elif event == ERROR:
            self.logger.error("Error connecting to Redis", error=str(error))
            self.metrics.record_error("STORE_CONNECTION_ERROR")
        else:
            self.logger.info("Redis connection closed")

    def _setup_cache_routes(self):
        """Set up cache-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "cache",
                "message": "Cache Access Layer - Cache Service",
                "version": "1.0.0",
                "capabilities": ["strings", "counters", "hashes", "sets", "pubsub"]
            }

        @self.app.get("/redis")
        async def get_diagnostic_value():
            """Write the current timestamp to the diagnostic key and read it back."""
            key = self.config.diagnostic_key
            await self.redis_service.set(key, datetime.now(timezone.utc).isoformat())
            return await self.redis_service.get(key)

        @self.app.post("/redis", status_code=201)
        async def set_diagnostic_value():
            """Write the current timestamp to the diagnostic key."""
            await self.redis_service.set(self.config.diagnostic_key, datetime.now(timezone.utc).isoformat())
            return Response(status_code=201)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check cache service dependencies."""
        return {"redis": "ok" if await self.connection.ping() else "error"}

    async def start(self):
        """Connect to Redis; a failure is logged and the service still starts."""
        await self.connection.connect()
        self.logger.info("Cache service started", default_ttl=self.config.default_ttl)

    async def stop(self):
        """Release the shared Redis connection."""
        await self.connection.close()
        self.logger.info("Cache service stopped")


def create_app():
    """Create cache service application."""
    service = CacheService()
    return service.app


if __name__ == "__main__":
    service = CacheService()
    service.run()
