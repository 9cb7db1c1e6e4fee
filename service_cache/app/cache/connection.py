"""
Shared Redis connection handle for the Cache Service.

One ``RedisConnection`` is built per process and passed by reference to the
cache store and the façade. Connection events are published to observer
callbacks; nothing here retries, reconnects or backs off.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shared.errors import StoreCommandError, StoreConnectionError
from shared.logging import get_logger

ConnectionListener = Callable[[str, Optional[BaseException]], Any]

CONNECT = "connect"
ERROR = "error"
CLOSE = "close"


class RedisConnection:
    """Owns the shared ``redis.asyncio`` client and its lifecycle events.

    ``connected`` reflects the last connection event seen (a successful
    ``connect``, a reported error or ``close``). It is not a live check;
    use ``ping`` for that.
    """

    EVENTS = (CONNECT, ERROR, CLOSE)

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("cache.connection")
        self.connected = False
        self._listeners: Dict[str, List[ConnectionListener]] = {event: [] for event in self.EVENTS}
        self._options = {
            "encoding": "utf-8",
            "decode_responses": True,
            "socket_connect_timeout": socket_timeout,
            "socket_timeout": socket_timeout,
            "health_check_interval": 30,
        }

        self._client: Optional[redis.Redis] = client
        self.last_error: Optional[BaseException] = None
        if self._client is None:
            try:
                self._client = redis.from_url(redis_url, **self._options)
            except (ValueError, RedisError) as e:
                # Construction still succeeds; every later operation fails on its own
                self.last_error = e
                self.logger.error("Failed to create Redis client", error=str(e))

    @property
    def client(self) -> redis.Redis:
        """The shared client; raises when it could not be created."""
        if self._client is None:
            raise StoreConnectionError(
                "Redis client unavailable",
                {"reason": str(self.last_error) if self.last_error else "not configured"}
            )
        return self._client

    def add_listener(self, event: str, listener: ConnectionListener) -> ConnectionListener:
        """Register ``listener(event, error)`` for a connection event."""
        if event not in self._listeners:
            raise ValueError(f"Unknown connection event: {event}")
        self._listeners[event].append(listener)
        return listener

    def remove_listener(self, event: str, listener: ConnectionListener) -> None:
        """Unregister a listener; unknown listeners are ignored."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    async def _emit(self, event: str, error: Optional[BaseException] = None) -> None:
        for listener in list(self._listeners[event]):
            try:
                result = listener(event, error)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                # Observers are diagnostic only and must not change the outcome
                self.logger.error("Connection listener failed", connection_event=event, error=str(e))

    async def notify_error(self, error: BaseException) -> None:
        """Report a connection-level failure seen by a caller."""
        self.connected = False
        self.last_error = error
        await self._emit(ERROR, error)

    async def connect(self) -> bool:
        """Establish the connection with a PING; failures are reported, not raised."""
        try:
            await self.client.ping()
        except (StoreConnectionError, RedisError, OSError) as e:
            self.logger.error("Error connecting to Redis", error=str(e))
            await self.notify_error(e)
            return False

        self.connected = True
        self.last_error = None
        await self._emit(CONNECT)
        return True

    async def ping(self) -> bool:
        """Check Redis health."""
        try:
            return bool(await self.client.ping())
        except (StoreConnectionError, RedisError, OSError):
            return False

    def duplicate(self) -> redis.Redis:
        """Create a subscriber client with the shared connection's URL and options.

        Reads on a subscriber connection block until a message arrives, so
        only the connect timeout is kept.
        """
        if self._client is None:
            raise StoreConnectionError("Redis client unavailable", {"operation": "duplicate"})
        options = dict(self._options, socket_timeout=None)
        return redis.from_url(self.redis_url, **options)

    async def close(self) -> None:
        """Close the shared client."""
        if self._client is None:
            return
        await self._client.aclose()
        self.connected = False
        await self._emit(CLOSE)


@asynccontextmanager
async def translate_store_errors(operation: str, connection: Optional[RedisConnection] = None):
    """Map redis-py exceptions onto the cache error taxonomy.

    Connection failures are reported to the connection's error observers
    before being raised as ``StoreConnectionError``; rejected commands
    become ``StoreCommandError``. The original exception is chained.
    """
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        if connection is not None:
            await connection.notify_error(e)
        raise StoreConnectionError(str(e) or "Connection to Redis lost", {"operation": operation}) from e
    except RedisError as e:
        raise StoreCommandError(str(e), {"operation": operation}) from e
