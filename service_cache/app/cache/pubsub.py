"""
Pub/sub subscriptions for the Cache Service.
"""

import asyncio
from typing import Any, Callable, Optional, TYPE_CHECKING

import redis.asyncio as redis

from shared.errors import CacheLayerException
from shared.logging import get_logger
from .connection import translate_store_errors

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

MessageCallback = Callable[[Any], Any]


class Subscription:
    """A cancellable subscription to one channel on a dedicated connection.

    The callback is invoked once per published message, in publish order.
    An exception raised by the callback ends the delivery loop; it is kept
    on ``error`` as raised. A store failure while listening also ends the
    loop and is kept as ``StoreConnectionError`` or ``StoreCommandError``.
    The caller owns the handle and must call ``unsubscribe``.
    """

    def __init__(
        self,
        channel: str,
        callback: MessageCallback,
        client: redis.Redis,
        *,
        metrics: Optional["MetricsCollector"] = None,
        confirm_timeout: float = 1.0,
    ):
        self.channel = channel
        self.callback = callback
        self.metrics = metrics
        self.confirm_timeout = confirm_timeout
        self.logger = get_logger("cache.pubsub")
        self.message_count = 0
        self.error: Optional[BaseException] = None

        self._client = client
        self._pubsub = client.pubsub()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @staticmethod
    async def _await_if_needed(result):
        if asyncio.iscoroutine(result):
            return await result
        return result

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> "Subscription":
        """Subscribe and start delivering messages to the callback."""
        try:
            async with translate_store_errors("subscribe"):
                await self._pubsub.subscribe(self.channel)
                # Wait for the server's confirmation so later publishes are seen
                await self._pubsub.get_message(ignore_subscribe_messages=False, timeout=self.confirm_timeout)
        except CacheLayerException:
            self._closed = True
            await self._pubsub.aclose()
            await self._client.aclose()
            raise

        self._task = asyncio.create_task(self._deliver(), name=f"subscription:{self.channel}")
        self._task.add_done_callback(self._on_done)
        self.logger.info("Subscribed to channel", channel=self.channel)
        return self

    async def _deliver(self) -> None:
        async with translate_store_errors("listen"):
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue

                await self._await_if_needed(self.callback(message["data"]))
                self.message_count += 1
                if self.metrics:
                    self.metrics.increment_counter("pubsub_messages_total", channel=self.channel)

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.error = error
            self.logger.error("Subscription delivery stopped", channel=self.channel, error=str(error))

    async def unsubscribe(self) -> None:
        """Stop delivery and release the dedicated connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        try:
            async with translate_store_errors("unsubscribe"):
                await self._pubsub.unsubscribe(self.channel)
        finally:
            await self._pubsub.aclose()
            await self._client.aclose()
            self.logger.info("Unsubscribed from channel", channel=self.channel, messages=self.message_count)
