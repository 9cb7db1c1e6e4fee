"""
Unit tests for pub/sub subscriptions.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from service_cache.app.cache.connection import RedisConnection
from service_cache.app.cache.facade import RedisService
from service_cache.app.cache.pubsub import Subscription
from shared.errors import StoreConnectionError


def make_client(messages, block=False, error=None):
    """Build a mock client whose pubsub yields ``messages``, then raises ``error``."""
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.get_message = AsyncMock(return_value={"type": "subscribe", "channel": "news", "data": 1})

    async def listen():
        for message in messages:
            yield message
        if error is not None:
            raise error
        if block:
            await asyncio.Event().wait()

    pubsub.listen = listen

    client = MagicMock()
    client.pubsub.return_value = pubsub
    client.aclose = AsyncMock()
    return client, pubsub


def published(data, channel="news"):
    return {"type": "message", "pattern": None, "channel": channel, "data": data}


async def wait_for_delivery(subscription):
    await asyncio.wait([subscription._task], timeout=1)
    await asyncio.sleep(0)


class TestSubscription:
    """Test cases for Subscription."""

    @pytest.mark.asyncio
    async def test_start_subscribes_and_waits_for_confirmation(self):
        """Test start subscribes to the channel before delivering."""
        client, pubsub = make_client([], block=True)
        subscription = Subscription("news", MagicMock(), client)

        result = await subscription.start()

        assert result is subscription
        pubsub.subscribe.assert_awaited_once_with("news")
        pubsub.get_message.assert_awaited_once_with(ignore_subscribe_messages=False, timeout=1.0)
        assert subscription.active is True

        await subscription.unsubscribe()

    @pytest.mark.asyncio
    async def test_callback_invoked_once_per_message(self):
        """Test each published message reaches the callback exactly once."""
        client, _ = make_client([
            published("first"),
            {"type": "subscribe", "channel": "news", "data": 1},
            published("second"),
        ])
        callback = MagicMock()
        subscription = Subscription("news", callback, client)

        await subscription.start()
        await wait_for_delivery(subscription)

        assert [call.args for call in callback.call_args_list] == [("first",), ("second",)]
        assert subscription.message_count == 2

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self):
        """Test coroutine callbacks are awaited."""
        client, _ = make_client([published("hello")])
        callback = AsyncMock()
        subscription = Subscription("news", callback, client)

        await subscription.start()
        await wait_for_delivery(subscription)

        callback.assert_awaited_once_with("hello")

    @pytest.mark.asyncio
    async def test_callback_error_ends_delivery(self):
        """Test a failing callback stops the loop and is kept on the handle."""
        client, _ = make_client([published("bad"), published("never")])
        callback = MagicMock(side_effect=ValueError("cannot handle"))
        subscription = Subscription("news", callback, client)

        await subscription.start()
        await wait_for_delivery(subscription)

        callback.assert_called_once_with("bad")
        assert isinstance(subscription.error, ValueError)
        assert subscription.active is False
        assert subscription.message_count == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_releases_connection(self):
        """Test unsubscribe cancels delivery and closes the dedicated client."""
        client, pubsub = make_client([], block=True)
        subscription = Subscription("news", MagicMock(), client)
        await subscription.start()

        await subscription.unsubscribe()

        assert subscription.active is False
        pubsub.unsubscribe.assert_awaited_once_with("news")
        pubsub.aclose.assert_awaited_once()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self):
        """Test calling unsubscribe twice is safe."""
        client, pubsub = make_client([], block=True)
        subscription = Subscription("news", MagicMock(), client)
        await subscription.start()

        await subscription.unsubscribe()
        await subscription.unsubscribe()

        pubsub.unsubscribe.assert_awaited_once()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_failure_closes_connection(self):
        """Test a failed subscribe surfaces a connection error and cleans up."""
        client, pubsub = make_client([])
        pubsub.subscribe.side_effect = RedisConnectionError("Connection refused")
        subscription = Subscription("news", MagicMock(), client)

        with pytest.raises(StoreConnectionError):
            await subscription.start()

        assert subscription.active is False
        pubsub.aclose.assert_awaited_once()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delivery_is_counted_in_metrics(self):
        """Test delivered messages are counted per channel."""
        client, _ = make_client([published("hello")])
        metrics = MagicMock()
        subscription = Subscription("news", MagicMock(), client, metrics=metrics)

        await subscription.start()
        await wait_for_delivery(subscription)

        metrics.increment_counter.assert_called_once_with("pubsub_messages_total", channel="news")

    @pytest.mark.asyncio
    async def test_connection_lost_while_listening(self):
        """Test a dropped connection ends delivery with a store connection error."""
        lost = RedisConnectionError("Connection reset by peer")
        client, _ = make_client([published("hello")], error=lost)
        callback = MagicMock()
        subscription = Subscription("news", callback, client)

        await subscription.start()
        await wait_for_delivery(subscription)

        callback.assert_called_once_with("hello")
        assert subscription.active is False
        assert isinstance(subscription.error, StoreConnectionError)
        assert subscription.error.details == {"operation": "listen"}
        assert subscription.error.__cause__ is lost

    @pytest.mark.asyncio
    async def test_read_timeout_while_listening(self):
        """Test a read timeout ends delivery with a store connection error."""
        timeout = RedisTimeoutError("Timeout reading from socket")
        client, _ = make_client([], error=timeout)
        subscription = Subscription("news", MagicMock(), client)

        await subscription.start()
        await wait_for_delivery(subscription)

        assert subscription.active is False
        assert isinstance(subscription.error, StoreConnectionError)
        assert subscription.error.__cause__ is timeout

        await subscription.unsubscribe()
        client.aclose.assert_awaited_once()


class QuietRedisServer:
    """Minimal RESP server: confirms commands, then stays silent until told to publish."""

    def __init__(self):
        self.server = None
        self.port = None
        self.subscribers = []

    async def start(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def stop(self):
        self.server.close()
        await self.server.wait_closed()

    @property
    def url(self):
        return f"redis://127.0.0.1:{self.port}"

    async def publish(self, channel, data):
        frame = self._array("message", channel, data)
        for writer in self.subscribers:
            writer.write(frame)
            await writer.drain()

    @staticmethod
    def _bulk(value):
        value = value.encode()
        return b"$%d\r\n%s\r\n" % (len(value), value)

    def _array(self, *items):
        frame = b"*%d\r\n" % len(items)
        for item in items:
            frame += b":%d\r\n" % item if isinstance(item, int) else self._bulk(item)
        return frame

    async def _read_command(self, reader):
        header = await reader.readline()
        if not header:
            return None
        args = []
        for _ in range(int(header[1:])):
            length = int((await reader.readline())[1:])
            args.append((await reader.readexactly(length + 2))[:-2].decode())
        return args

    async def _handle(self, reader, writer):
        try:
            while True:
                args = await self._read_command(reader)
                if args is None:
                    break
                command = args[0].upper()
                if command == "PING":
                    reply = self._array("pong", args[1]) if len(args) > 1 else b"+PONG\r\n"
                elif command == "SUBSCRIBE":
                    self.subscribers.append(writer)
                    reply = self._array("subscribe", args[1], 1)
                elif command == "UNSUBSCRIBE":
                    reply = self._array("unsubscribe", args[1], 0)
                else:
                    reply = b"+OK\r\n"
                writer.write(reply)
                await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            if writer in self.subscribers:
                self.subscribers.remove(writer)
            writer.close()


class TestIdleSubscription:
    """Test cases for subscriptions that receive nothing for a while."""

    @pytest.mark.asyncio
    async def test_idle_subscription_outlives_socket_timeout(self):
        """Test a quiet channel does not end delivery after the read timeout."""
        server = await QuietRedisServer().start()
        connection = RedisConnection(server.url, socket_timeout=0.5)
        service = RedisService(connection)
        received = []

        try:
            subscription = await service.subscribe("news", received.append)
            await asyncio.sleep(1.5)

            assert subscription.active is True
            assert subscription.error is None

            await server.publish("news", "hello")
            for _ in range(100):
                if received:
                    break
                await asyncio.sleep(0.01)

            assert received == ["hello"]
            await subscription.unsubscribe()
        finally:
            await connection.close()
            await server.stop()
