"""Persistent, reconnecting WebSocket subscription.

:py:class:`StreamSubscription` owns one background ``asyncio`` task that

- connects to the streaming endpoint, each attempt bounded by a timeout
- replays the whole desired subscription set right after every connect
- sends a ``ping`` on a fixed heartbeat interval while connected
- applies subscribe and unsubscribe commands from a single ordered queue
- decodes incoming frames and hands them to the consumer, dropping frames it cannot parse
- reconnects after a fixed delay when the connection drops, until closed

Example::

    from hypercore.api import HypercoreClient
    from hypercore.subscriptions import AllMids, L2Book

    client = HypercoreClient()

    async with client.websocket() as stream:
        stream.subscribe(AllMids())
        stream.subscribe(L2Book("BTC"))
        async for message in stream:
            print(message)

The desired set is only touched by the background task, so
:py:meth:`StreamSubscription.subscribe` and :py:meth:`StreamSubscription.unsubscribe`
never block and can be called before the first connect.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import WebSocketException

from hypercore.constants import WS_CONNECT_TIMEOUT, WS_HEARTBEAT_INTERVAL, WS_MAX_QUEUED_MESSAGES, WS_RECONNECT_DELAY
from hypercore.subscriptions import (
    Incoming,
    Subscription,
    decode_incoming,
    ping_message,
    subscribe_message,
    unsubscribe_message,
)

logger = logging.getLogger(__name__)


#: Queued by :py:meth:`StreamSubscription.close`
_CLOSE = object()

#: Queued for the consumer when the background task exits
_END = object()

#: Anything with async ``send()``, ``recv()`` and ``close()``
Connector = Callable[[str], Awaitable[Any]]


async def connect_websocket(url: str):
    """Open a connection with the ``websockets`` library.

    Protocol level pings are disabled, the venue expects JSON ``ping`` messages.
    """
    return await websockets.connect(url, ping_interval=None, max_size=None)


class ConnectionState(Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    #: Terminal, after :py:meth:`StreamSubscription.close`
    closed = "closed"


class StreamSubscription:
    """Reconnecting WebSocket with a replayed subscription set.

    :param url:
        ``wss://.../ws`` endpoint, see :py:meth:`hypercore.api.HypercoreClient.websocket`.
    :param connect:
        Coroutine function opening a connection. Override for tests or proxies.
    :param heartbeat_interval:
        Seconds between ``ping`` messages.
    :param reconnect_delay:
        Fixed wait between a failure and the next connect attempt.
    :param connect_timeout:
        Upper bound of a single connect attempt.
    :param max_queued_messages:
        Decoded messages kept for the consumer.
        When the consumer falls behind, the oldest messages are dropped.
    """

    def __init__(
        self,
        url: str,
        connect: Connector = connect_websocket,
        heartbeat_interval: float = WS_HEARTBEAT_INTERVAL,
        reconnect_delay: float = WS_RECONNECT_DELAY,
        connect_timeout: float = WS_CONNECT_TIMEOUT,
        max_queued_messages: int = WS_MAX_QUEUED_MESSAGES,
    ):
        assert max_queued_messages > 0, f"Bad queue size: {max_queued_messages}"
        self.url = url
        self.connect = connect
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self.state = ConnectionState.disconnected

        #: How many times a connection was established
        self.connection_count = 0

        self._commands: asyncio.Queue = asyncio.Queue()
        self._incoming: asyncio.Queue = asyncio.Queue(maxsize=max_queued_messages)
        self._desired: set[Subscription] = set()
        self._close_requested = False
        self._task: asyncio.Task | None = None

    def __repr__(self):
        return f"<StreamSubscription {self.url} {self.state.value}, {len(self._desired)} subscriptions>"

    @property
    def subscriptions(self) -> frozenset[Subscription]:
        """Snapshot of the desired subscription set."""
        return frozenset(self._desired)

    def start(self) -> "StreamSubscription":
        """Spawn the background task in the running event loop."""
        assert self._task is None, "Already started"
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"hypercore-ws {self.url}")
        return self

    async def __aenter__(self) -> "StreamSubscription":
        return self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def subscribe(self, subscription: Subscription):
        """Add a topic to the desired set. Subscribing twice is a no-op."""
        self._commands.put_nowait((True, subscription))

    def unsubscribe(self, subscription: Subscription):
        """Remove a topic from the desired set. Unknown topics are ignored."""
        self._commands.put_nowait((False, subscription))

    def close(self):
        """Ask the background task to stop.

        Observed at the next scheduling point of the task. A pending reconnect
        delay runs to its end first.
        """
        self._commands.put_nowait(_CLOSE)

    async def aclose(self):
        """Close and wait until the background task has exited."""
        self.close()
        if self._task is not None:
            await self._task

    def __aiter__(self):
        return self

    async def __anext__(self) -> Incoming:
        message = await self._incoming.get()
        if message is _END:
            # Keep ending later iterations too
            self._enqueue(_END)
            raise StopAsyncIteration
        return message

    def _apply(self, command) -> Any | None:
        """Update the desired set.

        :return:
            Outgoing frame to send if the set changed, otherwise ``None``.
        """
        if command is _CLOSE:
            self._close_requested = True
            return None

        is_subscribe, subscription = command
        if is_subscribe:
            if subscription in self._desired:
                logger.debug("Already subscribed to %s", subscription)
                return None
            self._desired.add(subscription)
            return subscribe_message(subscription)

        if subscription not in self._desired:
            return None
        self._desired.remove(subscription)
        return unsubscribe_message(subscription)

    def _drain_commands(self):
        """Apply queued commands while we are not connected."""
        while True:
            try:
                command = self._commands.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._apply(command)

    def _enqueue(self, item):
        if self._incoming.full():
            dropped = self._incoming.get_nowait()
            logger.warning("Consumer of %s is not keeping up, dropped queued %s", self.url, type(dropped).__name__)
        self._incoming.put_nowait(item)

    def _dispatch(self, frame: str | bytes):
        # A bad frame must never take the connection down
        try:
            message = decode_incoming(frame)
        except ValueError as e:
            logger.warning("Unable to parse %r: %s", frame[:256], e)
            return
        except Exception:
            logger.exception("Failed to decode %r", frame[:256])
            return
        self._enqueue(message)

    async def _run(self):
        try:
            while True:
                self._drain_commands()
                if self._close_requested:
                    return

                self.state = ConnectionState.connecting
                try:
                    connection = await asyncio.wait_for(self.connect(self.url), self.connect_timeout)
                except asyncio.TimeoutError:
                    logger.error("Timed out connecting to %s", self.url)
                    self.state = ConnectionState.disconnected
                    await asyncio.sleep(self.reconnect_delay)
                    continue
                except (OSError, WebSocketException) as e:
                    logger.error("Unable to connect to %s: %s", self.url, e)
                    self.state = ConnectionState.disconnected
                    await asyncio.sleep(self.reconnect_delay)
                    continue

                self.state = ConnectionState.connected
                self.connection_count += 1
                logger.info("Connected to %s, replaying %d subscriptions", self.url, len(self._desired))

                try:
                    await self._serve(connection)
                finally:
                    self.state = ConnectionState.disconnected
                    await self._close_connection(connection)

                if self._close_requested:
                    return

                logger.info("Disconnected from %s, reconnecting in %s seconds", self.url, self.reconnect_delay)
                await asyncio.sleep(self.reconnect_delay)
        finally:
            self.state = ConnectionState.closed
            self._enqueue(_END)

    async def _serve(self, connection):
        """Pump one connection until it drops or we are closed."""
        loop = asyncio.get_running_loop()
        recv_task = None
        command_task = None

        try:
            # Replay before anything else goes out
            for subscription in list(self._desired):
                logger.debug("Initial subscription to %s", subscription)
                await connection.send(json.dumps(subscribe_message(subscription)))

            next_ping = loop.time() + self.heartbeat_interval
            recv_task = asyncio.ensure_future(connection.recv())
            command_task = asyncio.ensure_future(self._commands.get())

            while True:
                timeout = max(0.0, next_ping - loop.time())
                done, _ = await asyncio.wait(
                    {recv_task, command_task},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if command_task in done:
                    frame = self._apply(command_task.result())
                    command_task = None
                    if self._close_requested:
                        return
                    if frame is not None:
                        await connection.send(json.dumps(frame))
                    command_task = asyncio.ensure_future(self._commands.get())

                if recv_task in done:
                    self._dispatch(recv_task.result())
                    recv_task = asyncio.ensure_future(connection.recv())

                if loop.time() >= next_ping:
                    await connection.send(json.dumps(ping_message()))
                    next_ping += self.heartbeat_interval
        except (OSError, WebSocketException) as e:
            logger.warning("Connection to %s lost: %s", self.url, e)
        finally:
            if recv_task is not None:
                if recv_task.done() and not recv_task.cancelled():
                    # Mark a failed read as retrieved, the connection is gone anyway
                    recv_task.exception()
                recv_task.cancel()
            if command_task is not None:
                if command_task.done() and not command_task.cancelled():
                    # Picked up while we were sending, do not lose it
                    self._apply(command_task.result())
                else:
                    command_task.cancel()

    async def _close_connection(self, connection):
        try:
            await connection.close()
        except (OSError, WebSocketException) as e:
            logger.debug("Error closing connection to %s: %s", self.url, e)
