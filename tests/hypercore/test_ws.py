"""Reconnecting WebSocket subscription against in-memory connections."""

import asyncio
import json
import logging

import pytest
from websockets.exceptions import WebSocketException

from hypercore.subscriptions import AllMids, ErrorMessage, L2Book, Pong, Trades, subscribe_message, unsubscribe_message
from hypercore.ws import ConnectionState, StreamSubscription

URL = "wss://api.hyperliquid-testnet.xyz/ws"


class FakeConnection:
    """Records outgoing frames and plays back queued incoming frames."""

    def __init__(self):
        self.sent = []
        self.frames = asyncio.Queue()
        self.closed = False

    async def send(self, data: str):
        self.sent.append(json.loads(data))

    async def recv(self):
        frame = await self.frames.get()
        if isinstance(frame, Exception):
            raise frame
        return frame

    async def close(self):
        self.closed = True

    def push(self, message: dict | str):
        self.frames.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self, error: Exception | None = None):
        self.frames.put_nowait(error or OSError("Connection reset by peer"))


class FakeConnector:
    """Hands out the given connections in order, failing once they run out."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.attempts = 0

    async def __call__(self, url: str):
        self.attempts += 1
        if not self.outcomes:
            raise OSError("No more connections")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def wait_until(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


def make_stream(connector: FakeConnector, heartbeat_interval=60.0, **kwargs) -> StreamSubscription:
    return StreamSubscription(
        URL,
        connect=connector,
        heartbeat_interval=heartbeat_interval,
        reconnect_delay=0.01,
        connect_timeout=1.0,
        **kwargs,
    )


async def start_connected(connector: FakeConnector, **kwargs) -> StreamSubscription:
    """Start a stream and wait for the first connection, so later commands go over the wire."""
    stream = make_stream(connector, **kwargs).start()
    await wait_until(lambda: stream.state == ConnectionState.connected)
    return stream


def subscribes(connection: FakeConnection) -> list[dict]:
    return [f for f in connection.sent if f.get("method") == "subscribe"]


@pytest.mark.asyncio
async def test_subscribe_is_idempotent():
    connection = FakeConnection()
    stream = await start_connected(FakeConnector(connection))

    stream.subscribe(AllMids())
    stream.subscribe(AllMids())
    stream.subscribe(Trades("BTC"))
    await wait_until(lambda: subscribe_message(Trades("BTC")) in connection.sent)

    assert subscribes(connection) == [subscribe_message(AllMids()), subscribe_message(Trades("BTC"))]
    assert stream.subscriptions == {AllMids(), Trades("BTC")}

    await stream.aclose()


@pytest.mark.asyncio
async def test_unsubscribe_unknown_is_noop():
    connection = FakeConnection()
    stream = await start_connected(FakeConnector(connection))

    stream.unsubscribe(L2Book("ETH"))
    stream.subscribe(L2Book("BTC"))
    stream.unsubscribe(L2Book("BTC"))
    await wait_until(lambda: unsubscribe_message(L2Book("BTC")) in connection.sent)

    assert connection.sent == [subscribe_message(L2Book("BTC")), unsubscribe_message(L2Book("BTC"))]
    assert stream.subscriptions == frozenset()

    await stream.aclose()


@pytest.mark.asyncio
async def test_reconnect_replays_desired_set():
    first = FakeConnection()
    second = FakeConnection()
    connector = FakeConnector(first, second)
    stream = await start_connected(connector)

    stream.subscribe(AllMids())
    stream.subscribe(L2Book("BTC"))
    stream.subscribe(Trades("ETH"))
    stream.unsubscribe(Trades("ETH"))
    await wait_until(lambda: unsubscribe_message(Trades("ETH")) in first.sent)

    first.drop()
    await wait_until(lambda: len(subscribes(second)) == 2)

    # Replay comes first and contains exactly the desired set
    replayed = second.sent[:2]
    assert sorted(json.dumps(f, sort_keys=True) for f in replayed) == sorted(
        json.dumps(subscribe_message(s), sort_keys=True) for s in (AllMids(), L2Book("BTC"))
    )
    assert first.closed
    assert stream.connection_count == 2

    await stream.aclose()


@pytest.mark.asyncio
async def test_subscriptions_made_while_disconnected_are_sent_on_connect():
    connection = FakeConnection()
    connector = FakeConnector(OSError("Connection refused"), connection)
    stream = make_stream(connector)

    stream.subscribe(AllMids())
    stream.start()

    await wait_until(lambda: stream.state == ConnectionState.connected)
    await wait_until(lambda: len(subscribes(connection)) == 1)
    assert connector.attempts == 2

    await stream.aclose()


@pytest.mark.asyncio
async def test_bad_frames_are_dropped():
    connection = FakeConnection()
    stream = make_stream(FakeConnector(connection)).start()

    connection.push("this is not json")
    connection.push({"channel": "somethingNew", "data": {}})
    connection.push({"channel": "pong"})

    message = await asyncio.wait_for(stream.__anext__(), 2.0)
    assert message == Pong()

    await stream.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"channel": "allMids", "data": {"mids": ["BTC", "1"]}},
        {"channel": "orderUpdates", "data": [{"order": "x", "status": "open", "statusTimestamp": 1}]},
        {"channel": "userFills", "data": {"user": "0xabc", "fills": ["x"]}},
        {"channel": "l2Book", "data": {"coin": "BTC", "time": 1, "levels": "xx"}},
    ],
)
async def test_malformed_payloads_keep_connection(payload):
    """Known channels with a broken payload are dropped, the feed goes on."""
    connection = FakeConnection()
    stream = make_stream(FakeConnector(connection)).start()

    connection.push(payload)
    connection.push({"channel": "pong"})

    message = await asyncio.wait_for(stream.__anext__(), 2.0)
    assert message == Pong()
    assert stream.state == ConnectionState.connected
    assert stream.connection_count == 1

    await stream.aclose()


@pytest.mark.asyncio
async def test_websocket_errors_reconnect():
    """Library level failures on connect and on read are retried like socket errors."""
    first = FakeConnection()
    second = FakeConnection()
    connector = FakeConnector(WebSocketException("Handshake failed"), first, second)
    stream = make_stream(connector)
    stream.subscribe(AllMids())
    stream.start()

    await wait_until(lambda: len(subscribes(first)) == 1)
    first.drop(WebSocketException("Protocol error"))
    await wait_until(lambda: len(subscribes(second)) == 1)

    assert connector.attempts == 3
    assert stream.connection_count == 2

    await stream.aclose()


@pytest.mark.asyncio
async def test_slow_consumer_drops_oldest(caplog):
    connection = FakeConnection()
    stream = make_stream(FakeConnector(connection), max_queued_messages=2).start()

    with caplog.at_level(logging.WARNING, logger="hypercore.ws"):
        for text in ("first", "second", "third"):
            connection.push({"channel": "error", "data": text})
        await wait_until(lambda: "not keeping up" in caplog.text)

    assert await asyncio.wait_for(stream.__anext__(), 2.0) == ErrorMessage("second")
    assert await asyncio.wait_for(stream.__anext__(), 2.0) == ErrorMessage("third")

    await stream.aclose()


@pytest.mark.asyncio
async def test_heartbeat_while_connected():
    connection = FakeConnection()
    stream = make_stream(FakeConnector(connection), heartbeat_interval=0.01).start()

    await wait_until(lambda: connection.sent.count({"method": "ping"}) >= 2)

    await stream.aclose()


@pytest.mark.asyncio
async def test_close_ends_iteration():
    connection = FakeConnection()
    stream = make_stream(FakeConnector(connection)).start()
    connection.push({"channel": "pong"})

    received = []

    async def consume():
        async for message in stream:
            received.append(message)

    consumer = asyncio.ensure_future(consume())
    await wait_until(lambda: len(received) == 1)

    await stream.aclose()
    await asyncio.wait_for(consumer, 2.0)

    assert received == [Pong()]
    assert stream.state == ConnectionState.closed
    assert connection.closed


@pytest.mark.asyncio
async def test_close_while_reconnecting():
    connector = FakeConnector()
    stream = make_stream(connector).start()

    await wait_until(lambda: connector.attempts >= 2)
    await asyncio.wait_for(stream.aclose(), 2.0)

    assert stream.state == ConnectionState.closed


@pytest.mark.asyncio
async def test_context_manager():
    connection = FakeConnection()
    async with make_stream(FakeConnector(connection)) as stream:
        stream.subscribe(AllMids())
        await wait_until(lambda: len(subscribes(connection)) == 1)

    assert stream.state == ConnectionState.closed
