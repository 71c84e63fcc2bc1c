"""Subscription descriptors and incoming frame decoding."""

import json
from decimal import Decimal

import pytest

from hypercore.subscriptions import (
    AllMids,
    AllMidsMessage,
    Bbo,
    BboMessage,
    Candle,
    CandleMessage,
    ErrorMessage,
    L2Book,
    L2BookMessage,
    OrderUpdatesMessage,
    Pong,
    SubscriptionResponse,
    Trades,
    UserEvents,
    UserFillsMessage,
    decode_incoming,
    subscribe_message,
    unsubscribe_message,
)


def test_descriptors_are_hashable():
    desired = {AllMids(), AllMids(), L2Book("BTC"), L2Book("BTC"), L2Book("ETH")}
    assert len(desired) == 3


def test_outgoing_frames():
    assert subscribe_message(AllMids()) == {"method": "subscribe", "subscription": {"type": "allMids"}}
    assert subscribe_message(AllMids(dex="xyz")) == {"method": "subscribe", "subscription": {"type": "allMids", "dex": "xyz"}}
    assert unsubscribe_message(UserEvents("0xabc")) == {"method": "unsubscribe", "subscription": {"type": "userEvents", "user": "0xabc"}}
    assert Candle("BTC", "1m").to_json() == {"type": "candle", "coin": "BTC", "interval": "1m"}
    assert Trades("HYPE").to_json() == {"type": "trades", "coin": "HYPE"}


def test_decode_all_mids():
    message = decode_incoming(json.dumps({"channel": "allMids", "data": {"mids": {"BTC": "60000.5"}}}))
    assert message == AllMidsMessage(mids={"BTC": Decimal("60000.5")})


def test_decode_l2_book():
    frame = {
        "channel": "l2Book",
        "data": {
            "coin": "BTC",
            "time": 1700000000000,
            "levels": [
                [{"px": "59999", "sz": "1.5", "n": 3}],
                [{"px": "60001", "sz": "0.2", "n": 1}, {"px": "60002", "sz": "4", "n": 2}],
            ],
        },
    }
    message = decode_incoming(json.dumps(frame))
    assert isinstance(message, L2BookMessage)
    assert message.bids[0].px == Decimal("59999")
    assert len(message.asks) == 2


def test_decode_bbo_with_empty_side():
    frame = {"channel": "bbo", "data": {"coin": "BTC", "time": 1, "bbo": [None, {"px": "60001", "sz": "0.2", "n": 1}]}}
    message = decode_incoming(json.dumps(frame))
    assert isinstance(message, BboMessage)
    assert message.bid is None
    assert message.ask.sz == Decimal("0.2")


def test_decode_candle():
    frame = {
        "channel": "candle",
        "data": {"t": 1, "T": 60000, "s": "BTC", "i": "1m", "o": "1", "c": "2", "h": "3", "l": "0.5", "v": "10", "n": 7},
    }
    message = decode_incoming(json.dumps(frame))
    assert isinstance(message, CandleMessage)
    assert message.high == Decimal(3)
    assert message.trades == 7


def test_decode_order_updates_and_fills():
    order = {"coin": "ETH", "side": "A", "limitPx": "3000", "sz": "0.5", "oid": 5, "timestamp": 1, "origSz": "0.5"}
    message = decode_incoming(json.dumps({"channel": "orderUpdates", "data": [{"order": order, "status": "open", "statusTimestamp": 2}]}))
    assert isinstance(message, OrderUpdatesMessage)
    assert message.updates[0].order.oid == 5

    fill = {"coin": "ETH", "px": "3000", "sz": "0.1", "side": "A", "time": 3, "oid": 5, "tid": 9, "fee": "0.01", "feeToken": "USDC"}
    message = decode_incoming(json.dumps({"channel": "userFills", "data": {"user": "0xabc", "fills": [fill], "isSnapshot": True}}))
    assert isinstance(message, UserFillsMessage)
    assert message.is_snapshot
    assert message.fills[0].px == Decimal("3000")


def test_decode_control_messages():
    assert decode_incoming('{"channel": "pong"}') == Pong()
    assert decode_incoming('{"channel": "error", "data": "Invalid subscription"}') == ErrorMessage("Invalid subscription")

    ack = decode_incoming(json.dumps({"channel": "subscriptionResponse", "data": {"method": "subscribe", "subscription": Bbo("BTC").to_json()}}))
    assert ack == SubscriptionResponse(method="subscribe", subscription={"type": "bbo", "coin": "BTC"})


@pytest.mark.parametrize(
    "frame",
    [
        "not json",
        '{"channel": "somethingNew", "data": {}}',
        '{"channel": "l2Book", "data": {"coin": "BTC", "time": 1, "levels": [[{"px": "1"}], []]}}',
        '{"channel": "allMids", "data": {"mids": {"BTC": "not a number"}}}',
        '{"channel": "allMids", "data": {"mids": ["BTC", "1"]}}',
        '{"channel": "orderUpdates", "data": [{"order": "x", "status": "open", "statusTimestamp": 1}]}',
        "[]",
    ],
)
def test_undecodable_frames_raise_value_error(frame):
    with pytest.raises(ValueError):
        decode_incoming(frame)
