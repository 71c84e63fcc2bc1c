"""WebSocket subscription topics and messages.

- Subscription descriptors are frozen, hashable dataclasses, so the desired
  subscription set of :py:class:`hypercore.ws.StreamSubscription` is a plain ``set``
- Outgoing frames: ``subscribe``, ``unsubscribe`` and ``ping``
- Incoming frames ``{"channel": ..., "data": ...}`` are decoded into typed messages
  by :py:func:`decode_incoming`

`See WebSocket docs <https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/websocket/subscriptions>`__.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Union

from hypercore.responses import Fill, OrderUpdate

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AllMids:
    """Mid prices of all coins.

    :param dex:
        Builder deployed perp DEX name. ``None`` for the main DEX.
    """

    dex: str | None = None

    def to_json(self) -> dict:
        data = {"type": "allMids"}
        if self.dex is not None:
            data["dex"] = self.dex
        return data


@dataclass(slots=True, frozen=True)
class Trades:
    coin: str

    def to_json(self) -> dict:
        return {"type": "trades", "coin": self.coin}


@dataclass(slots=True, frozen=True)
class L2Book:
    coin: str

    def to_json(self) -> dict:
        return {"type": "l2Book", "coin": self.coin}


@dataclass(slots=True, frozen=True)
class UserEvents:
    """Fills, funding payments and liquidations of a user."""

    user: str

    def to_json(self) -> dict:
        return {"type": "userEvents", "user": self.user}


@dataclass(slots=True, frozen=True)
class OrderUpdates:
    user: str

    def to_json(self) -> dict:
        return {"type": "orderUpdates", "user": self.user}


@dataclass(slots=True, frozen=True)
class UserFills:
    user: str

    def to_json(self) -> dict:
        return {"type": "userFills", "user": self.user}


@dataclass(slots=True, frozen=True)
class Bbo:
    """Best bid and offer, pushed only when it changes."""

    coin: str

    def to_json(self) -> dict:
        return {"type": "bbo", "coin": self.coin}


@dataclass(slots=True, frozen=True)
class Candle:
    coin: str
    #: ``1m``, ``5m``, ``1h``, ``1d``, ...
    interval: str

    def to_json(self) -> dict:
        return {"type": "candle", "coin": self.coin, "interval": self.interval}


Subscription = Union[AllMids, Trades, L2Book, UserEvents, OrderUpdates, UserFills, Bbo, Candle]


def subscribe_message(subscription: Subscription) -> dict:
    return {"method": "subscribe", "subscription": subscription.to_json()}


def unsubscribe_message(subscription: Subscription) -> dict:
    return {"method": "unsubscribe", "subscription": subscription.to_json()}


def ping_message() -> dict:
    return {"method": "ping"}


#
# Incoming
#


@dataclass(slots=True, frozen=True)
class Level:
    """One price level of an order book."""

    px: Decimal
    sz: Decimal
    #: Number of orders at this level
    n: int

    @classmethod
    def from_api_response(cls, data: dict) -> "Level":
        return cls(px=Decimal(data["px"]), sz=Decimal(data["sz"]), n=data["n"])


@dataclass(slots=True, frozen=True)
class AllMidsMessage:
    mids: dict[str, Decimal]
    dex: str | None = None


@dataclass(slots=True, frozen=True)
class Trade:
    coin: str
    side: str
    px: Decimal
    sz: Decimal
    time: int
    hash: str | None = None
    tid: int | None = None


@dataclass(slots=True, frozen=True)
class TradesMessage:
    trades: list[Trade]


@dataclass(slots=True, frozen=True)
class L2BookMessage:
    coin: str
    bids: list[Level]
    asks: list[Level]
    time: int


@dataclass(slots=True, frozen=True)
class BboMessage:
    coin: str
    time: int
    #: ``None`` if that side of the book is empty
    bid: Level | None
    ask: Level | None


@dataclass(slots=True, frozen=True)
class CandleMessage:
    coin: str
    interval: str
    #: Open time in milliseconds
    open_time: int
    close_time: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    #: Number of trades
    trades: int


@dataclass(slots=True, frozen=True)
class UserEventsMessage:
    """``user`` channel.

    Only fills are decoded, other event kinds are kept in :py:attr:`data`.
    """

    data: dict
    fills: list[Fill] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class OrderUpdatesMessage:
    updates: list[OrderUpdate]


@dataclass(slots=True, frozen=True)
class UserFillsMessage:
    user: str
    fills: list[Fill]
    #: First message after subscribing carries recent history
    is_snapshot: bool = False


@dataclass(slots=True, frozen=True)
class SubscriptionResponse:
    """Venue acknowledged a subscribe or unsubscribe."""

    method: str
    subscription: dict


@dataclass(slots=True, frozen=True)
class Pong:
    pass


@dataclass(slots=True, frozen=True)
class ErrorMessage:
    message: str


Incoming = Union[
    AllMidsMessage,
    TradesMessage,
    L2BookMessage,
    BboMessage,
    CandleMessage,
    UserEventsMessage,
    OrderUpdatesMessage,
    UserFillsMessage,
    SubscriptionResponse,
    Pong,
    ErrorMessage,
]


def _decode(data: Any) -> Incoming:
    match data:
        case {"channel": "allMids", "data": {"mids": mids, **rest}}:
            return AllMidsMessage(mids={coin: Decimal(px) for coin, px in mids.items()}, dex=rest.get("dex"))
        case {"channel": "trades", "data": list(trades)}:
            return TradesMessage(
                [
                    Trade(
                        coin=t["coin"],
                        side=t["side"],
                        px=Decimal(t["px"]),
                        sz=Decimal(t["sz"]),
                        time=t["time"],
                        hash=t.get("hash"),
                        tid=t.get("tid"),
                    )
                    for t in trades
                ]
            )
        case {"channel": "l2Book", "data": {"coin": coin, "levels": [bids, asks], "time": time}}:
            return L2BookMessage(
                coin=coin,
                bids=[Level.from_api_response(lvl) for lvl in bids],
                asks=[Level.from_api_response(lvl) for lvl in asks],
                time=time,
            )
        case {"channel": "bbo", "data": {"coin": coin, "time": time, "bbo": [bid, ask]}}:
            return BboMessage(
                coin=coin,
                time=time,
                bid=Level.from_api_response(bid) if bid else None,
                ask=Level.from_api_response(ask) if ask else None,
            )
        case {"channel": "candle", "data": dict(c)}:
            return CandleMessage(
                coin=c["s"],
                interval=c["i"],
                open_time=c["t"],
                close_time=c["T"],
                open=Decimal(c["o"]),
                high=Decimal(c["h"]),
                low=Decimal(c["l"]),
                close=Decimal(c["c"]),
                volume=Decimal(c["v"]),
                trades=c["n"],
            )
        case {"channel": "user", "data": dict(events)}:
            fills = [Fill.from_api_response(f) for f in events.get("fills", [])]
            return UserEventsMessage(data=events, fills=fills)
        case {"channel": "orderUpdates", "data": list(updates)}:
            return OrderUpdatesMessage([OrderUpdate.from_api_response(u) for u in updates])
        case {"channel": "userFills", "data": {"user": user, "fills": list(fills), **rest}}:
            return UserFillsMessage(
                user=user,
                fills=[Fill.from_api_response(f) for f in fills],
                is_snapshot=rest.get("isSnapshot", False),
            )
        case {"channel": "subscriptionResponse", "data": {"method": str(method), "subscription": dict(subscription)}}:
            return SubscriptionResponse(method=method, subscription=subscription)
        case {"channel": "pong"}:
            return Pong()
        case {"channel": "error", "data": message}:
            return ErrorMessage(str(message))
    raise ValueError(f"Unknown message: {data!r}")


def decode_incoming(frame: str | bytes) -> Incoming:
    """Decode one WebSocket text frame.

    :raise ValueError:
        Not JSON, unknown channel or a malformed payload.
    """
    data = json.loads(frame)
    try:
        return _decode(data)
    except (KeyError, TypeError, AttributeError, ArithmeticError) as e:
        raise ValueError(f"Malformed {data.get('channel') if isinstance(data, dict) else ''} message: {e}") from e
