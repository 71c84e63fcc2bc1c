"""Decoded HyperCore API responses.

Exchange endpoint answers come in an envelope::

    {"status": "ok", "response": {"type": "default"}}
    {"status": "ok", "response": {"type": "order", "data": {"statuses": [...]}}}
    {"status": "err", "response": "Insufficient margin"}

:py:func:`parse_api_response` turns the envelope into :py:class:`OkResponse` or
:py:class:`ErrResponse`. Anything else is protocol drift and raises
:py:class:`~hypercore.errors.UnexpectedResponse`.

Info endpoint answers are decoded with the ``from_api_response()`` class methods.
All prices and sizes become :py:class:`decimal.Decimal`.
"""

import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Union

from hypercore.constants import SPOT_ASSET_INDEX_OFFSET
from hypercore.errors import UnexpectedResponse
from hypercore.types import Cloid

logger = logging.getLogger(__name__)


#: HYPE is bridged through its own system address
HYPE_SYSTEM_ADDRESS = "0x2222222222222222222222222222222222222222"


def _parse_cloid(raw: str | None) -> Cloid | None:
    if raw is None:
        return None
    return Cloid.from_str(raw)


class OrderStatusKind(Enum):
    """Per item outcome of a batch order, cancel or modify."""

    #: Cancel or modify went through
    success = "success"

    #: Order is on the book
    resting = "resting"

    #: Order matched immediately
    filled = "filled"

    #: Item rejected, see :py:attr:`OrderResponseStatus.error`
    error = "error"

    waiting_for_fill = "waitingForFill"

    waiting_for_trigger = "waitingForTrigger"


@dataclass(slots=True, frozen=True)
class OrderResponseStatus:
    """Outcome of one item of a batch, in the position of the item."""

    kind: OrderStatusKind

    #: Exchange order id, for resting and filled orders
    oid: int | None = None

    #: Client order id, if the order was placed with one
    cloid: Cloid | None = None

    total_sz: Decimal | None = None

    avg_px: Decimal | None = None

    #: Rejection reason from the venue
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.kind == OrderStatusKind.error

    @classmethod
    def from_api_response(cls, data: str | dict) -> "OrderResponseStatus":
        match data:
            case "success":
                return cls(OrderStatusKind.success)
            case "waitingForFill":
                return cls(OrderStatusKind.waiting_for_fill)
            case "waitingForTrigger":
                return cls(OrderStatusKind.waiting_for_trigger)
            case {"resting": resting}:
                return cls(
                    OrderStatusKind.resting,
                    oid=resting["oid"],
                    cloid=_parse_cloid(resting.get("cloid")),
                )
            case {"filled": filled}:
                return cls(
                    OrderStatusKind.filled,
                    oid=filled["oid"],
                    cloid=_parse_cloid(filled.get("cloid")),
                    total_sz=Decimal(filled["totalSz"]),
                    avg_px=Decimal(filled["avgPx"]),
                )
            case {"error": error}:
                return cls(OrderStatusKind.error, error=error)
        raise UnexpectedResponse(data, "order status")


@dataclass(slots=True, frozen=True)
class OkResponse:
    """Accepted request.

    ``statuses`` is ``None`` for single-shot actions and the positional
    per item outcome for batches.
    """

    response_type: str = "default"
    statuses: list[OrderResponseStatus] | None = None


@dataclass(slots=True, frozen=True)
class ErrResponse:
    """Whole request rejected by the venue."""

    message: str


ApiResponse = Union[OkResponse, ErrResponse]


def parse_api_response(data: dict) -> ApiResponse:
    """Decode the exchange endpoint envelope.

    :raise UnexpectedResponse:
        Unknown envelope shape or a malformed per order status.
    """
    match data:
        case {"status": "ok", "response": {"type": "default"}}:
            return OkResponse()
        case {"status": "ok", "response": {"type": str(response_type), "data": {"statuses": list(statuses)}}}:
            try:
                decoded = [OrderResponseStatus.from_api_response(s) for s in statuses]
            except (KeyError, TypeError, ValueError, ArithmeticError, AttributeError) as e:
                raise UnexpectedResponse(data, f"order status ({e})") from e
            return OkResponse(response_type=response_type, statuses=decoded)
        case {"status": "err", "response": str(message)}:
            return ErrResponse(message)
    raise UnexpectedResponse(data, "exchange envelope")


@dataclass(slots=True, frozen=True)
class BasicOrder:
    """Order as returned by open and historical order queries."""

    coin: str
    #: ``"B"`` (bid/buy) or ``"A"`` (ask/sell)
    side: str
    limit_px: Decimal
    sz: Decimal
    oid: int
    #: Creation time in milliseconds
    timestamp: int
    orig_sz: Decimal
    cloid: Cloid | None = None
    reduce_only: bool = False
    order_type: str | None = None
    tif: str | None = None
    trigger_px: Decimal | None = None

    @property
    def is_buy(self) -> bool:
        return self.side == "B"

    @classmethod
    def from_api_response(cls, data: dict) -> "BasicOrder":
        trigger_px = data.get("triggerPx")
        return cls(
            coin=data["coin"],
            side=data["side"],
            limit_px=Decimal(data["limitPx"]),
            sz=Decimal(data["sz"]),
            oid=data["oid"],
            timestamp=data["timestamp"],
            orig_sz=Decimal(data.get("origSz", data["sz"])),
            cloid=_parse_cloid(data.get("cloid")),
            reduce_only=data.get("reduceOnly", False),
            order_type=data.get("orderType"),
            tif=data.get("tif"),
            trigger_px=Decimal(trigger_px) if trigger_px is not None else None,
        )


@dataclass(slots=True, frozen=True)
class OrderUpdate:
    """Order together with its lifecycle status.

    Used by order status queries, historical orders and the ``orderUpdates`` stream.
    """

    order: BasicOrder
    #: ``open``, ``filled``, ``canceled``, ``triggered``, ``rejected``, ...
    status: str
    status_timestamp: int

    @classmethod
    def from_api_response(cls, data: dict) -> "OrderUpdate":
        return cls(
            order=BasicOrder.from_api_response(data["order"]),
            status=data["status"],
            status_timestamp=data["statusTimestamp"],
        )


@dataclass(slots=True, frozen=True)
class Fill:
    """Trade fill of a user."""

    coin: str
    px: Decimal
    sz: Decimal
    side: str
    #: Timestamp in milliseconds
    time: int
    oid: int
    #: Trade id
    tid: int | None
    fee: Decimal
    fee_token: str
    closed_pnl: Decimal = Decimal(0)
    start_position: Decimal = Decimal(0)
    #: Direction hint from API (e.g., "Open Long", "Close Short")
    dir: str = ""
    hash: str | None = None
    crossed: bool = False
    cloid: Cloid | None = None

    @property
    def timestamp(self) -> datetime.datetime:
        return datetime.datetime.fromtimestamp(self.time / 1000, tz=datetime.timezone.utc)

    @classmethod
    def from_api_response(cls, data: dict) -> "Fill":
        return cls(
            coin=data["coin"],
            px=Decimal(data["px"]),
            sz=Decimal(data["sz"]),
            side=data["side"],
            time=data["time"],
            oid=data["oid"],
            tid=data.get("tid"),
            fee=Decimal(data.get("fee", "0")),
            fee_token=data.get("feeToken", "USDC"),
            closed_pnl=Decimal(data.get("closedPnl", "0")),
            start_position=Decimal(data.get("startPosition", "0")),
            dir=data.get("dir", ""),
            hash=data.get("hash"),
            crossed=data.get("crossed", False),
            cloid=_parse_cloid(data.get("cloid")),
        )


@dataclass(slots=True, frozen=True)
class UserBalance:
    """Spot balance of one token."""

    coin: str
    #: Token index
    token: int
    total: Decimal
    #: Locked in open orders
    hold: Decimal
    entry_ntl: Decimal = Decimal(0)

    @property
    def available(self) -> Decimal:
        return self.total - self.hold

    @classmethod
    def from_api_response(cls, data: dict) -> "UserBalance":
        return cls(
            coin=data["coin"],
            token=data["token"],
            total=Decimal(data["total"]),
            hold=Decimal(data["hold"]),
            entry_ntl=Decimal(data.get("entryNtl", "0")),
        )


@dataclass(slots=True, frozen=True)
class PerpMarket:
    """Perpetual future listed in ``meta``.

    :py:attr:`index` is the position in the universe and the asset id used in orders.
    """

    name: str
    index: int
    sz_decimals: int
    max_leverage: int
    only_isolated: bool = False
    is_delisted: bool = False

    @classmethod
    def from_api_response(cls, index: int, data: dict) -> "PerpMarket":
        return cls(
            name=data["name"],
            index=index,
            sz_decimals=data["szDecimals"],
            max_leverage=data["maxLeverage"],
            only_isolated=data.get("onlyIsolated", False),
            is_delisted=data.get("isDelisted", False),
        )


@dataclass(slots=True, frozen=True)
class SpotToken:
    """Token listed in ``spotMeta``."""

    name: str
    index: int
    #: 16 bytes hex token id
    token_id: str
    sz_decimals: int
    wei_decimals: int
    #: ERC-20 on HyperEVM, if the token is linked
    evm_contract: str | None = None
    #: Difference between HyperEVM and HyperCore decimals
    evm_extra_wei_decimals: int = 0
    is_canonical: bool = False
    full_name: str | None = None

    def wire_name(self) -> str:
        """Token in the ``NAME:0xtokenid`` form used by ``spotSend`` and ``sendAsset``."""
        return f"{self.name}:{self.token_id}"

    @property
    def cross_chain_address(self) -> str | None:
        """HyperCore system address bridging this token to HyperEVM.

        Sending the token to this address on HyperCore credits it on HyperEVM.
        ``None`` if the token is not linked to HyperEVM.
        """
        if self.name == "HYPE":
            return HYPE_SYSTEM_ADDRESS
        if self.evm_contract is None:
            return None
        return "0x20" + self.index.to_bytes(19, "big").hex()

    def __str__(self):
        return self.name

    @classmethod
    def from_api_response(cls, data: dict) -> "SpotToken":
        evm_contract = data.get("evmContract")
        return cls(
            name=data["name"],
            index=data["index"],
            token_id=data["tokenId"],
            sz_decimals=data["szDecimals"],
            wei_decimals=data["weiDecimals"],
            evm_contract=evm_contract["address"] if evm_contract else None,
            evm_extra_wei_decimals=evm_contract.get("evm_extra_wei_decimals", 0) if evm_contract else 0,
            is_canonical=data.get("isCanonical", False),
            full_name=data.get("fullName"),
        )


@dataclass(slots=True, frozen=True)
class SpotMarket:
    """Spot pair listed in ``spotMeta``.

    Orders use :py:attr:`asset_index`, ``10_000 + index``.
    """

    name: str
    index: int
    #: Base and quote token
    tokens: tuple[SpotToken, SpotToken]
    is_canonical: bool = False

    @property
    def asset_index(self) -> int:
        return SPOT_ASSET_INDEX_OFFSET + self.index

    @property
    def base(self) -> SpotToken:
        return self.tokens[0]

    @property
    def quote(self) -> SpotToken:
        return self.tokens[1]

    @classmethod
    def from_api_response(cls, data: dict, tokens: dict[int, SpotToken]) -> "SpotMarket":
        base, quote = data["tokens"]
        return cls(
            name=data["name"],
            index=data["index"],
            tokens=(tokens[base], tokens[quote]),
            is_canonical=data.get("isCanonical", False),
        )


@dataclass(slots=True)
class SpotMeta:
    """Decoded ``spotMeta`` answer."""

    tokens: list[SpotToken] = field(default_factory=list)
    markets: list[SpotMarket] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: dict) -> "SpotMeta":
        tokens = [SpotToken.from_api_response(t) for t in data["tokens"]]
        by_index = {t.index: t for t in tokens}
        markets = []
        for raw in data["universe"]:
            try:
                markets.append(SpotMarket.from_api_response(raw, by_index))
            except KeyError as e:
                # Pairs referring to delisted tokens
                logger.warning("Skipping spot market %s, unknown token %s", raw.get("name"), e)
        return cls(tokens=tokens, markets=markets)
