"""HyperCore data model.

Actions are a closed set of frozen dataclasses. Each variant carries only
the fields the venue needs to execute it. The wire encoding of the actions
lives in :py:mod:`hypercore.codec` and the signing mode selection in
:py:mod:`hypercore.signing`.

Prices and sizes are always :py:class:`decimal.Decimal`. Floats are not accepted,
because the signed wire form must be reproducible byte by byte.
"""

import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Union

from eth_typing import HexAddress

from hypercore.constants import (
    ARBITRUM_SIGNATURE_CHAIN_ID,
    ARBITRUM_TESTNET_CHAIN_ID,
    HYPERLIQUID_API_URL,
    HYPERLIQUID_TESTNET_API_URL,
)


class Chain(Enum):
    """Which HyperCore network we talk to.

    The enum value is the ``hyperliquidChain`` string used in signed payloads.
    """

    mainnet = "Mainnet"
    testnet = "Testnet"

    @property
    def is_mainnet(self) -> bool:
        return self == Chain.mainnet

    @property
    def source(self) -> str:
        """Phantom agent source tag of L1 action signatures."""
        return "a" if self.is_mainnet else "b"

    @property
    def api_url(self) -> str:
        return HYPERLIQUID_API_URL if self.is_mainnet else HYPERLIQUID_TESTNET_API_URL

    def __str__(self):
        return self.value


@dataclass(slots=True, frozen=True)
class Cloid:
    """Client order id.

    128-bit identifier chosen by the client when the order is created.
    On the wire it is ``0x`` followed by 32 hex characters.
    """

    value: int

    def __post_init__(self):
        assert 0 <= self.value < 2**128, f"Cloid out of 128-bit range: {self.value}"

    @staticmethod
    def random() -> "Cloid":
        return Cloid(secrets.randbits(128))

    @staticmethod
    def from_int(value: int) -> "Cloid":
        return Cloid(value)

    @staticmethod
    def from_str(raw: str) -> "Cloid":
        """Parse the ``0x`` + 32 hex characters wire form."""
        if not raw.startswith("0x") or len(raw) != 34:
            raise ValueError(f"cloid must be 0x followed by 32 hex characters, got {raw}")
        return Cloid(int(raw, 16))

    def to_raw(self) -> str:
        return f"0x{self.value:032x}"

    def __str__(self):
        return self.to_raw()


#: Exchange assigned order id or client order id
OidOrCloid = Union[int, Cloid]


@dataclass(slots=True, frozen=True)
class Signature:
    """ECDSA signature triplet as the venue expects it."""

    r: int
    s: int
    v: int

    def to_json(self) -> dict:
        return {"r": hex(self.r), "s": hex(self.s), "v": self.v}

    def to_hex(self) -> str:
        """65-byte ``r || s || v`` hex form, the way wallets print signatures."""
        return "0x" + self.r.to_bytes(32, "big").hex() + self.s.to_bytes(32, "big").hex() + self.v.to_bytes(1, "big").hex()

    @staticmethod
    def from_json(data: dict) -> "Signature":
        return Signature(r=int(data["r"], 16), s=int(data["s"], 16), v=int(data["v"]))


class TimeInForce(Enum):
    """Limit order time in force."""

    #: Add liquidity only (post only)
    alo = "Alo"

    #: Immediate or cancel
    ioc = "Ioc"

    #: Good til cancelled
    gtc = "Gtc"


class OrderGrouping(Enum):
    """How the orders of a batch relate to each other."""

    na = "na"
    normal_tpsl = "normalTpsl"
    position_tpsl = "positionTpsl"


class TpSl(Enum):
    tp = "tp"
    sl = "sl"


@dataclass(slots=True, frozen=True)
class LimitOrderType:
    tif: TimeInForce


@dataclass(slots=True, frozen=True)
class TriggerOrderType:
    trigger_px: Decimal
    is_market: bool
    tpsl: TpSl


OrderType = Union[LimitOrderType, TriggerOrderType]


@dataclass(slots=True, frozen=True)
class OrderRequest:
    """Single order in a :py:class:`BatchOrder`."""

    #: Asset index, see :py:attr:`hypercore.responses.PerpMarket.index`
    asset: int
    is_buy: bool
    limit_px: Decimal
    sz: Decimal
    reduce_only: bool
    order_type: OrderType
    cloid: Cloid | None = None


@dataclass(slots=True, frozen=True)
class BatchOrder:
    orders: list[OrderRequest]
    grouping: OrderGrouping = OrderGrouping.na


@dataclass(slots=True, frozen=True)
class Cancel:
    asset: int
    oid: int


@dataclass(slots=True, frozen=True)
class BatchCancel:
    cancels: list[Cancel]


@dataclass(slots=True, frozen=True)
class CancelByCloid:
    asset: int
    cloid: Cloid


@dataclass(slots=True, frozen=True)
class BatchCancelCloid:
    cancels: list[CancelByCloid]


@dataclass(slots=True, frozen=True)
class Modify:
    oid: OidOrCloid
    order: OrderRequest


@dataclass(slots=True, frozen=True)
class BatchModify:
    modifies: list[Modify]


@dataclass(slots=True, frozen=True)
class ScheduleCancel:
    """Dead man's switch.

    ``time`` is the UNIX timestamp in milliseconds when all open orders are cancelled.
    ``None`` removes a previously scheduled cancel.
    """

    time: int | None = None


@dataclass(slots=True, frozen=True)
class EvmUserModify:
    """Toggle HyperEVM big blocks for the user."""

    using_big_blocks: bool


@dataclass(slots=True, frozen=True)
class Noop:
    """Does nothing but burns the nonce."""


@dataclass(slots=True, frozen=True)
class UsdSend:
    """Perp USDC transfer to another address."""

    destination: HexAddress
    amount: Decimal
    #: UNIX timestamp in milliseconds, also acts as the nonce
    time: int
    hyperliquid_chain: Chain = Chain.mainnet
    signature_chain_id: int = ARBITRUM_SIGNATURE_CHAIN_ID


@dataclass(slots=True, frozen=True)
class SpotSend:
    """Spot token transfer to another address."""

    destination: HexAddress
    #: Token in ``NAME:0xtokenid`` form, see :py:meth:`hypercore.responses.SpotToken.wire_name`
    token: str
    amount: Decimal
    time: int
    hyperliquid_chain: Chain = Chain.mainnet
    signature_chain_id: int = ARBITRUM_SIGNATURE_CHAIN_ID


@dataclass(slots=True, frozen=True)
class SendAsset:
    """Move an asset between DEXes, spot and subaccounts."""

    destination: HexAddress
    #: ``""`` for the perp DEX, ``"spot"`` for spot
    source_dex: str
    destination_dex: str
    token: str
    amount: Decimal
    nonce: int
    from_sub_account: str = ""
    hyperliquid_chain: Chain = Chain.mainnet
    signature_chain_id: int = ARBITRUM_SIGNATURE_CHAIN_ID


@dataclass(slots=True, frozen=True)
class ApproveAgent:
    """Allow an agent (API wallet) to sign L1 actions on behalf of the user."""

    agent_address: HexAddress
    nonce: int
    #: ``None`` creates an unnamed agent
    agent_name: str | None = None
    hyperliquid_chain: Chain = Chain.mainnet
    signature_chain_id: int = ARBITRUM_SIGNATURE_CHAIN_ID


@dataclass(slots=True, frozen=True)
class ConvertToMultiSigUser:
    """Turn a regular user into a multisig user."""

    authorized_users: list[HexAddress]
    threshold: int
    nonce: int
    hyperliquid_chain: Chain = Chain.mainnet
    signature_chain_id: int = ARBITRUM_SIGNATURE_CHAIN_ID


@dataclass(slots=True, frozen=True)
class MultiSigPayload:
    """What the multisig user wants to do.

    Both addresses are stored lowercased.
    """

    multi_sig_user: str
    outer_signer: str
    action: "Action"


@dataclass(slots=True, frozen=True)
class MultiSigAction:
    """Inner action plus the signatures collected from the multisig participants.

    ``signatures`` is in the order the signers were asked to sign.
    """

    signatures: list[Signature]
    payload: MultiSigPayload
    signature_chain_id: int = ARBITRUM_TESTNET_CHAIN_ID


#: Every action the exchange endpoint accepts
Action = Union[
    BatchOrder,
    BatchCancel,
    BatchCancelCloid,
    BatchModify,
    ScheduleCancel,
    EvmUserModify,
    Noop,
    UsdSend,
    SpotSend,
    SendAsset,
    ApproveAgent,
    ConvertToMultiSigUser,
    MultiSigAction,
]

#: Actions signed directly as EIP-712 typed data
UserSignedAction = Union[UsdSend, SpotSend, SendAsset, ApproveAgent, ConvertToMultiSigUser]


@dataclass(slots=True)
class ActionRequest:
    """Signed action ready for the exchange endpoint.

    Created once per submission attempt and never persisted.
    Use :py:func:`hypercore.codec.request_to_json` to get the POST body.
    """

    signature: Signature
    action: Action
    nonce: int
    vault_address: HexAddress | None = None
    #: UNIX timestamp in milliseconds
    expires_after: int | None = None
    #: Address of the key that produced :py:attr:`signature`
    signer: HexAddress | None = field(default=None, compare=False)
