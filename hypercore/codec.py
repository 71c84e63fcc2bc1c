"""Wire encoding of HyperCore actions.

- :py:func:`action_to_wire` turns an action dataclass into the tagged JSON form
  the exchange endpoint expects. Key order is significant: the same dict
  is MessagePack encoded for hashing, and the venue re-encodes the JSON it
  receives in the received key order.

- :py:func:`action_hash` produces the 32-byte connection id of L1 actions::

    msgpack(action) ++ be64(nonce) ++ vault_suffix ++ expiry_suffix

  where ``vault_suffix`` is ``0x00`` without a vault and ``0x01 ++ addr20`` with one,
  and ``expiry_suffix`` is empty without an expiry and ``0x00 ++ be64(expires_after)`` with one.

- :py:func:`request_to_json` builds the POST body of a signed request.

Example::

    from hypercore.codec import action_to_wire, action_hash
    from hypercore.types import Noop

    connection_id = action_hash(action_to_wire(Noop()), nonce=1_700_000_000_000)
    assert len(connection_id) == 32

"""

import datetime
import json
from decimal import Decimal
from typing import Any

import msgpack
from eth_typing import HexAddress
from eth_utils import keccak, to_bytes

from hypercore.constants import WIRE_DECIMALS
from hypercore.types import (
    Action,
    ActionRequest,
    ApproveAgent,
    BatchCancel,
    BatchCancelCloid,
    BatchModify,
    BatchOrder,
    Cloid,
    ConvertToMultiSigUser,
    EvmUserModify,
    LimitOrderType,
    MultiSigAction,
    Noop,
    OidOrCloid,
    OrderRequest,
    OrderType,
    ScheduleCancel,
    SendAsset,
    SpotSend,
    TriggerOrderType,
    UsdSend,
)

_WIRE_QUANTUM = Decimal(10) ** -WIRE_DECIMALS


def decimal_to_wire(value: Decimal | int | str) -> str:
    """Render a price or a size the way the venue hashes it.

    At most 8 decimal places, no trailing zeros, no exponent.

    :raise ValueError:
        If the value cannot be represented without rounding.
    """
    if isinstance(value, float):
        raise TypeError(f"Use Decimal instead of float: {value}")

    value = Decimal(value)
    rounded = value.quantize(_WIRE_QUANTUM)
    if rounded != value:
        raise ValueError(f"{value} has more than {WIRE_DECIMALS} decimal places")

    normalized = rounded.normalize()
    if normalized.is_zero():
        # Avoid -0
        return "0"
    return f"{normalized:f}"


def address_to_wire(address: HexAddress | str) -> str:
    assert address.startswith("0x") and len(address) == 42, f"Not an address: {address}"
    return address.lower()


def oid_or_cloid_to_wire(oid: OidOrCloid) -> int | str:
    if isinstance(oid, Cloid):
        return oid.to_raw()
    return oid


def order_type_to_wire(order_type: OrderType) -> dict:
    match order_type:
        case LimitOrderType(tif=tif):
            return {"limit": {"tif": tif.value}}
        case TriggerOrderType(trigger_px=trigger_px, is_market=is_market, tpsl=tpsl):
            return {
                "trigger": {
                    "isMarket": is_market,
                    "triggerPx": decimal_to_wire(trigger_px),
                    "tpsl": tpsl.value,
                }
            }
    raise AssertionError(f"Unknown order type: {order_type}")


def order_to_wire(order: OrderRequest) -> dict:
    wire = {
        "a": order.asset,
        "b": order.is_buy,
        "p": decimal_to_wire(order.limit_px),
        "s": decimal_to_wire(order.sz),
        "r": order.reduce_only,
        "t": order_type_to_wire(order.order_type),
    }
    if order.cloid is not None:
        wire["c"] = order.cloid.to_raw()
    return wire


def format_signers(authorized_users: list[str], threshold: int) -> str:
    """``signers`` field of ``convertToMultiSigUser``, a JSON document embedded as a string."""
    signers = {
        "authorizedUsers": sorted(address_to_wire(a) for a in authorized_users),
        "threshold": threshold,
    }
    return json.dumps(signers)


def multisig_to_wire(action: MultiSigAction) -> dict:
    """Multisig action body without the ``type`` tag.

    This is the value hashed for the lead signer envelope.
    """
    return {
        "signatureChainId": hex(action.signature_chain_id),
        "signatures": [s.to_json() for s in action.signatures],
        "payload": {
            "multiSigUser": action.payload.multi_sig_user,
            "outerSigner": action.payload.outer_signer,
            "action": action_to_wire(action.payload.action),
        },
    }


def action_to_wire(action: Action) -> dict:
    """Tagged wire form of an action."""
    match action:
        case BatchOrder():
            return {
                "type": "order",
                "orders": [order_to_wire(o) for o in action.orders],
                "grouping": action.grouping.value,
            }
        case BatchCancel():
            return {
                "type": "cancel",
                "cancels": [{"a": c.asset, "o": c.oid} for c in action.cancels],
            }
        case BatchCancelCloid():
            return {
                "type": "cancelByCloid",
                "cancels": [{"asset": c.asset, "cloid": c.cloid.to_raw()} for c in action.cancels],
            }
        case BatchModify():
            return {
                "type": "batchModify",
                "modifies": [{"oid": oid_or_cloid_to_wire(m.oid), "order": order_to_wire(m.order)} for m in action.modifies],
            }
        case ScheduleCancel():
            wire = {"type": "scheduleCancel"}
            if action.time is not None:
                wire["time"] = action.time
            return wire
        case EvmUserModify():
            return {"type": "evmUserModify", "usingBigBlocks": action.using_big_blocks}
        case Noop():
            return {"type": "noop"}
        case UsdSend():
            return {
                "type": "usdSend",
                "signatureChainId": hex(action.signature_chain_id),
                "hyperliquidChain": action.hyperliquid_chain.value,
                "destination": address_to_wire(action.destination),
                "amount": decimal_to_wire(action.amount),
                "time": action.time,
            }
        case SpotSend():
            return {
                "type": "spotSend",
                "signatureChainId": hex(action.signature_chain_id),
                "hyperliquidChain": action.hyperliquid_chain.value,
                "destination": address_to_wire(action.destination),
                "token": action.token,
                "amount": decimal_to_wire(action.amount),
                "time": action.time,
            }
        case SendAsset():
            return {
                "type": "sendAsset",
                "signatureChainId": hex(action.signature_chain_id),
                "hyperliquidChain": action.hyperliquid_chain.value,
                "destination": address_to_wire(action.destination),
                "sourceDex": action.source_dex,
                "destinationDex": action.destination_dex,
                "token": action.token,
                "amount": decimal_to_wire(action.amount),
                "fromSubAccount": action.from_sub_account,
                "nonce": action.nonce,
            }
        case ApproveAgent():
            wire = {
                "type": "approveAgent",
                "signatureChainId": hex(action.signature_chain_id),
                "hyperliquidChain": action.hyperliquid_chain.value,
                "agentAddress": address_to_wire(action.agent_address),
            }
            # Unnamed agents are sent without the field, but signed with an empty name
            if action.agent_name is not None:
                wire["agentName"] = action.agent_name
            wire["nonce"] = action.nonce
            return wire
        case ConvertToMultiSigUser():
            return {
                "type": "convertToMultiSigUser",
                "signatureChainId": hex(action.signature_chain_id),
                "hyperliquidChain": action.hyperliquid_chain.value,
                "signers": format_signers(action.authorized_users, action.threshold),
                "nonce": action.nonce,
            }
        case MultiSigAction():
            return {"type": "multiSig", **multisig_to_wire(action)}
    raise AssertionError(f"Unknown action: {action}")


def canonical_bytes(value: Any) -> bytes:
    """MessagePack encoding of a wire value."""
    return msgpack.packb(value)


def action_hash(
    value: Any,
    nonce: int,
    vault_address: HexAddress | None = None,
    expires_after: int | None = None,
) -> bytes:
    """Compute the connection id of an L1 action.

    :param value:
        Wire form of the action, see :py:func:`action_to_wire`.
        For multisig participants this is the ``[multisig user, lead, action]`` triple.
    :param nonce:
        Caller chosen nonce, usually the current time in milliseconds.
    :param vault_address:
        Vault or subaccount the action is executed for.
    :param expires_after:
        UNIX timestamp in milliseconds after which the venue rejects the action.
    :return:
        32 bytes Keccak-256 digest
    """
    assert 0 <= nonce < 2**64, f"Nonce does not fit 64 bits: {nonce}"
    data = canonical_bytes(value)
    data += nonce.to_bytes(8, "big")
    if vault_address is None:
        data += b"\x00"
    else:
        data += b"\x01"
        data += to_bytes(hexstr=vault_address)
    if expires_after is not None:
        data += b"\x00"
        data += expires_after.to_bytes(8, "big")
    return keccak(data)


def to_millis(when: datetime.datetime | int | None) -> int | None:
    """Normalise an expiry or a schedule time to UNIX milliseconds.

    Naive datetimes are treated as UTC.
    """
    if when is None or isinstance(when, int):
        return when
    if when.tzinfo is None:
        when = when.replace(tzinfo=datetime.timezone.utc)
    return int(when.timestamp() * 1000)


def request_to_json(request: ActionRequest) -> dict:
    """POST body of the exchange endpoint."""
    body = {
        "action": action_to_wire(request.action),
        "nonce": request.nonce,
        "signature": request.signature.to_json(),
    }
    if request.vault_address is not None:
        body["vaultAddress"] = address_to_wire(request.vault_address)
    if request.expires_after is not None:
        body["expiresAfter"] = request.expires_after
    return body
