"""Wire form and connection id hashing of actions."""

import datetime
import json
from decimal import Decimal

import msgpack
import pytest
from eth_utils import keccak

from hypercore.codec import action_hash, action_to_wire, decimal_to_wire, order_to_wire, request_to_json, to_millis
from hypercore.types import (
    ActionRequest,
    ApproveAgent,
    BatchCancelCloid,
    BatchModify,
    BatchOrder,
    CancelByCloid,
    Cloid,
    ConvertToMultiSigUser,
    LimitOrderType,
    Modify,
    Noop,
    OrderRequest,
    ScheduleCancel,
    Signature,
    TimeInForce,
    TpSl,
    TriggerOrderType,
)

VAULT = "0x1719884eb866cb12b2287399b15f7db5e7d775ea"


def make_order(sz="0.01", cloid: Cloid | None = Cloid.from_int(1)) -> OrderRequest:
    return OrderRequest(
        asset=0,
        is_buy=True,
        limit_px=Decimal("65000.5"),
        sz=Decimal(sz),
        reduce_only=False,
        order_type=LimitOrderType(TimeInForce.gtc),
        cloid=cloid,
    )


@pytest.mark.parametrize(
    "value,expected",
    [
        (Decimal("1.000"), "1"),
        (Decimal("0.10000000"), "0.1"),
        (Decimal("1E+3"), "1000"),
        (Decimal("-0"), "0"),
        (Decimal("-1.5"), "-1.5"),
        ("0.00000001", "0.00000001"),
        (42, "42"),
    ],
)
def test_decimal_to_wire(value, expected):
    assert decimal_to_wire(value) == expected


def test_decimal_to_wire_rejects_extra_precision():
    with pytest.raises(ValueError):
        decimal_to_wire(Decimal("0.123456789"))


def test_decimal_to_wire_rejects_float():
    with pytest.raises(TypeError):
        decimal_to_wire(0.1)


def test_order_wire_key_order():
    """MessagePack hashes keys in insertion order, so the order is part of the protocol."""
    wire = order_to_wire(make_order())
    assert list(wire.keys()) == ["a", "b", "p", "s", "r", "t", "c"]
    assert wire["p"] == "65000.5"
    assert wire["t"] == {"limit": {"tif": "Gtc"}}
    assert wire["c"] == "0x00000000000000000000000000000001"


def test_order_without_cloid_has_no_c():
    wire = order_to_wire(make_order(cloid=None))
    assert "c" not in wire


def test_trigger_order_wire():
    order = OrderRequest(
        asset=3,
        is_buy=False,
        limit_px=Decimal("100"),
        sz=Decimal("1"),
        reduce_only=True,
        order_type=TriggerOrderType(trigger_px=Decimal("99.50"), is_market=True, tpsl=TpSl.sl),
    )
    assert order_to_wire(order)["t"] == {"trigger": {"isMarket": True, "triggerPx": "99.5", "tpsl": "sl"}}


def test_action_hash_deterministic():
    """Same action, nonce, vault and expiry always give the same connection id."""
    wire = action_to_wire(BatchOrder([make_order()]))
    first = action_hash(wire, 1_700_000_000_000, VAULT, 1_700_000_060_000)
    second = action_hash(action_to_wire(BatchOrder([make_order()])), 1_700_000_000_000, VAULT, 1_700_000_060_000)
    assert first == second
    assert len(first) == 32


def test_action_hash_changes_with_any_field():
    nonce = 1_700_000_000_000
    base = action_hash(action_to_wire(BatchOrder([make_order()])), nonce)

    assert action_hash(action_to_wire(BatchOrder([make_order(sz="0.02")])), nonce) != base
    assert action_hash(action_to_wire(BatchOrder([make_order()])), nonce + 1) != base
    assert action_hash(action_to_wire(BatchOrder([make_order()])), nonce, VAULT) != base
    assert action_hash(action_to_wire(BatchOrder([make_order()])), nonce, None, nonce + 60_000) != base


def test_action_hash_layout():
    """msgpack ++ be64(nonce) ++ vault marker ++ optional expiry."""
    wire = action_to_wire(Noop())
    nonce = 1_700_000_000_000
    packed = msgpack.packb(wire)

    assert action_hash(wire, nonce) == keccak(packed + nonce.to_bytes(8, "big") + b"\x00")
    assert action_hash(wire, nonce, VAULT) == keccak(packed + nonce.to_bytes(8, "big") + b"\x01" + bytes.fromhex(VAULT[2:]))
    assert action_hash(wire, nonce, None, 1234) == keccak(packed + nonce.to_bytes(8, "big") + b"\x00" + b"\x00" + (1234).to_bytes(8, "big"))


def test_cancel_by_cloid_wire():
    cloid = Cloid.from_str("0x1234567890abcdef1234567890abcdef")
    wire = action_to_wire(BatchCancelCloid([CancelByCloid(asset=10_001, cloid=cloid)]))
    assert wire == {"type": "cancelByCloid", "cancels": [{"asset": 10_001, "cloid": "0x1234567890abcdef1234567890abcdef"}]}


def test_batch_modify_wire_accepts_oid_or_cloid():
    wire = action_to_wire(BatchModify([Modify(oid=77, order=make_order()), Modify(oid=Cloid.from_int(2), order=make_order())]))
    assert [m["oid"] for m in wire["modifies"]] == [77, "0x00000000000000000000000000000002"]


def test_schedule_cancel_without_time():
    assert action_to_wire(ScheduleCancel()) == {"type": "scheduleCancel"}
    assert action_to_wire(ScheduleCancel(time=123)) == {"type": "scheduleCancel", "time": 123}


def test_unnamed_agent_omits_name():
    wire = action_to_wire(ApproveAgent(agent_address="0x" + "AB" * 20, nonce=5))
    assert "agentName" not in wire
    assert wire["agentAddress"] == "0x" + "ab" * 20
    assert wire["signatureChainId"] == "0xa4b1"
    assert wire["hyperliquidChain"] == "Mainnet"


def test_convert_to_multisig_signers_json():
    action = ConvertToMultiSigUser(
        authorized_users=["0x" + "BB" * 20, "0x" + "AA" * 20],
        threshold=2,
        nonce=1,
    )
    signers = json.loads(action_to_wire(action)["signers"])
    assert signers == {"authorizedUsers": ["0x" + "aa" * 20, "0x" + "bb" * 20], "threshold": 2}


def test_request_to_json_omits_absent_fields():
    request = ActionRequest(signature=Signature(r=1, s=2, v=27), action=Noop(), nonce=9)
    body = request_to_json(request)
    assert body == {"action": {"type": "noop"}, "nonce": 9, "signature": {"r": "0x1", "s": "0x2", "v": 27}}

    request.vault_address = VAULT
    request.expires_after = 100
    body = request_to_json(request)
    assert body["vaultAddress"] == VAULT
    assert body["expiresAfter"] == 100


def test_to_millis():
    assert to_millis(None) is None
    assert to_millis(1_700_000_000_000) == 1_700_000_000_000
    naive = datetime.datetime(2024, 1, 1)
    aware = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    assert to_millis(naive) == to_millis(aware) == 1_704_067_200_000


def test_cloid_forms():
    cloid = Cloid.random()
    assert Cloid.from_str(cloid.to_raw()) == cloid
    assert len(cloid.to_raw()) == 34

    with pytest.raises(ValueError):
        Cloid.from_str("0x1234")
