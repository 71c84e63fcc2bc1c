"""EIP-712 typed data used by HyperCore.

- Message type tables of every typed payload the venue accepts
- Builders for the three domains (L1 agent, user-signed, multisig)
- :py:func:`sign_typed_data` wrapping ``eth_account`` signing into :py:class:`~hypercore.types.Signature`

All user-signed types are named ``HyperliquidTransaction:<Name>``. The multisig
variants of the same types carry two extra address fields, ``payloadMultiSigUser``
and ``outerSigner``, right after ``hyperliquidChain``.

Example:

.. code-block:: python

    from eth_account import Account
    from hypercore.eip_712 import build_user_signed_typed_data, sign_typed_data

    typed_data = build_user_signed_typed_data(
        "UsdSend",
        {"hyperliquidChain": "Mainnet", "destination": "0x...", "amount": "1", "time": 1690393044548},
        signature_chain_id=0xA4B1,
    )
    signature = sign_typed_data(Account.create(), typed_data)

"""

import logging

from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount

from hypercore.constants import (
    CORE_MAINNET_EIP712_DOMAIN,
    EIP712_DOMAIN_TYPES,
    MULTISIG_MAINNET_EIP712_DOMAIN,
    USER_SIGNED_DOMAIN_NAME,
    ZERO_ADDRESS,
)
from hypercore.errors import SigningError
from hypercore.types import Signature

logger = logging.getLogger(__name__)


#: Prefix of all user-signed primary types
USER_SIGNED_TYPE_PREFIX = "HyperliquidTransaction:"

#: Phantom agent wrapping the connection id of an L1 action
AGENT_TYPES = [
    {"name": "source", "type": "string"},
    {"name": "connectionId", "type": "bytes32"},
]

#: User-signed message types, keyed by the name after ``HyperliquidTransaction:``
MESSAGE_TYPES = {
    "UsdSend": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "destination", "type": "string"},
        {"name": "amount", "type": "string"},
        {"name": "time", "type": "uint64"},
    ],
    "SpotSend": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "destination", "type": "string"},
        {"name": "token", "type": "string"},
        {"name": "amount", "type": "string"},
        {"name": "time", "type": "uint64"},
    ],
    "SendAsset": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "destination", "type": "string"},
        {"name": "sourceDex", "type": "string"},
        {"name": "destinationDex", "type": "string"},
        {"name": "token", "type": "string"},
        {"name": "amount", "type": "string"},
        {"name": "fromSubAccount", "type": "string"},
        {"name": "nonce", "type": "uint64"},
    ],
    "ApproveAgent": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "agentAddress", "type": "address"},
        {"name": "agentName", "type": "string"},
        {"name": "nonce", "type": "uint64"},
    ],
    "ConvertToMultiSigUser": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "signers", "type": "string"},
        {"name": "nonce", "type": "uint64"},
    ],
    "SendMultiSig": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "multiSigActionHash", "type": "bytes32"},
        {"name": "nonce", "type": "uint64"},
    ],
}

#: Fields the multisig variant of a user-signed type inserts after ``hyperliquidChain``
MULTISIG_EXTRA_FIELDS = [
    {"name": "payloadMultiSigUser", "type": "address"},
    {"name": "outerSigner", "type": "address"},
]


def user_signed_domain(signature_chain_id: int) -> dict:
    return {
        "name": USER_SIGNED_DOMAIN_NAME,
        "version": "1",
        "chainId": signature_chain_id,
        "verifyingContract": ZERO_ADDRESS,
    }


def multisig_message_types(name: str) -> list[dict]:
    """Message types of the multisig variant of a user-signed action."""
    fields = MESSAGE_TYPES[name]
    assert fields[0]["name"] == "hyperliquidChain"
    return fields[:1] + MULTISIG_EXTRA_FIELDS + fields[1:]


def build_typed_data(domain: dict, primary_type: str, fields: list[dict], message: dict) -> dict:
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_TYPES,
            primary_type: fields,
        },
        "domain": domain,
        "primaryType": primary_type,
        "message": message,
    }


def build_agent_typed_data(source: str, connection_id: bytes) -> dict:
    """Phantom agent payload of an L1 action.

    Always signed under the mainnet ``Exchange`` domain, testnet is told apart by ``source``.
    """
    assert len(connection_id) == 32, f"Connection id must be 32 bytes, got {len(connection_id)}"
    return build_typed_data(
        CORE_MAINNET_EIP712_DOMAIN,
        "Agent",
        AGENT_TYPES,
        {"source": source, "connectionId": connection_id},
    )


def build_user_signed_typed_data(name: str, message: dict, signature_chain_id: int) -> dict:
    return build_typed_data(
        user_signed_domain(signature_chain_id),
        USER_SIGNED_TYPE_PREFIX + name,
        MESSAGE_TYPES[name],
        message,
    )


def build_multisig_typed_data(name: str, message: dict) -> dict:
    """Multisig variant of a user-signed payload, under the fixed multisig domain."""
    return build_typed_data(
        MULTISIG_MAINNET_EIP712_DOMAIN,
        USER_SIGNED_TYPE_PREFIX + name,
        multisig_message_types(name),
        message,
    )


def build_multisig_envelope_typed_data(message: dict) -> dict:
    """``SendMultiSig`` envelope signed by the lead signer.

    Same fixed multisig domain, but no multisig-only fields.
    """
    return build_typed_data(
        MULTISIG_MAINNET_EIP712_DOMAIN,
        USER_SIGNED_TYPE_PREFIX + "SendMultiSig",
        MESSAGE_TYPES["SendMultiSig"],
        message,
    )


def sign_typed_data(signer: LocalAccount, typed_data: dict) -> Signature:
    """Sign EIP-712 typed data.

    :param signer:
        Key holder. Anything with ``address`` and ``sign_message()`` works.
    :param typed_data:
        Full typed data message, see :py:func:`build_typed_data`.
    :raise SigningError:
        If the key holder rejects the payload.
    """
    try:
        encoded = encode_typed_data(full_message=typed_data)
        signed = signer.sign_message(encoded)
    except Exception as e:
        address = getattr(signer, "address", "<unknown>")
        logger.error("Signer %s rejected %s: %s", address, typed_data["primaryType"], e)
        raise SigningError(address, str(e)) from e

    return Signature(r=signed.r, s=signed.s, v=signed.v)
