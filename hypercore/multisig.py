"""Multisig signature collection.

A HyperCore multisig user is an account converted with ``convertToMultiSigUser``.
Executing an action for it is a two step process:

1. :py:func:`collect` - every participating key holder signs the inner action,
   one after another, see :py:meth:`hypercore.signing.ActionSigner.multi_sig_single`
2. :py:func:`finalize` - the lead (outer) signer hashes the complete multisig action
   and signs a ``SendMultiSig`` envelope over the hash

The venue verifies the signatures in the order they appear in the action,
so collection is strictly sequential and preserves the signer order.

Example::

    from hypercore.multisig import collect, finalize

    multisig_action = collect(
        lead=lead.address,
        multi_sig_user="0x...",
        signers=[alice, bob],
        inner_action=batch_order,
        nonce=nonce,
        chain=Chain.mainnet,
    )
    request = finalize(lead, multisig_action, nonce, chain=Chain.mainnet)

Based on `hyperliquid-python-sdk multisig signing <https://github.com/hyperliquid-dex/hyperliquid-python-sdk/blob/master/hyperliquid/utils/signing.py>`__.
"""

import datetime
import logging
from typing import Iterable

from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress

from hypercore.codec import action_hash, multisig_to_wire, to_millis
from hypercore.constants import ARBITRUM_TESTNET_CHAIN_ID
from hypercore.eip_712 import build_multisig_envelope_typed_data, sign_typed_data
from hypercore.signing import ActionSigner, SigningMode, bind_chain, signing_mode_for
from hypercore.types import Action, ActionRequest, Chain, MultiSigAction, MultiSigPayload

logger = logging.getLogger(__name__)


def collect(
    lead: HexAddress,
    multi_sig_user: HexAddress,
    signers: Iterable[LocalAccount],
    inner_action: Action,
    nonce: int,
    chain: Chain = Chain.mainnet,
) -> MultiSigAction:
    """Collect one signature per participant.

    :param lead:
        Address of the outer signer who will submit the action.
    :param multi_sig_user:
        The multisig account.
    :param signers:
        Participants, signed in this order.
    :param inner_action:
        What the multisig user wants to execute.
    :param nonce:
        Shared by all participants and the lead envelope.
    :raise SigningError:
        If any participant fails, tagged with that participant's address.
    """
    if signing_mode_for(inner_action) == SigningMode.user_signed:
        # The payload must carry the same chain the participants signed
        inner_action = bind_chain(inner_action, chain)

    action_signer = ActionSigner(chain)
    signatures = []
    for signer in signers:
        signature = action_signer.multi_sig_single(signer, inner_action, nonce, multi_sig_user, lead)
        logger.debug("Collected multisig signature #%d from %s", len(signatures), signer.address)
        signatures.append(signature)

    return MultiSigAction(
        signatures=signatures,
        payload=MultiSigPayload(
            multi_sig_user=multi_sig_user.lower(),
            outer_signer=lead.lower(),
            action=inner_action,
        ),
        signature_chain_id=ARBITRUM_TESTNET_CHAIN_ID,
    )


def finalize(
    lead: LocalAccount,
    multisig_action: MultiSigAction,
    nonce: int,
    vault_address: HexAddress | None = None,
    expires_after: datetime.datetime | int | None = None,
    chain: Chain = Chain.mainnet,
) -> ActionRequest:
    """Lead signer signs the envelope over the complete multisig action.

    The envelope is signed under the fixed multisig domain whatever the target chain,
    the chain is carried in the ``hyperliquidChain`` field.
    """
    if lead.address.lower() != multisig_action.payload.outer_signer:
        raise ValueError(f"{lead.address} is not the outer signer {multisig_action.payload.outer_signer} of the multisig action")

    expires_ms = to_millis(expires_after)
    multisig_hash = action_hash(multisig_to_wire(multisig_action), nonce, vault_address, expires_ms)

    envelope = {
        "hyperliquidChain": chain.value,
        "multiSigActionHash": multisig_hash,
        "nonce": nonce,
    }
    signature = sign_typed_data(lead, build_multisig_envelope_typed_data(envelope))

    return ActionRequest(
        signature=signature,
        action=multisig_action,
        nonce=nonce,
        vault_address=vault_address,
        expires_after=expires_ms,
        signer=lead.address,
    )
