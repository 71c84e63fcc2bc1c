"""Signing of HyperCore actions.

Hyperliquid uses two different signing methods, chosen by the action kind:

- **User-signed typed data** (:py:attr:`SigningMode.user_signed`): transfers and
  account management (``usdSend``, ``spotSend``, ``sendAsset``, ``approveAgent``,
  ``convertToMultiSigUser``). The action fields are signed directly as EIP-712
  typed data under the ``HyperliquidSignTransaction`` domain, so wallets can
  show what is being signed. Vault address and expiry do not apply.

- **L1 action signing** (:py:attr:`SigningMode.l1`): trading actions (orders,
  cancels, modifies, scheduled cancel, big blocks toggle, noop).
  The action is MessagePack encoded and hashed together with nonce, vault and
  expiry into a connection id (see :py:func:`hypercore.codec.action_hash`).
  The connection id is wrapped in a phantom ``Agent`` struct and signed under
  the mainnet ``Exchange`` domain. The domain is the mainnet one even on testnet:
  the network is only told apart by the agent ``source`` field (``"a"`` / ``"b"``).

Example::

    from eth_account import Account

    from hypercore.signing import ActionSigner
    from hypercore.types import Chain, Noop

    signer = ActionSigner(Chain.testnet)
    request = signer.produce(Account.create(), Noop(), nonce=1_700_000_000_000)

Signing holds no state and never suspends. Nonce uniqueness is the caller's
responsibility, the signer never generates or checks nonces.
"""

import dataclasses
import datetime
import logging
from enum import Enum

from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress

from hypercore.codec import action_hash, action_to_wire, address_to_wire, decimal_to_wire, format_signers, to_millis
from hypercore.eip_712 import build_agent_typed_data, build_multisig_typed_data, build_user_signed_typed_data, sign_typed_data
from hypercore.types import (
    Action,
    ActionRequest,
    ApproveAgent,
    BatchCancel,
    BatchCancelCloid,
    BatchModify,
    BatchOrder,
    Chain,
    ConvertToMultiSigUser,
    EvmUserModify,
    MultiSigAction,
    Noop,
    ScheduleCancel,
    SendAsset,
    Signature,
    SpotSend,
    UsdSend,
    UserSignedAction,
)

logger = logging.getLogger(__name__)


class SigningMode(Enum):
    """How an action kind is signed."""

    #: EIP-712 typed data of the action itself
    user_signed = "user_signed"

    #: Phantom agent over the MessagePack connection id
    l1 = "l1"

    #: Lead signer envelope over the collected multisig signatures
    multisig = "multisig"


def signing_mode_for(action: Action) -> SigningMode:
    """Static mapping from action kind to signing mode."""
    match action:
        case UsdSend() | SpotSend() | SendAsset() | ApproveAgent() | ConvertToMultiSigUser():
            return SigningMode.user_signed
        case BatchOrder() | BatchCancel() | BatchCancelCloid() | BatchModify() | ScheduleCancel() | EvmUserModify() | Noop():
            return SigningMode.l1
        case MultiSigAction():
            return SigningMode.multisig
    raise AssertionError(f"Unknown action: {action}")


def bind_chain(action: UserSignedAction, chain: Chain) -> UserSignedAction:
    """Make the ``hyperliquidChain`` of a user-signed action match the target chain."""
    if action.hyperliquid_chain == chain:
        return action
    logger.debug("Rebinding %s from %s to %s", type(action).__name__, action.hyperliquid_chain, chain)
    return dataclasses.replace(action, hyperliquid_chain=chain)


def user_signed_message(action: UserSignedAction) -> tuple[str, dict]:
    """Typed data type name and message fields of a user-signed action."""
    chain = action.hyperliquid_chain.value
    match action:
        case UsdSend():
            return "UsdSend", {
                "hyperliquidChain": chain,
                "destination": address_to_wire(action.destination),
                "amount": decimal_to_wire(action.amount),
                "time": action.time,
            }
        case SpotSend():
            return "SpotSend", {
                "hyperliquidChain": chain,
                "destination": address_to_wire(action.destination),
                "token": action.token,
                "amount": decimal_to_wire(action.amount),
                "time": action.time,
            }
        case SendAsset():
            return "SendAsset", {
                "hyperliquidChain": chain,
                "destination": address_to_wire(action.destination),
                "sourceDex": action.source_dex,
                "destinationDex": action.destination_dex,
                "token": action.token,
                "amount": decimal_to_wire(action.amount),
                "fromSubAccount": action.from_sub_account,
                "nonce": action.nonce,
            }
        case ApproveAgent():
            return "ApproveAgent", {
                "hyperliquidChain": chain,
                "agentAddress": address_to_wire(action.agent_address),
                "agentName": action.agent_name or "",
                "nonce": action.nonce,
            }
        case ConvertToMultiSigUser():
            return "ConvertToMultiSigUser", {
                "hyperliquidChain": chain,
                "signers": format_signers(action.authorized_users, action.threshold),
                "nonce": action.nonce,
            }
    raise AssertionError(f"Not a user-signed action: {action}")


def sign_l1_action(signer: LocalAccount, chain: Chain, connection_id: bytes) -> Signature:
    """Sign a connection id wrapped in the phantom agent."""
    typed_data = build_agent_typed_data(chain.source, connection_id)
    return sign_typed_data(signer, typed_data)


def sign_user_signed_action(signer: LocalAccount, action: UserSignedAction) -> Signature:
    name, message = user_signed_message(action)
    typed_data = build_user_signed_typed_data(name, message, action.signature_chain_id)
    return sign_typed_data(signer, typed_data)


class ActionSigner:
    """Produce signed requests for one target chain.

    The instance only remembers the chain, so it can be shared between threads.
    """

    def __init__(self, chain: Chain = Chain.mainnet):
        self.chain = chain

    def __repr__(self):
        return f"<ActionSigner {self.chain}>"

    def produce(
        self,
        signer: LocalAccount,
        action: Action,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> ActionRequest:
        """Sign an action.

        :param signer:
            Key holder signing the action.
        :param action:
            Any action variant.
        :param nonce:
            Unique nonce for this signer, usually current time in milliseconds.
        :param vault_address:
            Trade on behalf of a vault or a subaccount. Ignored for user-signed actions.
        :param expires_after:
            Expiry as UNIX milliseconds or datetime. Ignored for user-signed actions.
        :raise SigningError:
            The key holder rejected the payload.
        """
        mode = signing_mode_for(action)
        match mode:
            case SigningMode.user_signed:
                action = bind_chain(action, self.chain)
                signature = sign_user_signed_action(signer, action)
                return ActionRequest(
                    signature=signature,
                    action=action,
                    nonce=nonce,
                    signer=signer.address,
                )
            case SigningMode.l1:
                expires_ms = to_millis(expires_after)
                connection_id = action_hash(action_to_wire(action), nonce, vault_address, expires_ms)
                signature = sign_l1_action(signer, self.chain, connection_id)
                return ActionRequest(
                    signature=signature,
                    action=action,
                    nonce=nonce,
                    vault_address=vault_address,
                    expires_after=expires_ms,
                    signer=signer.address,
                )
            case SigningMode.multisig:
                # Late import, multisig builds on this module
                from hypercore.multisig import finalize

                return finalize(signer, action, nonce, vault_address, expires_after, self.chain)
        raise AssertionError(f"Unhandled mode {mode}")

    def multi_sig_single(
        self,
        signer: LocalAccount,
        action: Action,
        nonce: int,
        multi_sig_user: HexAddress,
        lead: HexAddress,
    ) -> Signature:
        """Produce one participant signature of a multisig action.

        - User-signed actions are signed in their multisig typed form under the multisig domain
        - L1 actions hash ``[lower(multi_sig_user), lower(lead), action]`` instead of the plain action

        All participants must use the same nonce.
        """
        multi_sig_user = multi_sig_user.lower()
        lead = lead.lower()

        match signing_mode_for(action):
            case SigningMode.user_signed:
                action = bind_chain(action, self.chain)
                name, message = user_signed_message(action)
                message = {
                    "hyperliquidChain": message["hyperliquidChain"],
                    "payloadMultiSigUser": multi_sig_user,
                    "outerSigner": lead,
                    **message,
                }
                return sign_typed_data(signer, build_multisig_typed_data(name, message))
            case SigningMode.l1:
                envelope = [multi_sig_user, lead, action_to_wire(action)]
                connection_id = action_hash(envelope, nonce)
                return sign_l1_action(signer, self.chain, connection_id)
            case SigningMode.multisig:
                raise ValueError("Nested multisig actions are not supported")
