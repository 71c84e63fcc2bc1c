"""HyperCore HTTP client.

- Info reads go to ``POST {base}/info`` through a rate limited, retrying session
- Signed actions go to ``POST {base}/exchange`` through a session without retries,
  with a fixed 5 seconds deadline

Batch calls (:py:meth:`HypercoreClient.place`, :py:meth:`~HypercoreClient.cancel`,
:py:meth:`~HypercoreClient.cancel_by_cloid`, :py:meth:`~HypercoreClient.modify`)
return the per item outcome in the batch order. If the request dies in transit
we cannot know which items the venue accepted, so instead of a
:py:class:`~hypercore.errors.TransportError` the batch raises
:py:class:`~hypercore.errors.BatchAmbiguityError` carrying every id of the batch.
Reconcile with :py:meth:`~HypercoreClient.order_status` before retrying.

Example::

    import time
    from decimal import Decimal

    from eth_account import Account

    from hypercore.api import HypercoreClient
    from hypercore.errors import BatchAmbiguityError
    from hypercore.types import BatchOrder, Chain, Cloid, LimitOrderType, OrderRequest, TimeInForce

    client = HypercoreClient(Chain.testnet)
    account = Account.from_key(private_key)
    btc = next(m for m in client.perps() if m.name == "BTC")

    order = OrderRequest(
        asset=btc.index,
        is_buy=True,
        limit_px=Decimal("50000"),
        sz=Decimal("0.001"),
        reduce_only=False,
        order_type=LimitOrderType(TimeInForce.gtc),
        cloid=Cloid.random(),
    )

    try:
        statuses = client.place(account, BatchOrder([order]), nonce=int(time.time() * 1000))
    except BatchAmbiguityError as e:
        for cloid in e.ids:
            print(client.order_status(account.address, cloid))

The client holds no per call state and can be shared between threads.
"""

import datetime
import logging
import os
from decimal import Decimal
from typing import Any, Sequence
from urllib.parse import urlsplit, urlunsplit

import requests
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from requests import Session

from hypercore.codec import request_to_json, to_millis
from hypercore.constants import EXCHANGE_TIMEOUT, HYPERCORE_API_URL_ENV, HYPERCORE_CHAIN_ENV, INFO_TIMEOUT
from hypercore.errors import BatchAmbiguityError, ProtocolError, TransportError, UnexpectedResponse
from hypercore.responses import (
    ApiResponse,
    BasicOrder,
    ErrResponse,
    Fill,
    OkResponse,
    OrderResponseStatus,
    OrderUpdate,
    PerpMarket,
    SpotMarket,
    SpotMeta,
    SpotToken,
    UserBalance,
    parse_api_response,
)
from hypercore.session import create_exchange_session, create_hypercore_session
from hypercore.signing import ActionSigner
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
    OidOrCloid,
    ScheduleCancel,
    SendAsset,
    SpotSend,
    UsdSend,
)
from hypercore.ws import StreamSubscription

logger = logging.getLogger(__name__)


def websocket_url(base_url: str) -> str:
    """Streaming endpoint of an API base URL.

    ``https`` becomes ``wss``, ``http`` becomes ``ws``, path is ``/ws``.
    """
    parts = urlsplit(base_url)
    scheme = {"https": "wss", "http": "ws"}.get(parts.scheme, parts.scheme)
    return urlunsplit((scheme, parts.netloc, "/ws", "", ""))


class HypercoreClient:
    """HyperCore HTTP API client.

    :param chain:
        Target chain. Selects the default base URL and the signing chain.
    :param base_url:
        Override the API base URL, e.g. for a local proxy.
    :param session:
        Session for info reads. Defaults to :py:func:`~hypercore.session.create_hypercore_session`.
    :param exchange_session:
        Session for exchange submissions. Must not retry.
        Defaults to :py:func:`~hypercore.session.create_exchange_session`.
    """

    def __init__(
        self,
        chain: Chain = Chain.mainnet,
        base_url: str | None = None,
        session: Session | None = None,
        exchange_session: Session | None = None,
    ):
        self.chain = chain
        self.base_url = (base_url or chain.api_url).rstrip("/")
        self.session = session or create_hypercore_session()
        self.exchange_session = exchange_session or create_exchange_session()
        self.signer = ActionSigner(chain)

    def __repr__(self):
        return f"<HypercoreClient {self.chain} {self.base_url}>"

    @classmethod
    def from_env(cls, **kwargs) -> "HypercoreClient":
        """Create a client configured by ``HYPERCORE_CHAIN`` and ``HYPERCORE_API_URL``.

        ``HYPERCORE_CHAIN`` is ``mainnet`` (default) or ``testnet``.
        """
        chain_name = os.environ.get(HYPERCORE_CHAIN_ENV, "mainnet").strip().lower()
        try:
            chain = Chain[chain_name]
        except KeyError as e:
            raise ValueError(f"{HYPERCORE_CHAIN_ENV} must be mainnet or testnet, got {chain_name}") from e
        base_url = os.environ.get(HYPERCORE_API_URL_ENV) or None
        return cls(chain=chain, base_url=base_url, **kwargs)

    def websocket(self, **kwargs) -> StreamSubscription:
        """Create a streaming subscription handle for this venue.

        The connection is opened by :py:meth:`StreamSubscription.start`.
        """
        return StreamSubscription(websocket_url(self.base_url), **kwargs)

    #
    # Info endpoint
    #

    def _make_info_request(self, request_type: str, **params) -> Any:
        """Make a POST request to the info endpoint.

        :raise TransportError:
            Network failure, HTTP error status or a body that is not JSON.
        """
        url = f"{self.base_url}/info"
        payload = {"type": request_type, **params}

        logger.debug("Info request %s", payload)

        try:
            response = self.session.post(url, json=payload, timeout=INFO_TIMEOUT)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Info request %s failed: %s", request_type, e)
            raise TransportError(f"{request_type} failed: {e}") from e

    def perps(self) -> list[PerpMarket]:
        """Perpetual markets, index is the asset id."""
        data = self._make_info_request("meta")
        return [PerpMarket.from_api_response(i, raw) for i, raw in enumerate(data["universe"])]

    def spot_meta(self) -> SpotMeta:
        return SpotMeta.from_api_response(self._make_info_request("spotMeta"))

    def spot(self) -> list[SpotMarket]:
        """Spot pairs, asset id is ``10_000 + index``."""
        return self.spot_meta().markets

    def spot_tokens(self) -> list[SpotToken]:
        return self.spot_meta().tokens

    def open_orders(self, user: HexAddress) -> list[BasicOrder]:
        data = self._make_info_request("frontendOpenOrders", user=user)
        return [BasicOrder.from_api_response(o) for o in data]

    def historical_orders(self, user: HexAddress) -> list[OrderUpdate]:
        """Most recent orders of a user with their final status."""
        data = self._make_info_request("historicalOrders", user=user)
        return [OrderUpdate.from_api_response(o) for o in data]

    def user_fills(self, user: HexAddress) -> list[Fill]:
        data = self._make_info_request("userFills", user=user)
        return [Fill.from_api_response(f) for f in data]

    def order_status(self, user: HexAddress, oid: OidOrCloid) -> OrderUpdate | None:
        """Status of a single order.

        :param oid:
            Exchange order id or client order id.
        :return:
            ``None`` if the venue does not know the order.
        """
        raw_oid = oid if isinstance(oid, int) else oid.to_raw()
        data = self._make_info_request("orderStatus", user=user, oid=raw_oid)
        match data:
            case {"status": "order", "order": order}:
                return OrderUpdate.from_api_response(order)
            case {"status": "unknownOid"}:
                return None
        raise UnexpectedResponse(data, "orderStatus")

    def user_balances(self, user: HexAddress) -> list[UserBalance]:
        """Spot balances of a user."""
        data = self._make_info_request("spotClearinghouseState", user=user)
        return [UserBalance.from_api_response(b) for b in data["balances"]]

    def all_mids(self) -> dict[str, Decimal]:
        """Mid price of every coin."""
        data = self._make_info_request("allMids")
        return {coin: Decimal(px) for coin, px in data.items()}

    #
    # Exchange endpoint
    #

    def submit(self, request: ActionRequest) -> ApiResponse:
        """POST a signed request to the exchange endpoint.

        Never retried.

        :raise TransportError:
            Timeout, connection failure, HTTP error status or a body that is not JSON.
        :raise UnexpectedResponse:
            JSON that matches no known envelope.
        """
        url = f"{self.base_url}/exchange"
        body = request_to_json(request)
        action_name = type(request.action).__name__

        logger.debug("Submitting %s, nonce %d, signer %s", action_name, request.nonce, request.signer)

        try:
            response = self.exchange_session.post(url, json=body, timeout=EXCHANGE_TIMEOUT)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Submitting %s, nonce %d failed: %s", action_name, request.nonce, e)
            raise TransportError(f"{action_name} submission failed: {e}") from e

        return parse_api_response(data)

    def _sign_and_submit(
        self,
        signer: LocalAccount,
        action: Action,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> ApiResponse:
        request = self.signer.produce(signer, action, nonce, vault_address, expires_after)
        return self.submit(request)

    def _send_batch(
        self,
        signer: LocalAccount,
        action: Action,
        ids: Sequence[Any],
        nonce: int,
        vault_address: HexAddress | None,
        expires_after: datetime.datetime | int | None,
    ) -> list[OrderResponseStatus]:
        # Signing errors surface before anything is sent
        request = self.signer.produce(signer, action, nonce, vault_address, expires_after)

        try:
            resp = self.submit(request)
        except TransportError as e:
            raise BatchAmbiguityError(ids, str(e)) from e

        match resp:
            case OkResponse(statuses=list(statuses)):
                return statuses
            case ErrResponse(message=message):
                raise ProtocolError(message, ids=ids)
        raise UnexpectedResponse(resp, f"{type(action).__name__} batch")

    def _send_single(
        self,
        name: str,
        signer: LocalAccount,
        action: Action,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> None:
        resp = self._sign_and_submit(signer, action, nonce, vault_address, expires_after)
        match resp:
            case OkResponse(statuses=None):
                return
            case ErrResponse(message=message):
                raise ProtocolError(f"{name}: {message}")
        raise UnexpectedResponse(resp, name)

    def place(
        self,
        signer: LocalAccount,
        batch: BatchOrder,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> list[OrderResponseStatus]:
        """Place a batch of orders.

        :return:
            Outcome of each order, in the batch order.
        :raise BatchAmbiguityError:
            Transport failure. ``ids`` are the cloids of the batch, ``None`` for orders without one.
        :raise ProtocolError:
            The whole batch was rejected.
        """
        cloids = [o.cloid for o in batch.orders]
        return self._send_batch(signer, batch, cloids, nonce, vault_address, expires_after)

    def cancel(
        self,
        signer: LocalAccount,
        batch: BatchCancel,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> list[OrderResponseStatus]:
        """Cancel a batch of orders by exchange order id."""
        oids = [c.oid for c in batch.cancels]
        return self._send_batch(signer, batch, oids, nonce, vault_address, expires_after)

    def cancel_by_cloid(
        self,
        signer: LocalAccount,
        batch: BatchCancelCloid,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> list[OrderResponseStatus]:
        cloids = [c.cloid for c in batch.cancels]
        return self._send_batch(signer, batch, cloids, nonce, vault_address, expires_after)

    def modify(
        self,
        signer: LocalAccount,
        batch: BatchModify,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> list[OrderResponseStatus]:
        oids = [m.oid for m in batch.modifies]
        return self._send_batch(signer, batch, oids, nonce, vault_address, expires_after)

    def schedule_cancel(
        self,
        signer: LocalAccount,
        nonce: int,
        when: datetime.datetime | int | None,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> None:
        """Cancel all open orders at ``when``.

        :param when:
            Datetime or UNIX milliseconds. ``None`` removes the scheduled cancel.
        """
        action = ScheduleCancel(time=to_millis(when))
        self._send_single("schedule_cancel", signer, action, nonce, vault_address, expires_after)

    def send_usdc(self, signer: LocalAccount, send: UsdSend, nonce: int) -> None:
        """Perp USDC transfer to another address.

        `See docs <https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/exchange-endpoint#core-usdc-transfer>`__.
        """
        self._send_single("send_usdc", signer, send, nonce)

    def spot_send(self, signer: LocalAccount, send: SpotSend, nonce: int) -> None:
        """Spot token transfer to another address."""
        self._send_single("spot_send", signer, send, nonce)

    def send_asset(self, signer: LocalAccount, send: SendAsset, nonce: int) -> None:
        """Move tokens between perp DEXes, spot and subaccounts.

        `See docs <https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/exchange-endpoint#send-asset>`__.
        """
        self._send_single("send_asset", signer, send, nonce)

    def evm_user_modify(
        self,
        signer: LocalAccount,
        using_big_blocks: bool,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> None:
        self._send_single("evm_user_modify", signer, EvmUserModify(using_big_blocks), nonce, vault_address, expires_after)

    def noop(
        self,
        signer: LocalAccount,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> None:
        """Invalidate a nonce."""
        self._send_single("noop", signer, Noop(), nonce, vault_address, expires_after)

    def approve_agent(
        self,
        signer: LocalAccount,
        agent_address: HexAddress,
        nonce: int,
        agent_name: str | None = None,
    ) -> None:
        """Allow an API wallet to trade on behalf of ``signer``."""
        action = ApproveAgent(agent_address=agent_address, nonce=nonce, agent_name=agent_name)
        self._send_single("approve_agent", signer, action, nonce)

    def convert_to_multisig(
        self,
        signer: LocalAccount,
        authorized_users: list[HexAddress],
        threshold: int,
        nonce: int,
    ) -> None:
        """Turn ``signer`` into a multisig user.

        :param threshold:
            How many of ``authorized_users`` must sign each action.
        """
        if not 1 <= threshold <= len(authorized_users):
            raise ValueError(f"Threshold {threshold} does not fit {len(authorized_users)} authorized users")
        action = ConvertToMultiSigUser(authorized_users=authorized_users, threshold=threshold, nonce=nonce)
        self._send_single("convert_to_multisig", signer, action, nonce)

    def multisig(
        self,
        lead: LocalAccount,
        multisig_action: MultiSigAction,
        nonce: int,
        vault_address: HexAddress | None = None,
        expires_after: datetime.datetime | int | None = None,
    ) -> OkResponse:
        """Submit a multisig action collected with :py:func:`hypercore.multisig.collect`.

        :return:
            The venue answer. ``statuses`` is set if the inner action was a batch.
        """
        resp = self._sign_and_submit(lead, multisig_action, nonce, vault_address, expires_after)
        match resp:
            case OkResponse():
                return resp
            case ErrResponse(message=message):
                raise ProtocolError(f"multisig: {message}")
        raise UnexpectedResponse(resp, "multisig")

    def transfer_to_evm(self, signer: LocalAccount, token: SpotToken, amount: Decimal, nonce: int) -> None:
        """Move a spot token from HyperCore to HyperEVM.

        The token is sent to its system address.
        """
        destination = token.cross_chain_address
        if destination is None:
            raise ValueError(f"Token {token} is not linked to HyperEVM")

        send = SpotSend(
            destination=destination,
            token=token.wire_name(),
            amount=amount,
            time=nonce,
        )
        self.spot_send(signer, send, nonce)

    def transfer_to_spot(self, signer: LocalAccount, token: SpotToken, amount: Decimal, nonce: int) -> None:
        """Move USDC from perps to spot."""
        self._transfer_usdc(signer, token, amount, nonce, source_dex="", destination_dex="spot")

    def transfer_to_perps(self, signer: LocalAccount, token: SpotToken, amount: Decimal, nonce: int) -> None:
        """Move USDC from spot to perps."""
        self._transfer_usdc(signer, token, amount, nonce, source_dex="spot", destination_dex="")

    def _transfer_usdc(
        self,
        signer: LocalAccount,
        token: SpotToken,
        amount: Decimal,
        nonce: int,
        source_dex: str,
        destination_dex: str,
    ) -> None:
        if token.name != "USDC":
            raise ValueError(f"Only USDC is accepted, tried to transfer {token.name}")

        send = SendAsset(
            destination=signer.address,
            source_dex=source_dex,
            destination_dex=destination_dex,
            token=token.wire_name(),
            amount=amount,
            nonce=nonce,
        )
        self.send_asset(signer, send, nonce)
