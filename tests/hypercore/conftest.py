"""Shared pytest fixtures for HyperCore tests.

Nothing here talks to the network: HTTP sessions are mocks and
WebSocket connections are in-memory fakes.
"""

from unittest.mock import MagicMock

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from hypercore.api import HypercoreClient
from hypercore.types import Chain, Signature


#: Key of the published USD transfer signing vector
GOLDEN_PRIVATE_KEY = "0xe908f86dbb4d55ac876378565aafeabc187f6690f046459397b17d9b9a19688e"


@pytest.fixture
def golden_account():
    return Account.from_key(GOLDEN_PRIVATE_KEY)


@pytest.fixture
def test_wallet():
    """Fresh wallet for testing."""
    return Account.create()


@pytest.fixture
def multisig_signers():
    """Three deterministic participant keys."""
    return [Account.from_key("0x" + f"{i:02x}" * 32) for i in (1, 2, 3)]


@pytest.fixture
def recover_typed_data():
    """Recover the signer address of a typed data signature."""

    def _recover(typed_data: dict, signature: Signature) -> str:
        return Account.recover_message(encode_typed_data(full_message=typed_data), signature=signature.to_hex())

    return _recover


@pytest.fixture
def mock_response():
    """Factory for a ``requests`` response mock returning the given JSON."""

    def _make(data):
        response = MagicMock()
        response.json.return_value = data
        response.raise_for_status.return_value = None
        return response

    return _make


@pytest.fixture
def mock_client():
    """Testnet client with mocked info and exchange sessions."""
    return HypercoreClient(
        chain=Chain.testnet,
        session=MagicMock(),
        exchange_session=MagicMock(),
    )
