"""Hyperliquid HyperCore API constants and configuration.

This module defines API endpoints, EIP-712 domains, timeouts and rate limits
shared by the HTTP and WebSocket clients.
"""

from pathlib import Path

#: Hyperliquid mainnet API URL
HYPERLIQUID_API_URL = "https://api.hyperliquid.xyz"

#: Hyperliquid testnet API URL
HYPERLIQUID_TESTNET_API_URL = "https://api.hyperliquid-testnet.xyz"

#: Arbitrum One chain id.
#:
#: Used as ``signatureChainId`` of user-signed (typed data) actions by default.
ARBITRUM_MAINNET_CHAIN_ID = 0xA4B1

#: Arbitrum Sepolia chain id.
#:
#: Hyperliquid pins multisig signing to this chain id for both mainnet and testnet.
ARBITRUM_TESTNET_CHAIN_ID = 0x66EEE

#: Default ``signatureChainId`` for user-signed actions
ARBITRUM_SIGNATURE_CHAIN_ID = ARBITRUM_MAINNET_CHAIN_ID

#: Zero address used as the verifying contract in all Hyperliquid domains
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

#: EIP-712 domain for L1 actions (orders, cancels, ...).
#:
#: The phantom agent wrapper is always signed under this mainnet domain.
#: Testnet is distinguished only by the ``source`` field of the agent.
CORE_MAINNET_EIP712_DOMAIN = {
    "name": "Exchange",
    "version": "1",
    "chainId": 1337,
    "verifyingContract": ZERO_ADDRESS,
}

#: Domain name of user-signed actions (transfers, agent approvals)
USER_SIGNED_DOMAIN_NAME = "HyperliquidSignTransaction"

#: EIP-712 domain for the multisig envelope and multisig user-signed actions.
#:
#: Pinned to Arbitrum Sepolia chain id regardless of the target chain.
MULTISIG_MAINNET_EIP712_DOMAIN = {
    "name": USER_SIGNED_DOMAIN_NAME,
    "version": "1",
    "chainId": ARBITRUM_TESTNET_CHAIN_ID,
    "verifyingContract": ZERO_ADDRESS,
}

#: EIP-712 domain type definition shared by all Hyperliquid domains
EIP712_DOMAIN_TYPES = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

#: Spot asset ids start here, perp asset ids are the universe index
SPOT_ASSET_INDEX_OFFSET = 10_000

#: Maximum decimal places the venue accepts for prices and sizes on the wire
WIRE_DECIMALS = 8

#: Deadline for mutating ``/exchange`` calls in seconds.
#:
#: These calls are never retried internally, the caller decides.
EXCHANGE_TIMEOUT = 5.0

#: Deadline for ``/info`` reads in seconds
INFO_TIMEOUT = 10.0

#: Default number of retries for read-only API requests
DEFAULT_RETRIES = 5

#: Default backoff factor for retries (seconds)
DEFAULT_BACKOFF_FACTOR = 0.5

#: Default rate limit for Hyperliquid API requests per second.
#:
#: Hyperliquid has a limit of 1200 weight per minute per IP.
#: Most info endpoints have weight 20, so: 1200 / 20 = 60 requests/minute = 1 request/second.
#:
#: See https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/rate-limits-and-user-limits
DEFAULT_REQUESTS_PER_SECOND = 1.0

#: Default SQLite database path for rate limiting state.
#:
#: Using SQLite ensures thread-safe rate limiting across multiple threads.
HYPERCORE_RATE_LIMIT_SQLITE_DATABASE = Path("~/.tradingstrategy/hypercore/rate-limit.sqlite").expanduser()

#: How often a ping frame is sent on an idle WebSocket (seconds)
WS_HEARTBEAT_INTERVAL = 5.0

#: Upper bound for a single WebSocket connect attempt (seconds)
WS_CONNECT_TIMEOUT = 5.0

#: Fixed delay between WebSocket reconnect attempts (seconds)
WS_RECONNECT_DELAY = 1.5

#: Decoded messages buffered for a slow consumer before the oldest ones are dropped
WS_MAX_QUEUED_MESSAGES = 10_000

#: Environment variable overriding the API base URL
HYPERCORE_API_URL_ENV = "HYPERCORE_API_URL"

#: Environment variable selecting the chain (``mainnet`` or ``testnet``)
HYPERCORE_CHAIN_ENV = "HYPERCORE_CHAIN"
