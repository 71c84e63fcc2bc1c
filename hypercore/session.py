"""HTTP session management for HyperCore API.

Two kinds of sessions:

- :py:func:`create_hypercore_session` for ``/info`` reads. Rate limited and
  retried on throttling and server errors.

- :py:func:`create_exchange_session` for ``/exchange`` writes. Never retried:
  a resubmitted order could be executed twice, so the caller decides
  what to do after a failure.

Rate limiting is thread-safe using SQLite backend, so the session can be
shared across multiple threads.
"""

import logging
from pathlib import Path

from pyrate_limiter import SQLiteBucket
from requests import Session
from requests.adapters import HTTPAdapter
from requests_ratelimiter import LimiterAdapter

from hypercore.constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_REQUESTS_PER_SECOND,
    DEFAULT_RETRIES,
    HYPERCORE_RATE_LIMIT_SQLITE_DATABASE,
)
from hypercore.logging_retry import LoggingRetry

logger = logging.getLogger(__name__)


def create_hypercore_session(
    retries: int = DEFAULT_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND,
    pool_maxsize: int = 32,
    rate_limit_db_path: Path = HYPERCORE_RATE_LIMIT_SQLITE_DATABASE,
) -> Session:
    """Create a requests Session for HyperCore info reads.

    The session is configured with:

    - Rate limiting to respect HyperCore API throttling (thread-safe via SQLite)
    - Retry logic for handling transient errors using exponential backoff

    - `See rate limits here <https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/rate-limits-and-user-limits>`__.

    Example::

        from hypercore.session import create_hypercore_session

        session = create_hypercore_session()
        response = session.post("https://api.hyperliquid.xyz/info", json={"type": "allMids"})

    :param retries:
        Maximum number of retry attempts for failed requests
    :param backoff_factor:
        Backoff factor for exponential retry delays
    :param requests_per_second:
        Maximum requests per second to avoid rate limiting.
    :param pool_maxsize:
        Maximum number of connections to keep in the connection pool.
    :param rate_limit_db_path:
        Path to SQLite database for storing rate limit state.
        Defaults to ``~/.tradingstrategy/hypercore/rate-limit.sqlite``.
    :return:
        Configured requests Session with rate limiting and retry logic
    """
    rate_limit_db_path.parent.mkdir(parents=True, exist_ok=True)

    session = Session()

    # Info reads are POSTs, whitelist it for retries
    retry_policy = LoggingRetry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        respect_retry_after_header=True,
        logger=logger,
        allowed_methods=LoggingRetry.DEFAULT_ALLOWED_METHODS | frozenset(["POST"]),
    )

    adapter = LimiterAdapter(
        per_second=requests_per_second,
        max_retries=retry_policy,
        pool_connections=pool_maxsize,
        pool_maxsize=pool_maxsize,
        bucket_class=SQLiteBucket,
        bucket_kwargs={"path": str(rate_limit_db_path)},
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def create_exchange_session(pool_maxsize: int = 8) -> Session:
    """Create a requests Session for signed ``/exchange`` submissions.

    Retries are disabled, including connection level retries.
    """
    session = Session()
    adapter = HTTPAdapter(
        max_retries=0,
        pool_connections=pool_maxsize,
        pool_maxsize=pool_maxsize,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
