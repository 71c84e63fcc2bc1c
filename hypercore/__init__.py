"""hypercore package root.

Client library for the Hyperliquid HyperCore trading API.

- :py:mod:`hypercore.signing` - action signing (typed data and L1 connection id signing)
- :py:mod:`hypercore.multisig` - multisig signature collection
- :py:mod:`hypercore.api` - HTTP client for the info and exchange endpoints
- :py:mod:`hypercore.ws` - reconnecting WebSocket subscriptions

"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    # https://stackoverflow.com/a/1093331/315168
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"hypercore-defi needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
