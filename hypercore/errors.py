"""Error taxonomy of the HyperCore client.

- :py:class:`TransportError` - network, timeout or decode failure. The caller may retry.
- :py:class:`ProtocolError` - the venue answered with an explicit error status.
- :py:class:`SigningError` - local signing failure, fatal for that call.
- :py:class:`BatchAmbiguityError` - the outcome of a batch is unknown after a transport failure.
- :py:class:`UnexpectedResponse` - the response matches no known shape (protocol drift).

:py:class:`BatchAmbiguityError` deliberately does not inherit from
:py:class:`TransportError`: some of the batch items may have been accepted,
so the caller must reconcile with :py:meth:`hypercore.api.HypercoreClient.order_status`
instead of blindly resubmitting.
"""

from typing import Any, Sequence


class HypercoreError(Exception):
    """Base class for all errors raised by this package."""


class TransportError(HypercoreError):
    """HTTP call failed before we got a well-formed answer.

    Timeouts, connection errors and non-JSON bodies end up here.
    """


class ProtocolError(HypercoreError):
    """Venue returned ``{"status": "err"}``.

    :param message:
        Opaque error message from the venue.
    :param ids:
        Order identifiers of the rejected batch, if the call was a batch.
    """

    def __init__(self, message: str, ids: Sequence[Any] | None = None):
        self.message = message
        self.ids = list(ids) if ids is not None else None
        super().__init__(message)

    def __str__(self):
        if self.ids is None:
            return self.message
        return f"{self.message}, ids: {self.ids}"


class SigningError(HypercoreError):
    """Key holder refused or failed to sign a payload.

    :param signer:
        Public address of the key holder.
    """

    def __init__(self, signer: str, reason: str):
        self.signer = signer
        self.reason = reason
        super().__init__(f"Signing using {signer} failed: {reason}")


class BatchAmbiguityError(HypercoreError):
    """Batch was sent but we do not know what happened to it.

    Carries every client-supplied identifier of the batch, in the batch order,
    so the caller can query the status of each item.
    """

    def __init__(self, ids: Sequence[Any], reason: str):
        self.ids = list(ids)
        self.reason = reason
        super().__init__(f"Batch outcome unknown: {reason}, ids: {self.ids}")


class UnexpectedResponse(HypercoreError):
    """Response parsed as JSON but does not match any known shape."""

    def __init__(self, payload: Any, context: str = ""):
        self.payload = payload
        super().__init__(f"Unexpected response {context}: {payload!r}")
