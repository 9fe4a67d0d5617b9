"""Classification of caught failures as network-layer or application-level.

Only network-layer failures (DNS, TLS, timeouts, aborted or refused
connections) are eligible for the fallback chain. Anything else -- including
a well-formed non-2xx answer that a caller chose to raise -- is an
application failure and must reach the caller untouched.

Classification is two-phase:

1. ``STRUCTURED_SIGNATURES``: exception types, checked in order against the
   failure and, for ``aiohttp.ClientConnectorError``, against the wrapped
   ``os_error``.
2. ``MESSAGE_SIGNATURES``: case-insensitive substrings, used only when no
   structured type matched. These cover failures that arrive re-wrapped by
   intermediate layers as plain exceptions carrying the original text.

Both tables are ordered; the first match wins.

Examples:
    ```python
    classify_failure(aiohttp.ClientSSLError(...))   # FailureKind.TLS
    classify_failure(RuntimeError("Network request failed"))  # FailureKind.NETWORK_REQUEST
    classify_failure(aiohttp.ClientResponseError(..., status=404))  # None
    ```
"""

from __future__ import annotations

import socket
import ssl
from typing import Final

import aiohttp

from detour.models import FailureKind


# Raised non-2xx answers: the server legitimately responded.
APPLICATION_ERRORS: Final[tuple[type[BaseException], ...]] = (aiohttp.ClientResponseError,)

# Order matters: TLS and DNS failures are subclasses of the generic
# connection errors further down.
STRUCTURED_SIGNATURES: Final[tuple[tuple[FailureKind, tuple[type[BaseException], ...]], ...]] = (
    (FailureKind.TLS, (ssl.SSLError, aiohttp.ClientSSLError)),
    (FailureKind.DNS, (socket.gaierror,)),
    (FailureKind.TIMEOUT, (TimeoutError, aiohttp.ServerTimeoutError)),
    (
        FailureKind.CONNECTION_ABORT,
        (ConnectionAbortedError, ConnectionResetError, aiohttp.ServerDisconnectedError),
    ),
    (FailureKind.CONNECTION, (aiohttp.ClientConnectionError, ConnectionError)),
    (FailureKind.CLIENT, (aiohttp.ClientPayloadError,)),
)

MESSAGE_SIGNATURES: Final[tuple[tuple[FailureKind, tuple[str, ...]], ...]] = (
    (FailureKind.FETCH, ("failed to fetch",)),
    (FailureKind.NETWORK_REQUEST, ("network request failed",)),
    (FailureKind.TLS, ("ssl library", "ssl routines")),
    (FailureKind.CONNECTION_ABORT, ("software caused connection abort",)),
)


def describe_error(error: BaseException) -> str:
    """Return ``str(error)``, or the type name if the exception cannot render itself."""
    try:
        return str(error)
    except Exception:  # noqa: BLE001  # Intentionally broad: any __str__ failure
        return type(error).__name__


def _match_structured(error: BaseException) -> FailureKind | None:
    for kind, types in STRUCTURED_SIGNATURES:
        if isinstance(error, types):
            return kind
    return None


def _match_message(message: str) -> FailureKind | None:
    lowered = message.lower()
    for kind, patterns in MESSAGE_SIGNATURES:
        if any(pattern in lowered for pattern in patterns):
            return kind
    return None


def classify_failure(error: BaseException) -> FailureKind | None:
    """Return the network failure kind of *error*, or ``None``.

    ``None`` means the failure is application-level (or not an ordinary
    exception at all, such as ``asyncio.CancelledError``) and must not be
    retried through the fallback chain.

    Args:
        error: The caught failure.

    Returns:
        The matching [FailureKind][detour.models.constants.FailureKind], or
        ``None`` for application failures.
    """
    if not isinstance(error, Exception) or isinstance(error, APPLICATION_ERRORS):
        return None

    # aiohttp wraps resolver and socket errors; the wrapped one is more precise
    if isinstance(error, aiohttp.ClientConnectorError):
        kind = _match_structured(error.os_error)
        if kind is not None and kind is not FailureKind.CONNECTION:
            return kind

    kind = _match_structured(error)
    if kind is not None:
        return kind

    return _match_message(describe_error(error))


def is_network_failure(error: BaseException) -> bool:
    """Return True if *error* is eligible for the fallback chain."""
    return classify_failure(error) is not None
