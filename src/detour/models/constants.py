"""Shared constants for the models layer.

Defines the enumerations used across the transport: the classified kinds of
network-layer failure and the states of the fallback sequence. Placing them
here avoids circular dependencies between the models and utils layers.

See Also:
    [detour.utils.classify][]: Maps caught exceptions to
        [FailureKind][detour.models.constants.FailureKind].
    [detour.client.transport][]: Walks the
        [TransportState][detour.models.constants.TransportState] sequence.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final


DEFAULT_LOG_CAPACITY: Final[int] = 50
"""Maximum number of entries held by a diagnostic log."""


class FailureKind(StrEnum):
    """Classified kind of a network-layer (fallback-eligible) failure.

    Attributes:
        DNS: Hostname resolution failed or was blocked.
        TLS: TLS/SSL handshake or certificate failure.
        TIMEOUT: A connect or read deadline elapsed.
        CONNECTION_ABORT: The connection was reset or aborted mid-flight.
        CONNECTION: Any other failure to establish or keep a connection.
        NETWORK_REQUEST: A "network request failed" style failure reported
            by an intermediate layer without a structured type.
        FETCH: A generic "failed to fetch" failure.
        CLIENT: A client-side transport failure such as a truncated payload.
    """

    DNS = "dns"
    TLS = "tls"
    TIMEOUT = "timeout"
    CONNECTION_ABORT = "connection_abort"
    CONNECTION = "connection"
    NETWORK_REQUEST = "network_request"
    FETCH = "fetch"
    CLIENT = "client"


class TransportState(StrEnum):
    """States of the fallback sequence for a single call.

    The sequence always starts at ``DIRECT`` and ends at ``SUCCEEDED`` or
    ``FAILED``::

        DIRECT -> CLASSIFY_FAILURE -> DIRECT_IP_RETRY -> RELAY_RETRY(i) -> SUCCEEDED | FAILED
    """

    DIRECT = "direct"
    CLASSIFY_FAILURE = "classify_failure"
    DIRECT_IP_RETRY = "direct_ip_retry"
    RELAY_RETRY = "relay_retry"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
