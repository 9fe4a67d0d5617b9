"""Pure frozen dataclasses with zero I/O for requests, responses, and diagnostics.

The models layer is the foundation of the package. It has **no dependencies**
on any other Detour package -- only the Python standard library. Every model
uses ``@dataclass(frozen=True, slots=True)`` for immutability and memory
efficiency, and all validation happens in ``__post_init__`` so invalid
instances never escape the constructor.

Attributes:
    RequestOptions: Method, headers, and body of a call.
    FetchResponse: Fully-read response returned by every call path.
    CallOutcome: Transient success-or-failure result of one call.
    LogEntry: Timestamped line of the diagnostic trail.
    FailureKind: Classified kinds of network-layer failure.
    TransportState: States of the fallback sequence.
"""

from .constants import DEFAULT_LOG_CAPACITY, FailureKind, TransportState
from .log_entry import LogEntry
from .outcome import CallOutcome
from .request import RequestOptions
from .response import FetchResponse


__all__ = [
    "DEFAULT_LOG_CAPACITY",
    "CallOutcome",
    "FailureKind",
    "FetchResponse",
    "LogEntry",
    "RequestOptions",
    "TransportState",
]
