"""Transient result of one orchestrated call."""

from __future__ import annotations

from dataclasses import dataclass

from .constants import TransportState
from .response import FetchResponse


@dataclass(frozen=True, slots=True)
class CallOutcome:
    """Either the successful response or the failure of one call.

    Never persisted. Exactly one of ``response`` / ``error`` is set, and it
    agrees with ``state``: ``SUCCEEDED`` carries a response, ``FAILED``
    carries the error that the call raises.

    Attributes:
        state: Terminal state reached.
        response: The response returned to the caller, if any.
        error: The failure surfaced to the caller, if any. For exhausted
            fallbacks this is the original direct-call failure.
        attempts: Number of calls issued for the caller's request (direct,
            direct-IP retry, relays). The DoH lookup is not counted.
        stage: State that produced the response (``DIRECT``,
            ``DIRECT_IP_RETRY`` or ``RELAY_RETRY``). A failure rejected as
            non-network carries ``CLASSIFY_FAILURE``; exhausted fallbacks
            carry ``None``.
        relay_index: Position in the relay chain of the relay that answered,
            if a relay answered.
    """

    state: TransportState
    response: FetchResponse | None = None
    error: BaseException | None = None
    attempts: int = 1
    stage: TransportState | None = None
    relay_index: int | None = None

    def __post_init__(self) -> None:
        if self.state not in (TransportState.SUCCEEDED, TransportState.FAILED):
            raise ValueError(f"state must be terminal, got {self.state}")
        if (self.response is None) == (self.error is None):
            raise ValueError("exactly one of response or error must be set")
        if self.state is TransportState.SUCCEEDED and self.response is None:
            raise ValueError("succeeded outcome requires a response")
        if self.state is TransportState.FAILED and self.error is None:
            raise ValueError("failed outcome requires an error")
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")

    @property
    def succeeded(self) -> bool:
        """Return True if the call produced a response."""
        return self.state is TransportState.SUCCEEDED

    def unwrap(self) -> FetchResponse:
        """Return the response or raise the surfaced error."""
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response
