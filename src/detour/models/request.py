"""Request description handed to the transport by callers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from ._validation import freeze_headers, validate_instance, validate_str_not_empty


@dataclass(frozen=True, slots=True)
class RequestOptions:
    """Immutable request-options bundle.

    Carries everything a call needs besides the URL. The transport never
    mutates it; fallback paths derive modified copies through
    [with_headers()][detour.models.request.RequestOptions.with_headers].

    Attributes:
        method: HTTP method, upper-cased on construction.
        headers: Read-only header mapping.
        body: Optional request body.
        server_hostname: Hostname to present for TLS SNI and certificate
            verification when the URL host is an IP address. Set by the
            direct-IP fallback; callers normally leave it ``None``.
    """

    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    body: bytes | str | None = None
    server_hostname: str | None = None

    def __post_init__(self) -> None:
        validate_str_not_empty(self.method, "method")
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", freeze_headers(self.headers, "headers"))
        if self.body is not None:
            validate_instance(self.body, (bytes, str), "body")
        if self.server_hostname is not None:
            validate_str_not_empty(self.server_hostname, "server_hostname")

    def with_headers(self, **extra: str) -> RequestOptions:
        """Return a copy with *extra* merged over the existing headers.

        Header names are matched case-insensitively, so ``Host="a"`` replaces
        an existing ``host`` entry instead of duplicating it.
        """
        lowered = {k.lower() for k in extra}
        merged = {k: v for k, v in self.headers.items() if k.lower() not in lowered}
        merged.update(extra)
        return replace(self, headers=merged)

    def pinned_to(self, hostname: str, port: int | None = None) -> RequestOptions:
        """Return a copy addressed to an IP but identifying as *hostname*.

        Adds a ``Host`` header (with *port* when given) and sets
        ``server_hostname`` to *hostname* for TLS.
        """
        host_header = hostname if port is None else f"{hostname}:{port}"
        return replace(self.with_headers(Host=host_header), server_hostname=hostname)
