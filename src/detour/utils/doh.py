"""DNS-over-HTTPS resolution for the direct-IP fallback.

When the operating system resolver is blocked or poisoned, the transport
asks a public DoH JSON API for the target's A record and retries the call
against the returned address.

The lookup is ``GET <endpoint>?name=<hostname>&type=A`` with
``Accept: application/dns-json``; the first ``Answer`` record holding an
address supplies it through its ``data`` field::

    {"Status": 0, "Answer": [{"name": "example.com.", "type": 1, "data": "93.184.216.34"}]}

Note:
    Resolution failure is an expected outcome, not an error:
    [DohResolver.resolve()][detour.utils.doh.DohResolver.resolve] returns
    ``None`` for every failure mode. Only ``asyncio.CancelledError``
    propagates.

See Also:
    [ResilientTransport][detour.client.transport.ResilientTransport]: The
        orchestrator that calls the resolver after a network failure.
"""

from __future__ import annotations

import ipaddress
import json
import logging
from collections.abc import Mapping
from typing import Any, Final, Protocol
from urllib.parse import urlencode

from detour.models import RequestOptions

from .classify import describe_error
from .http import Fetcher


DEFAULT_DOH_ENDPOINT: Final[str] = "https://dns.google/resolve"
DEFAULT_DOH_MAX_RESPONSE_SIZE: Final[int] = 64 * 1024

_DOH_OPTIONS: Final[RequestOptions] = RequestOptions(headers={"Accept": "application/dns-json"})

logger = logging.getLogger("utils.doh")


class DiagnosticSink(Protocol):
    """Anything that accepts human-readable status lines."""

    def append(self, message: str) -> None: ...


def is_ip_literal(value: str) -> bool:
    """Whether *value* is an IPv4 or IPv6 address, brackets allowed."""
    try:
        ipaddress.ip_address(value.strip("[]"))
    except ValueError:
        return False
    return True


def parse_doh_answer(payload: Any) -> str | None:
    """Extract the resolved address from a DoH JSON payload.

    Takes the ``data`` of the first ``Answer`` record that holds an IP
    address. Records before it that hold names (the CNAME chain a resolver
    lists ahead of the A record) are skipped.

    Returns:
        The address string, or ``None`` if the payload is not an object,
        has no non-empty ``Answer`` list, or no record carries an address.
    """
    if not isinstance(payload, Mapping):
        return None
    answers = payload.get("Answer")
    if not isinstance(answers, list) or not answers:
        return None
    for record in answers:
        if not isinstance(record, Mapping):
            continue
        data = record.get("data")
        if isinstance(data, str) and is_ip_literal(data.strip()):
            return data.strip()
    return None


class DohResolver:
    """Resolve hostnames to IPv4 addresses through a public DoH API.

    Args:
        fetcher: HTTP primitive used for the lookup.
        endpoint: DoH JSON endpoint (default: Google Public DNS).
        diagnostics: Optional sink receiving the attempt and result lines.
        max_response_size: Size bound for the lookup response body. Enforced
            here as well as by the fetcher, since a substituted fetcher may
            not bound its reads.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        endpoint: str = DEFAULT_DOH_ENDPOINT,
        diagnostics: DiagnosticSink | None = None,
        max_response_size: int = DEFAULT_DOH_MAX_RESPONSE_SIZE,
    ) -> None:
        self._fetcher = fetcher
        self._endpoint = endpoint
        self._diagnostics = diagnostics
        self._max_response_size = max_response_size

    @property
    def endpoint(self) -> str:
        """The DoH endpoint queried by this resolver."""
        return self._endpoint

    def _note(self, message: str) -> None:
        if self._diagnostics is not None:
            self._diagnostics.append(message)

    def lookup_url(self, hostname: str) -> str:
        """Return the DoH query URL for *hostname*."""
        return f"{self._endpoint}?{urlencode({'name': hostname, 'type': 'A'})}"

    async def resolve(self, hostname: str) -> str | None:
        """Resolve *hostname* to an IP address.

        IP literals resolve to themselves without a lookup.

        Returns:
            The first A record's address, or ``None`` if the lookup failed or
            produced no usable answer.
        """
        if is_ip_literal(hostname):
            return hostname.strip("[]")

        self._note(f"resolving {hostname} via DoH")
        try:
            response = await self._fetcher(self.lookup_url(hostname), _DOH_OPTIONS)
        except Exception as e:  # noqa: BLE001  # Intentionally broad: resolution failure is an outcome
            logger.debug("doh_lookup_failed host=%s error=%s", hostname, describe_error(e))
            self._note(f"no DoH answer for {hostname}: lookup failed ({type(e).__name__})")
            return None

        if not response.ok:
            self._note(f"no DoH answer for {hostname}: status {response.status}")
            return None
        if len(response.body) > self._max_response_size:
            self._note(f"no DoH answer for {hostname}: response too large")
            return None

        try:
            payload = json.loads(response.body)
        except ValueError:
            self._note(f"no DoH answer for {hostname}: malformed response")
            return None

        ip = parse_doh_answer(payload)
        if ip is None:
            self._note(f"no DoH answer for {hostname}: empty answer")
            return None

        logger.debug("doh_resolved host=%s ip=%s", hostname, ip)
        self._note(f"resolved {hostname} -> {ip}")
        return ip
