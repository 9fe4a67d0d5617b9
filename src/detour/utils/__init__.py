"""Network helpers: HTTP primitive, failure classification, DoH, and relays.

The utils layer depends only on [detour.models][detour.models]. It never
imports ``detour.core`` or ``detour.client``; components that need a
diagnostic trail accept any object with an ``append(message)`` method.

Attributes:
    http: ``Fetcher`` contract and its ``aiohttp`` implementation, with
        bounded body reads.
    classify: Ordered signature tables deciding whether a failure is
        network-layer (fallback-eligible) or application-level.
    doh: DNS-over-HTTPS resolver used by the direct-IP fallback.
    relays: Relay rewrite strategies, the default relay chain, and the
        credential-in-query convention.
"""

from .classify import (
    MESSAGE_SIGNATURES,
    STRUCTURED_SIGNATURES,
    classify_failure,
    describe_error,
    is_network_failure,
)
from .doh import (
    DEFAULT_DOH_ENDPOINT,
    DiagnosticSink,
    DohResolver,
    is_ip_literal,
    parse_doh_answer,
)
from .http import DEFAULT_MAX_RESPONSE_SIZE, AiohttpFetcher, Fetcher, join_headers, read_bounded
from .relays import (
    DEFAULT_RELAY_CHAIN,
    PathSuffixRelay,
    QueryParamRelay,
    RelayChain,
    RelayStrategy,
    append_credential,
    encode_uri_component,
)


__all__ = [
    "DEFAULT_DOH_ENDPOINT",
    "DEFAULT_MAX_RESPONSE_SIZE",
    "DEFAULT_RELAY_CHAIN",
    "MESSAGE_SIGNATURES",
    "STRUCTURED_SIGNATURES",
    "AiohttpFetcher",
    "DiagnosticSink",
    "DohResolver",
    "Fetcher",
    "PathSuffixRelay",
    "QueryParamRelay",
    "RelayChain",
    "RelayStrategy",
    "append_credential",
    "classify_failure",
    "describe_error",
    "encode_uri_component",
    "is_ip_literal",
    "is_network_failure",
    "join_headers",
    "parse_doh_answer",
    "read_bounded",
]
