"""Public relay chain used as the last fallback stage.

A relay strategy maps an origin URL to an alternate URL routed through a
public CORS/relay proxy. The chain is an ordered, immutable collection of
strategies; the transport walks it in declaration order and stops at the
first 2xx answer.

Strategies satisfy the ``RelayStrategy`` protocol (a ``host`` and a single
``rewrite()`` operation), so tests and host applications can build their own
chains without touching the orchestration logic.

Some relays strip custom headers such as ``apikey`` or ``Authorization``.
[append_credential()][detour.utils.relays.append_credential] moves the
credential into the query string of the origin URL *before* the rewrite so
that it survives the relay.

Warning:
    A credential in a query string is visible to the relay operator and may
    end up in its access logs. Only use it with credentials meant to be
    public (for example an anonymous API key).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Final, Protocol, overload, runtime_checkable
from urllib.parse import quote, urlencode, urlsplit


# Characters encodeURIComponent leaves untouched besides alphanumerics
_URI_COMPONENT_SAFE: Final[str] = "-_.!~*'()"


def encode_uri_component(value: str) -> str:
    """Percent-encode *value* the way browsers encode a URI component."""
    return quote(value, safe=_URI_COMPONENT_SAFE)


@runtime_checkable
class RelayStrategy(Protocol):
    """A URL rewrite that routes a request through one relay host."""

    @property
    def host(self) -> str: ...

    def rewrite(self, url: str) -> str: ...


@dataclass(frozen=True, slots=True)
class QueryParamRelay:
    """Relay that takes the origin URL as a query parameter.

    Produces ``<base>?<param>=<url>``, percent-encoding the URL unless
    ``encode`` is False.
    """

    base: str
    param: str = "url"
    encode: bool = True

    def __post_init__(self) -> None:
        if not urlsplit(self.base).hostname:
            raise ValueError(f"relay base must be an absolute URL, got {self.base!r}")
        if not self.param:
            raise ValueError("relay param must not be empty")

    @property
    def host(self) -> str:
        return urlsplit(self.base).hostname or ""

    def rewrite(self, url: str) -> str:
        value = encode_uri_component(url) if self.encode else url
        return f"{self.base}?{self.param}={value}"


@dataclass(frozen=True, slots=True)
class PathSuffixRelay:
    """Relay that takes the raw origin URL appended to its path.

    Produces ``<base><url>``.
    """

    base: str

    def __post_init__(self) -> None:
        if not urlsplit(self.base).hostname:
            raise ValueError(f"relay base must be an absolute URL, got {self.base!r}")

    @property
    def host(self) -> str:
        return urlsplit(self.base).hostname or ""

    def rewrite(self, url: str) -> str:
        return f"{self.base}{url}"


class RelayChain(Sequence[RelayStrategy]):
    """Immutable ordered list of relay strategies.

    Priority is the list index: iteration always yields strategies in
    declaration order.

    Raises:
        TypeError: If an element does not satisfy ``RelayStrategy``.
    """

    __slots__ = ("_strategies",)

    def __init__(self, strategies: Iterable[RelayStrategy]) -> None:
        items = tuple(strategies)
        for i, strategy in enumerate(items):
            if not isinstance(strategy, RelayStrategy):
                raise TypeError(f"relay {i} does not implement RelayStrategy: {strategy!r}")
        self._strategies: tuple[RelayStrategy, ...] = items

    @overload
    def __getitem__(self, index: int) -> RelayStrategy: ...

    @overload
    def __getitem__(self, index: slice) -> RelayChain: ...

    def __getitem__(self, index: int | slice) -> RelayStrategy | RelayChain:
        if isinstance(index, slice):
            return RelayChain(self._strategies[index])
        return self._strategies[index]

    def __len__(self) -> int:
        return len(self._strategies)

    def __iter__(self) -> Iterator[RelayStrategy]:
        return iter(self._strategies)

    def __repr__(self) -> str:
        return f"RelayChain({list(self.hosts)!r})"

    @property
    def hosts(self) -> tuple[str, ...]:
        """Relay hosts in priority order."""
        return tuple(strategy.host for strategy in self._strategies)

    def rewrite(self, index: int, url: str) -> str:
        """Return *url* rewritten by the strategy at *index*."""
        return self._strategies[index].rewrite(url)


def append_credential(url: str, credential: str, param: str = "apikey") -> str:
    """Append ``param=credential`` to the query string of *url*.

    Uses ``&`` when *url* already carries a query, ``?`` otherwise. The URL
    fragment, if any, stays at the end.
    """
    base, hash_mark, fragment = url.partition("#")
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode({param: credential})}{hash_mark}{fragment}"


DEFAULT_RELAY_CHAIN: Final[RelayChain] = RelayChain(
    (
        QueryParamRelay("https://api.allorigins.win/raw", "url"),
        QueryParamRelay("https://corsproxy.io/", "url"),
        QueryParamRelay("https://api.codetabs.com/v1/proxy", "quest"),
        PathSuffixRelay("https://thingproxy.freeboard.io/fetch/"),
    )
)
