"""HTTP primitive used by the transport.

Defines the ``Fetcher`` contract -- an async callable taking a URL and a
[RequestOptions][detour.models.request.RequestOptions] and returning a
[FetchResponse][detour.models.response.FetchResponse] -- and its default
``aiohttp`` implementation. Every stage of the fallback sequence (direct
call, DoH lookup, direct-IP retry, relays) goes through a ``Fetcher``, so
tests and host applications can substitute their own.

Response bodies are read with a size bound to prevent memory exhaustion from
oversized payloads.

Note:
    This module sits in the ``utils`` layer and depends only on
    ``detour.models`` and ``aiohttp``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from types import TracebackType
from typing import Any, Final, Self, TypeAlias

import aiohttp

from detour.models import FetchResponse, RequestOptions


DEFAULT_MAX_RESPONSE_SIZE: Final[int] = 10 * 1024 * 1024

Fetcher: TypeAlias = Callable[[str, RequestOptions], Awaitable[FetchResponse]]


def join_headers(items: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Collapse a multi-valued header list into one value per name.

    Repeated names (compared case-insensitively) are joined with ``", "``
    under the first spelling seen.
    """
    joined: dict[str, str] = {}
    names: dict[str, str] = {}
    for key, value in items:
        name = names.setdefault(key.lower(), key)
        joined[name] = f"{joined[name]}, {value}" if name in joined else value
    return joined


async def read_bounded(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Read an entire response body with size enforcement.

    Accumulates chunks from the response stream until EOF or the size limit
    is exceeded. Unlike a single ``response.content.read(n)`` call, this
    correctly handles chunked transfer-encoding where a single read may
    return fewer bytes than requested even when more data is available.

    Args:
        response: An aiohttp response whose body has not yet been consumed.
        max_size: Maximum allowed response body size in bytes.

    Returns:
        The complete response body as bytes.

    Raises:
        ValueError: If the response body exceeds *max_size*.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


class AiohttpFetcher:
    """``Fetcher`` backed by an ``aiohttp.ClientSession``.

    The session is created lazily on first use inside the running event
    loop, unless one is supplied, and keeps no cookies between calls. A
    supplied session is never closed by the fetcher; a self-created one is
    closed by [close()][detour.utils.http.AiohttpFetcher.close] or on
    context exit.

    Non-2xx statuses are returned as ordinary
    [FetchResponse][detour.models.response.FetchResponse] values. Network
    failures propagate as the ``aiohttp``/``OSError`` exceptions raised by
    the session, unchanged.

    Args:
        session: Optional externally managed session.
        timeout: Optional per-request total timeout in seconds. ``None``
            leaves the request unbounded.
        max_response_size: Maximum body size in bytes.

    Examples:
        ```python
        async with AiohttpFetcher() as fetch:
            response = await fetch("https://example.com", RequestOptions())
        ```
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        timeout: float | None = None,  # noqa: ASYNC109
        max_response_size: int = DEFAULT_MAX_RESPONSE_SIZE,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self._max_response_size = max_response_size

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
            self._owns_session = True
        return self._session

    async def __call__(self, url: str, options: RequestOptions) -> FetchResponse:
        """Issue one request and read its body.

        Raises:
            aiohttp.ClientError: On connection, TLS, or protocol failures.
            TimeoutError: If *timeout* elapses.
            ValueError: If the body exceeds *max_response_size*.
        """
        kwargs: dict[str, Any] = {}
        if self._timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self._timeout)
        if options.server_hostname is not None and url.lower().startswith("https://"):
            kwargs["server_hostname"] = options.server_hostname

        session = self._get_session()
        async with session.request(
            options.method,
            url,
            headers=dict(options.headers),
            data=options.body,
            **kwargs,
        ) as response:
            body = await read_bounded(response, self._max_response_size)
            return FetchResponse(
                status=response.status,
                headers=join_headers(response.headers.items()),
                body=body,
                url=str(response.url),
            )

    async def close(self) -> None:
        """Close the session if this fetcher created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
