"""
Unit tests for client.transport module.

Tests:
- Direct success and non-2xx passthrough
- Application failures returned without fallbacks
- Direct-IP retry request shape (IP URL, Host header, TLS server name)
- Relay chain order, first-success stop, credential propagation
- Exhaustion re-raising the original error
- CallOutcome bookkeeping (stage, attempts, relay_index)
- Metrics, factory methods, and fetcher ownership
"""

import asyncio
import ssl
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import quote, urlsplit

import aiohttp
import pytest
from conftest import ORIGIN, ORIGIN_HOST, RESOLVED_IP, ScriptedFetcher, doh_payload, response

from detour.client.configs import TransportConfig
from detour.client.transport import ResilientTransport, _ip_url
from detour.core.diagnostics import DiagnosticLog
from detour.core.exceptions import ConfigurationError
from detour.models import RequestOptions, TransportState
from detour.utils.relays import DEFAULT_RELAY_CHAIN, QueryParamRelay, RelayChain


DOH_OK = response(200, doh_payload(RESOLVED_IP), url="https://dns.google/resolve")
DOH_EMPTY = response(200, doh_payload(status=3), url="https://dns.google/resolve")
RELAY_HOSTS = DEFAULT_RELAY_CHAIN.hosts


def _routes(origin: object, *, doh: object = DOH_EMPTY, ip: object = None, **relays: object):
    """Build routes with fallback needles ahead of the origin needle.

    Relay results are keyword arguments named after a distinctive fragment of
    each relay host (allorigins, corsproxy, codetabs, thingproxy); missing
    relays answer 503.
    """
    routes: list[tuple[str, object]] = [("dns.google", doh)]
    if ip is not None:
        routes.append((RESOLVED_IP, ip))
    for needle in ("allorigins", "corsproxy", "codetabs", "thingproxy"):
        routes.append((needle, relays.get(needle, response(503, b"busy"))))
    routes.append((ORIGIN_HOST, origin))
    return routes


def _transport(
    fetcher: ScriptedFetcher, diagnostics: DiagnosticLog | None = None, **kwargs: object
) -> ResilientTransport:
    return ResilientTransport(fetcher=fetcher, diagnostics=diagnostics, **kwargs)  # type: ignore[arg-type]


def _messages(log: DiagnosticLog) -> list[str]:
    return [entry.message for entry in log.snapshot()]


def _tls_error() -> aiohttp.ClientConnectorError:
    return aiohttp.ClientConnectorError(MagicMock(), ssl.SSLError(1, "certificate verify failed"))


class _UnprintableReset(ConnectionResetError):
    """A network error whose message cannot be rendered."""

    def __str__(self) -> str:
        raise RuntimeError("cannot render")


# =============================================================================
# Direct Stage
# =============================================================================


class TestDirect:
    """Tests for calls answered by the direct attempt."""

    async def test_success_makes_one_call_and_no_log(self, diagnostics: DiagnosticLog) -> None:
        ok = response(200, b"[]")
        fetcher = ScriptedFetcher(_routes(ok))
        outcome = await _transport(fetcher, diagnostics).attempt(ORIGIN)

        assert outcome.state is TransportState.SUCCEEDED
        assert outcome.stage is TransportState.DIRECT
        assert outcome.response is ok
        assert outcome.attempts == 1
        assert fetcher.urls == [ORIGIN]
        assert len(diagnostics) == 0

    async def test_non_2xx_returned_unchanged(self, diagnostics: DiagnosticLog) -> None:
        """A server answer is never retried, whatever its status."""
        not_found = response(404, b'{"error": "missing"}')
        fetcher = ScriptedFetcher(_routes(not_found))

        result = await _transport(fetcher, diagnostics).fetch(ORIGIN)

        assert result is not_found
        assert fetcher.urls == [ORIGIN]
        assert len(diagnostics) == 0

    async def test_options_forwarded_untouched(self) -> None:
        fetcher = ScriptedFetcher(_routes(response()))
        options = RequestOptions(method="POST", headers={"apikey": "k"}, body=b"{}")

        await _transport(fetcher).fetch(ORIGIN, options)

        assert fetcher.calls[0][1] is options

    async def test_default_options(self) -> None:
        fetcher = ScriptedFetcher(_routes(response()))
        await _transport(fetcher).fetch(ORIGIN)
        assert fetcher.calls[0][1] == RequestOptions()

    async def test_callable_alias(self) -> None:
        ok = response()
        transport = _transport(ScriptedFetcher(_routes(ok)))
        assert await transport(ORIGIN) is ok


# =============================================================================
# Application Failures
# =============================================================================


class TestApplicationFailure:
    """Tests for failures that are not network-layer."""

    async def test_reraised_without_fallbacks(self, diagnostics: DiagnosticLog) -> None:
        error = ValueError("invalid request body")
        fetcher = ScriptedFetcher(_routes(error))

        with pytest.raises(ValueError) as exc_info:
            await _transport(fetcher, diagnostics).fetch(ORIGIN)

        assert exc_info.value is error
        assert fetcher.urls == [ORIGIN]
        assert _messages(diagnostics) == ["fetch failed: ValueError - invalid request body"]

    async def test_response_error_not_retried(self, diagnostics: DiagnosticLog) -> None:
        error = aiohttp.ClientResponseError(request_info=MagicMock(), history=(), status=401)
        fetcher = ScriptedFetcher(_routes(error))

        outcome = await _transport(fetcher, diagnostics).attempt(ORIGIN)

        assert outcome.state is TransportState.FAILED
        assert outcome.error is error
        assert outcome.attempts == 1
        assert outcome.stage is TransportState.CLASSIFY_FAILURE
        assert len(fetcher.calls) == 1
        assert len(diagnostics) == 1

    async def test_cancellation_propagates(self) -> None:
        fetcher = ScriptedFetcher(_routes(asyncio.CancelledError()))
        with pytest.raises(asyncio.CancelledError):
            await _transport(fetcher).fetch(ORIGIN)
        assert len(fetcher.calls) == 1


# =============================================================================
# Direct-IP Retry
# =============================================================================


class TestDirectIpRetry:
    """Tests for the DoH-resolved direct-IP stage."""

    async def test_request_shape(self) -> None:
        ok = response(200, b"[]")
        options = RequestOptions(method="POST", headers={"apikey": "k"}, body=b"{}")
        fetcher = ScriptedFetcher(_routes(ConnectionResetError("reset"), doh=DOH_OK, ip=ok))

        outcome = await _transport(fetcher).attempt(ORIGIN, options)

        assert outcome.response is ok
        assert outcome.stage is TransportState.DIRECT_IP_RETRY
        assert outcome.attempts == 2
        assert fetcher.urls == [
            ORIGIN,
            f"https://dns.google/resolve?name={ORIGIN_HOST}&type=A",
            f"https://{RESOLVED_IP}/rest/v1/leads?select=*",
        ]
        ip_options = fetcher.calls[2][1]
        assert ip_options.method == "POST"
        assert ip_options.body == b"{}"
        assert ip_options.headers["apikey"] == "k"
        assert ip_options.headers["Host"] == ORIGIN_HOST
        assert ip_options.server_hostname == ORIGIN_HOST

    async def test_port_preserved(self) -> None:
        url = "https://api.example.com:8443/v1"
        fetcher = ScriptedFetcher(_routes(TimeoutError(), doh=DOH_OK, ip=response()))

        await _transport(fetcher).fetch(url)

        assert fetcher.urls[2] == f"https://{RESOLVED_IP}:8443/v1"
        assert fetcher.calls[2][1].headers["Host"] == "api.example.com:8443"

    async def test_non_2xx_falls_through_to_relays(self, diagnostics: DiagnosticLog) -> None:
        relay_ok = response(200, b"[]")
        fetcher = ScriptedFetcher(
            _routes(
                TimeoutError(), doh=DOH_OK, ip=response(403, b"forbidden"), allorigins=relay_ok
            )
        )

        outcome = await _transport(fetcher, diagnostics).attempt(ORIGIN)

        assert outcome.response is relay_ok
        assert outcome.stage is TransportState.RELAY_RETRY
        assert "direct-IP retry returned 403" in _messages(diagnostics)

    async def test_raised_falls_through_to_relays(self, diagnostics: DiagnosticLog) -> None:
        relay_ok = response()
        fetcher = ScriptedFetcher(
            _routes(
                TimeoutError(),
                doh=DOH_OK,
                ip=_tls_error(),
                allorigins=relay_ok,
            )
        )

        assert await _transport(fetcher, diagnostics).fetch(ORIGIN) is relay_ok
        assert any(m.startswith("direct-IP retry failed: ") for m in _messages(diagnostics))

    async def test_no_address_skips_ip_call(self, diagnostics: DiagnosticLog) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError(), allorigins=response()))

        outcome = await _transport(fetcher, diagnostics).attempt(ORIGIN)

        assert not any(RESOLVED_IP in url for url in fetcher.urls)
        assert outcome.attempts == 2
        assert f"no DoH answer for {ORIGIN_HOST}: empty answer" in _messages(diagnostics)

    async def test_ip_origin_skips_retry(self, diagnostics: DiagnosticLog) -> None:
        """An origin given by address goes straight to the relays."""
        url = f"https://{RESOLVED_IP}/v1"
        fetcher = ScriptedFetcher(
            [
                ("allorigins", response()),
                (RESOLVED_IP, ConnectionRefusedError(111, "refused")),
            ]
        )

        outcome = await _transport(fetcher, diagnostics).attempt(url)

        assert not any("dns.google" in u for u in fetcher.urls)
        assert fetcher.urls == [url, DEFAULT_RELAY_CHAIN[0].rewrite(url)]
        assert outcome.stage is TransportState.RELAY_RETRY
        assert outcome.relay_index == 0
        assert outcome.attempts == 2
        assert _messages(diagnostics)[1] == f"{RESOLVED_IP} is an address; skipping direct-IP retry"

    async def test_ipv6_origin_skips_retry(self, diagnostics: DiagnosticLog) -> None:
        url = "https://[2001:db8::1]/v1"
        fetcher = ScriptedFetcher([("allorigins", response()), ("2001:db8::1", TimeoutError())])

        outcome = await _transport(fetcher, diagnostics).attempt(url)

        assert len(fetcher.urls) == 2
        assert outcome.stage is TransportState.RELAY_RETRY
        assert "2001:db8::1 is an address; skipping direct-IP retry" in _messages(diagnostics)

    async def test_custom_resolver(self) -> None:
        resolver = MagicMock()
        resolver.resolve = AsyncMock(return_value="10.1.2.3")
        fetcher = ScriptedFetcher([("10.1.2.3", response()), (ORIGIN_HOST, TimeoutError())])

        outcome = await _transport(fetcher, resolver=resolver).attempt(ORIGIN)

        resolver.resolve.assert_awaited_once_with(ORIGIN_HOST)
        assert outcome.stage is TransportState.DIRECT_IP_RETRY


# =============================================================================
# Relay Retry
# =============================================================================


class TestRelayRetry:
    """Tests for the relay stage."""

    async def test_walks_chain_in_order(self, diagnostics: DiagnosticLog) -> None:
        thing_ok = response()
        fetcher = ScriptedFetcher(
            _routes(
                TimeoutError(),
                allorigins=TimeoutError(),
                corsproxy=response(500, b""),
                codetabs=response(404, b""),
                thingproxy=thing_ok,
            )
        )

        outcome = await _transport(fetcher, diagnostics).attempt(ORIGIN)

        relay_urls = fetcher.urls[2:]
        assert [next(h for h in RELAY_HOSTS if h in u) for u in relay_urls] == list(RELAY_HOSTS)
        assert outcome.response is thing_ok
        assert outcome.relay_index == 3
        assert outcome.attempts == 5

    async def test_first_success_stops(self) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError(), corsproxy=response()))

        outcome = await _transport(fetcher).attempt(ORIGIN)

        assert outcome.relay_index == 1
        assert not any("codetabs" in u or "thingproxy" in u for u in fetcher.urls)

    async def test_relay_urls(self) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError()))
        await _transport(fetcher).attempt(ORIGIN)

        encoded = quote(ORIGIN, safe="-_.!~*'()")
        assert fetcher.urls[2:] == [
            f"https://api.allorigins.win/raw?url={encoded}",
            f"https://corsproxy.io/?url={encoded}",
            f"https://api.codetabs.com/v1/proxy?quest={encoded}",
            f"https://thingproxy.freeboard.io/fetch/{ORIGIN}",
        ]

    async def test_relay_keeps_caller_options(self) -> None:
        options = RequestOptions(headers={"apikey": "k"})
        fetcher = ScriptedFetcher(_routes(TimeoutError(), allorigins=response()))

        await _transport(fetcher).fetch(ORIGIN, options)

        assert fetcher.calls[-1][1] is options

    async def test_reordered_chain(self) -> None:
        """The chain order alone decides relay priority."""
        chain = RelayChain(reversed(list(DEFAULT_RELAY_CHAIN)))
        fetcher = ScriptedFetcher(_routes(TimeoutError(), allorigins=response()))

        outcome = await _transport(fetcher, relays=chain).attempt(ORIGIN)

        assert "thingproxy" in fetcher.urls[2]
        assert "allorigins" in fetcher.urls[-1]
        assert outcome.relay_index == 3

    async def test_custom_single_relay(self) -> None:
        chain = RelayChain([QueryParamRelay("https://relay.internal/fetch")])
        fetcher = ScriptedFetcher(
            [
                ("dns.google", DOH_EMPTY),
                ("relay.internal", response()),
                (ORIGIN_HOST, TimeoutError()),
            ]
        )

        outcome = await _transport(fetcher, relays=chain).attempt(ORIGIN)

        assert outcome.stage is TransportState.RELAY_RETRY
        assert outcome.relay_index == 0

    async def test_relay_lines(self, diagnostics: DiagnosticLog) -> None:
        fetcher = ScriptedFetcher(
            _routes(TimeoutError(), allorigins=OSError("unreachable"), corsproxy=response())
        )
        await _transport(fetcher, diagnostics).fetch(ORIGIN)

        assert _messages(diagnostics)[-4:] == [
            "trying relay api.allorigins.win",
            "relay api.allorigins.win failed: unreachable",
            "trying relay corsproxy.io",
            "relay corsproxy.io succeeded",
        ]


class TestCredential:
    """Tests for credential propagation to relays."""

    async def test_appended_before_rewrite(self) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError(), thingproxy=response()))

        await _transport(fetcher, credential="anon-key").fetch(ORIGIN)

        assert fetcher.urls[-1] == f"https://thingproxy.freeboard.io/fetch/{ORIGIN}&apikey=anon-key"
        assert quote(f"{ORIGIN}&apikey=anon-key", safe="-_.!~*'()") in fetcher.urls[2]

    async def test_not_appended_to_direct_or_ip(self) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError(), doh=DOH_OK, ip=response()))

        await _transport(fetcher, credential="anon-key").fetch(ORIGIN)

        assert "anon-key" not in fetcher.urls[0]
        assert "anon-key" not in fetcher.urls[2]

    async def test_loaded_from_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DETOUR_API_KEY", "env-key")
        config = TransportConfig(credential={"param": "key"})
        fetcher = ScriptedFetcher(_routes(TimeoutError(), thingproxy=response()))

        await ResilientTransport(config, fetcher=fetcher).fetch(ORIGIN)

        assert fetcher.urls[-1].endswith("&key=env-key")

    async def test_absent_by_default(self) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError(), thingproxy=response()))
        await _transport(fetcher).fetch(ORIGIN)
        assert fetcher.urls[-1] == f"https://thingproxy.freeboard.io/fetch/{ORIGIN}"


# =============================================================================
# Exhaustion
# =============================================================================


class TestExhaustion:
    """Tests for the all-fallbacks-failed path."""

    async def test_original_error_reraised(self, diagnostics: DiagnosticLog) -> None:
        original = aiohttp.ClientConnectorError(MagicMock(), OSError(101, "Network is unreachable"))
        fetcher = ScriptedFetcher(
            _routes(original, doh=TimeoutError(), allorigins=ConnectionResetError("r"))
        )

        with pytest.raises(aiohttp.ClientConnectorError) as exc_info:
            await _transport(fetcher, diagnostics).fetch(ORIGIN)

        assert exc_info.value is original
        assert _messages(diagnostics)[-1] == "all connection attempts failed"

    async def test_outcome(self) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError(), doh=DOH_OK, ip=TimeoutError()))

        outcome = await _transport(fetcher).attempt(ORIGIN)

        assert outcome.state is TransportState.FAILED
        assert outcome.stage is None
        assert outcome.attempts == 6
        assert len(fetcher.calls) == 7  # including the DoH lookup

    async def test_unprintable_error_reraised(self, diagnostics: DiagnosticLog) -> None:
        original = _UnprintableReset()
        fetcher = ScriptedFetcher(_routes(original))

        with pytest.raises(_UnprintableReset) as exc_info:
            await _transport(fetcher, diagnostics).fetch(ORIGIN)

        assert exc_info.value is original
        assert _messages(diagnostics)[0] == "fetch failed: _UnprintableReset - _UnprintableReset"
        assert _messages(diagnostics)[-1] == "all connection attempts failed"

    async def test_unprintable_relay_error_moves_on(self, diagnostics: DiagnosticLog) -> None:
        fetcher = ScriptedFetcher(
            _routes(TimeoutError(), allorigins=_UnprintableReset(), corsproxy=response())
        )

        outcome = await _transport(fetcher, diagnostics).attempt(ORIGIN)

        assert outcome.relay_index == 1
        assert "relay api.allorigins.win failed: _UnprintableReset" in _messages(diagnostics)

    async def test_empty_chain(self, diagnostics: DiagnosticLog) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError()))

        outcome = await _transport(fetcher, diagnostics, relays=RelayChain([])).attempt(ORIGIN)

        assert outcome.state is TransportState.FAILED
        assert outcome.attempts == 1
        assert _messages(diagnostics)[-1] == "all connection attempts failed"

    async def test_calls_are_independent(self, diagnostics: DiagnosticLog) -> None:
        """A failed call leaves nothing behind that affects the next one."""
        state = {"down": True}

        def origin(url: str, options: RequestOptions) -> object:
            if state["down"]:
                raise TimeoutError()
            return response()

        fetcher = ScriptedFetcher(_routes(origin))
        transport = _transport(fetcher, diagnostics)

        assert (await transport.attempt(ORIGIN)).state is TransportState.FAILED
        state["down"] = False
        calls_before = len(fetcher.calls)
        outcome = await transport.attempt(ORIGIN)

        assert outcome.stage is TransportState.DIRECT
        assert len(fetcher.calls) == calls_before + 1


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    """Tests for concurrent calls sharing one transport."""

    async def test_concurrent_calls_share_log(self, diagnostics: DiagnosticLog) -> None:
        fetcher = ScriptedFetcher(_routes(TimeoutError(), allorigins=response()))
        transport = _transport(fetcher, diagnostics)

        outcomes = await asyncio.gather(*(transport.attempt(ORIGIN) for _ in range(5)))

        assert all(o.relay_index == 0 for o in outcomes)
        assert _messages(diagnostics).count("relay api.allorigins.win succeeded") == 5


# =============================================================================
# Metrics
# =============================================================================


class TestMetrics:
    """Tests for Prometheus recording."""

    async def test_disabled_records_nothing(self) -> None:
        fetcher = ScriptedFetcher(_routes(response()))
        with patch("detour.client.transport.ATTEMPTS_TOTAL") as attempts:
            await _transport(fetcher).fetch(ORIGIN)
        attempts.labels.assert_not_called()

    async def test_enabled_records_attempts_and_call(self) -> None:
        config = TransportConfig(metrics={"enabled": True})
        fetcher = ScriptedFetcher(_routes(TimeoutError(), corsproxy=response()))

        with (
            patch("detour.client.transport.ATTEMPTS_TOTAL") as attempts,
            patch("detour.client.transport.CALLS_TOTAL") as calls,
            patch("detour.client.transport.CALL_DURATION_SECONDS") as duration,
        ):
            await ResilientTransport(config, fetcher=fetcher).fetch(ORIGIN)

        recorded = [(c.kwargs["stage"], c.kwargs["outcome"]) for c in attempts.labels.call_args_list]
        assert recorded == [
            (TransportState.DIRECT, "error"),
            (TransportState.RELAY_RETRY, "status"),
            (TransportState.RELAY_RETRY, "ok"),
        ]
        calls.labels.assert_called_once_with(state=TransportState.SUCCEEDED, stage="relay_retry")
        duration.observe.assert_called_once()

    async def test_application_failure_labelled_by_classification(self) -> None:
        config = TransportConfig(metrics={"enabled": True})
        fetcher = ScriptedFetcher(_routes(ValueError("bad body")))

        with (
            patch("detour.client.transport.ATTEMPTS_TOTAL"),
            patch("detour.client.transport.CALLS_TOTAL") as calls,
            patch("detour.client.transport.CALL_DURATION_SECONDS"),
        ):
            await ResilientTransport(config, fetcher=fetcher).attempt(ORIGIN)

        calls.labels.assert_called_once_with(state=TransportState.FAILED, stage="classify_failure")


# =============================================================================
# Construction and Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for factories, properties, and fetcher ownership."""

    def test_default_diagnostics_sized_by_config(self) -> None:
        transport = ResilientTransport(TransportConfig(diagnostics={"capacity": 7}))
        assert transport.diagnostics.capacity == 7

    def test_properties(self) -> None:
        config = TransportConfig()
        transport = ResilientTransport(config)
        assert transport.config is config
        assert transport.relays is DEFAULT_RELAY_CHAIN

    def test_from_dict(self) -> None:
        transport = ResilientTransport.from_dict({"attempt_timeout": 5})
        assert transport.config.attempt_timeout == 5.0

    def test_from_dict_invalid(self) -> None:
        with pytest.raises(ConfigurationError):
            ResilientTransport.from_dict({"diagnostics": {"capacity": 0}})

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "detour.yaml"
        path.write_text("json_logs: true\n")
        assert ResilientTransport.from_yaml(str(path)).config.json_logs is True

    async def test_owned_fetcher_closed(self) -> None:
        transport = ResilientTransport()
        with patch.object(transport._owned_fetcher, "close", new=AsyncMock()) as close:
            async with transport:
                pass
        close.assert_awaited_once()

    async def test_injected_fetcher_not_closed(self) -> None:
        fetcher = ScriptedFetcher([])
        async with _transport(fetcher) as transport:
            assert transport._owned_fetcher is None

    def test_owned_fetcher_uses_config(self) -> None:
        transport = ResilientTransport(TransportConfig(attempt_timeout=3, max_response_size=2048))
        assert transport._owned_fetcher is not None
        assert transport._owned_fetcher._timeout == 3.0
        assert transport._owned_fetcher._max_response_size == 2048


# =============================================================================
# _ip_url()
# =============================================================================


class TestIpUrl:
    """Tests for rebuilding the origin URL around a resolved address."""

    def test_ipv4(self) -> None:
        assert _ip_url(urlsplit(ORIGIN), RESOLVED_IP) == f"https://{RESOLVED_IP}/rest/v1/leads?select=*"

    def test_ipv6_bracketed(self) -> None:
        assert _ip_url(urlsplit("https://a.test:8443/x"), "2001:db8::1") == "https://[2001:db8::1]:8443/x"

    def test_userinfo_kept(self) -> None:
        assert _ip_url(urlsplit("https://u:p@a.test/x#f"), "10.0.0.1") == "https://u:p@10.0.0.1/x#f"
