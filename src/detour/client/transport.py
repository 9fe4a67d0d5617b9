"""
Resilient drop-in replacement for the outbound HTTP primitive.

[ResilientTransport][detour.client.transport.ResilientTransport] issues a
call exactly as the caller described it and, only when that call fails at
the network layer, walks a fixed fallback sequence:

```text
DIRECT ──ok──────────────────────────────────────────────► SUCCEEDED
  │ raised
  ▼
CLASSIFY_FAILURE ──application failure──────────────────► FAILED (original error)
  │ network failure
  ▼
DIRECT_IP_RETRY (DoH lookup, call the IP with Host header) ──2xx──► SUCCEEDED
  │ IP origin / no address / non-2xx / raised
  ▼
RELAY_RETRY(0) ... RELAY_RETRY(n-1) ──first 2xx──────────► SUCCEEDED
  │ all exhausted
  ▼
FAILED (original DIRECT error re-raised)
```

Attempts are strictly sequential: at most one network request is in flight
per call, and a success at any stage ends the call with no further
attempts. Every failure, lookup, and fallback outcome appends one line to
the [DiagnosticLog][detour.core.diagnostics.DiagnosticLog]; a direct call
that returns needs no line.

Note:
    Fallback failures are diagnostic only. When everything fails, the very
    exception object raised by the direct call is re-raised so the root
    cause stays visible.

    There is no overall deadline. ``attempt_timeout`` bounds each network
    attempt when configured; otherwise a stalled attempt holds the call
    until the caller cancels it. ``asyncio.CancelledError`` is never caught.

Examples:
    ```python
    async with ResilientTransport() as transport:
        response = await transport.fetch(
            "https://xyz.supabase.co/rest/v1/leads",
            RequestOptions(headers={"apikey": key}),
        )
        print(response.status, transport.diagnostics.lines())
    ```
"""

from __future__ import annotations

import time
from types import TracebackType
from typing import Any, Self
from urllib.parse import SplitResult, urlsplit, urlunsplit

from detour.core.diagnostics import DiagnosticLog
from detour.core.logger import Logger
from detour.core.metrics import ATTEMPTS_TOTAL, CALL_DURATION_SECONDS, CALLS_TOTAL
from detour.core.yaml import load_yaml
from detour.models import CallOutcome, FetchResponse, RequestOptions, TransportState
from detour.utils.classify import classify_failure, describe_error
from detour.utils.doh import DohResolver, is_ip_literal
from detour.utils.http import AiohttpFetcher, Fetcher
from detour.utils.relays import DEFAULT_RELAY_CHAIN, RelayChain, append_credential

from .configs import TransportConfig


def _ip_url(parts: SplitResult, ip: str) -> str:
    """Rebuild a split URL with its host replaced by *ip*, keeping port and userinfo."""
    host = f"[{ip}]" if ":" in ip else ip
    netloc = host if parts.port is None else f"{host}:{parts.port}"
    userinfo, at, _ = parts.netloc.rpartition("@")
    if at:
        netloc = f"{userinfo}@{netloc}"
    return urlunsplit(parts._replace(netloc=netloc))


class ResilientTransport:
    """Fallback-sequencing HTTP transport.

    Args:
        config: Transport configuration (defaults to
            [TransportConfig()][detour.client.configs.TransportConfig]).
        fetcher: HTTP primitive used for every attempt. Defaults to an
            [AiohttpFetcher][detour.utils.http.AiohttpFetcher] owned (and
            closed) by this transport.
        diagnostics: Diagnostic trail to append to. Defaults to a new
            [DiagnosticLog][detour.core.diagnostics.DiagnosticLog] sized by
            ``config.diagnostics.capacity``; pass
            [get_default_log()][detour.core.diagnostics.get_default_log] to
            share one trail across transports.
        resolver: Direct-IP resolver. Defaults to a
            [DohResolver][detour.utils.doh.DohResolver] using *fetcher*.
        relays: Relay chain walked in order (default:
            [DEFAULT_RELAY_CHAIN][detour.utils.relays.DEFAULT_RELAY_CHAIN]).
        credential: Credential appended to relayed URLs. Overrides the
            credential loaded by ``config.credential``.
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        *,
        fetcher: Fetcher | None = None,
        diagnostics: DiagnosticLog | None = None,
        resolver: DohResolver | None = None,
        relays: RelayChain = DEFAULT_RELAY_CHAIN,
        credential: str | None = None,
    ) -> None:
        self._config = config if config is not None else TransportConfig()
        self._logger = Logger("transport", json_output=self._config.json_logs)

        self._owned_fetcher: AiohttpFetcher | None = None
        if fetcher is None:
            self._owned_fetcher = AiohttpFetcher(
                timeout=self._config.attempt_timeout,
                max_response_size=self._config.max_response_size,
            )
            fetcher = self._owned_fetcher
        self._fetcher: Fetcher = fetcher

        self._diagnostics = (
            diagnostics
            if diagnostics is not None
            else DiagnosticLog(self._config.diagnostics.capacity)
        )
        self._resolver = (
            resolver
            if resolver is not None
            else DohResolver(
                self._fetcher,
                endpoint=self._config.doh.endpoint,
                diagnostics=self._diagnostics,
                max_response_size=self._config.doh.max_response_size,
            )
        )
        self._relays = relays

        if credential is None and self._config.credential.value is not None:
            credential = self._config.credential.value.get_secret_value()
        self._credential = credential
        self._credential_param = self._config.credential.param
        if credential is None:
            self._logger.debug("relay_credential_unset", env=self._config.credential.env)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> TransportConfig:
        """The transport configuration (read-only)."""
        return self._config

    @property
    def diagnostics(self) -> DiagnosticLog:
        """The diagnostic trail this transport appends to."""
        return self._diagnostics

    @property
    def relays(self) -> RelayChain:
        """The relay chain, in attempt order."""
        return self._relays

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    async def fetch(self, url: str, options: RequestOptions | None = None) -> FetchResponse:
        """Perform a call with transparent fallbacks.

        Returns:
            The first response produced: the direct call's response (any
            status), or the first 2xx from the direct-IP or relay stages.

        Raises:
            Exception: The exception raised by the direct call, unchanged,
                if it is an application failure or if every fallback failed.
        """
        outcome = await self.attempt(url, options)
        return outcome.unwrap()

    async def __call__(self, url: str, options: RequestOptions | None = None) -> FetchResponse:
        """Alias of [fetch()][detour.client.transport.ResilientTransport.fetch]."""
        return await self.fetch(url, options)

    async def attempt(self, url: str, options: RequestOptions | None = None) -> CallOutcome:
        """Perform a call with fallbacks and return its outcome instead of raising.

        ``asyncio.CancelledError`` still propagates.
        """
        options = options if options is not None else RequestOptions()
        started = time.monotonic()
        outcome = await self._run(url, options)
        self._record_call(outcome, time.monotonic() - started)
        return outcome

    async def _run(self, url: str, options: RequestOptions) -> CallOutcome:
        # DIRECT
        try:
            response = await self._fetcher(url, options)
        except Exception as e:  # noqa: BLE001  # Classified below; re-raised by the caller
            error = e
        else:
            self._record_attempt(TransportState.DIRECT, response)
            return CallOutcome(
                TransportState.SUCCEEDED,
                response=response,
                stage=TransportState.DIRECT,
            )

        self._record_attempt(TransportState.DIRECT, None)
        self._diagnostics.append(f"fetch failed: {type(error).__name__} - {describe_error(error)}")

        # CLASSIFY_FAILURE
        kind = classify_failure(error)
        if kind is None:
            self._logger.debug(
                "application_failure",
                url=url,
                stage=TransportState.CLASSIFY_FAILURE,
                error=type(error).__name__,
            )
            return CallOutcome(
                TransportState.FAILED, error=error, stage=TransportState.CLASSIFY_FAILURE
            )

        self._logger.warning("fallback_started", url=url, kind=kind, error=describe_error(error))
        attempts = 1

        # DIRECT_IP_RETRY
        parts = urlsplit(url)
        hostname = parts.hostname
        if hostname and is_ip_literal(hostname):
            self._diagnostics.append(f"{hostname} is an address; skipping direct-IP retry")
        elif hostname:
            ip = await self._resolver.resolve(hostname)
            if ip is not None:
                attempts += 1
                response = await self._try_direct_ip(parts, hostname, ip, options)
                if response is not None:
                    self._logger.info(
                        "fallback_succeeded", url=url, stage=TransportState.DIRECT_IP_RETRY, ip=ip
                    )
                    return CallOutcome(
                        TransportState.SUCCEEDED,
                        response=response,
                        attempts=attempts,
                        stage=TransportState.DIRECT_IP_RETRY,
                    )

        # RELAY_RETRY(i)
        relay_target = (
            append_credential(url, self._credential, self._credential_param)
            if self._credential
            else url
        )
        for index, strategy in enumerate(self._relays):
            attempts += 1
            response = await self._try_relay(strategy.host, strategy.rewrite(relay_target), options)
            if response is not None:
                self._logger.info(
                    "fallback_succeeded",
                    url=url,
                    stage=TransportState.RELAY_RETRY,
                    relay=strategy.host,
                    index=index,
                )
                return CallOutcome(
                    TransportState.SUCCEEDED,
                    response=response,
                    attempts=attempts,
                    stage=TransportState.RELAY_RETRY,
                    relay_index=index,
                )

        # FAILED
        self._diagnostics.append("all connection attempts failed")
        self._logger.error(
            "fallback_exhausted", url=url, attempts=attempts, error=describe_error(error)
        )
        return CallOutcome(TransportState.FAILED, error=error, attempts=attempts)

    async def _try_direct_ip(
        self,
        parts: SplitResult,
        hostname: str,
        ip: str,
        options: RequestOptions,
    ) -> FetchResponse | None:
        """Call the resolved address with the original hostname preserved."""
        try:
            response = await self._fetcher(_ip_url(parts, ip), options.pinned_to(hostname, parts.port))
        except Exception as e:  # noqa: BLE001  # Fallback failures are diagnostic only
            self._record_attempt(TransportState.DIRECT_IP_RETRY, None)
            self._diagnostics.append(f"direct-IP retry failed: {describe_error(e)}")
            return None

        self._record_attempt(TransportState.DIRECT_IP_RETRY, response)
        if response.ok:
            self._diagnostics.append("direct-IP retry succeeded")
            return response
        self._diagnostics.append(f"direct-IP retry returned {response.status}")
        return None

    async def _try_relay(
        self, host: str, relay_url: str, options: RequestOptions
    ) -> FetchResponse | None:
        """Call one relay; only a 2xx answer counts as success."""
        self._diagnostics.append(f"trying relay {host}")
        try:
            response = await self._fetcher(relay_url, options)
        except Exception as e:  # noqa: BLE001  # Fallback failures are diagnostic only
            self._record_attempt(TransportState.RELAY_RETRY, None)
            self._diagnostics.append(f"relay {host} failed: {describe_error(e)}")
            return None

        self._record_attempt(TransportState.RELAY_RETRY, response)
        if response.ok:
            self._diagnostics.append(f"relay {host} succeeded")
            return response
        self._diagnostics.append(f"relay {host} returned {response.status}")
        return None

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def _record_attempt(self, stage: TransportState, response: FetchResponse | None) -> None:
        if not self._config.metrics.enabled:
            return
        if response is None:
            outcome = "error"
        elif response.ok:
            outcome = "ok"
        else:
            outcome = "status"
        ATTEMPTS_TOTAL.labels(stage=stage, outcome=outcome).inc()

    def _record_call(self, outcome: CallOutcome, duration: float) -> None:
        if not self._config.metrics.enabled:
            return
        stage = outcome.stage.value if outcome.stage is not None else "none"
        CALLS_TOTAL.labels(state=outcome.state, stage=stage).inc()
        CALL_DURATION_SECONDS.observe(duration)

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> Self:
        """Create a transport from a YAML configuration file.

        Args:
            config_path: Path to the YAML file.
            **kwargs: Additional keyword arguments passed to the constructor.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> Self:
        """Create a transport from a configuration dictionary.

        Raises:
            ConfigurationError: If *data* does not validate.
        """
        return cls(config=TransportConfig.from_dict(data), **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the default fetcher, if this transport created it."""
        if self._owned_fetcher is not None:
            await self._owned_fetcher.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
