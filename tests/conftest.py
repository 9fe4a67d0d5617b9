"""
Pytest configuration and shared fixtures for Detour tests.

Provides:
- ScriptedFetcher: a fake ``Fetcher`` answering from URL-substring routes
  and recording every call, so tests can assert the exact attempt sequence
- response() and doh_payload() builders, imported by test modules
- A fresh DiagnosticLog per test
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import pytest

from detour.core.diagnostics import DiagnosticLog
from detour.models import FetchResponse, RequestOptions


ORIGIN = "https://api.example.com/rest/v1/leads?select=*"
ORIGIN_HOST = "api.example.com"
RESOLVED_IP = "93.184.216.34"

Route = tuple[str, "FetchResponse | BaseException | Callable[[str, RequestOptions], FetchResponse]"]


class ScriptedFetcher:
    """Fake ``Fetcher`` answering from ordered ``(needle, result)`` routes.

    The first route whose needle is a substring of the requested URL wins.
    A result may be a response, an exception (raised), or a callable taking
    ``(url, options)``. Unmatched URLs fail the test.
    """

    def __init__(self, routes: list[Route]) -> None:
        self._routes = routes
        self.calls: list[tuple[str, RequestOptions]] = []

    @property
    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]

    async def __call__(self, url: str, options: RequestOptions) -> FetchResponse:
        self.calls.append((url, options))
        for needle, result in self._routes:
            if needle in url:
                if isinstance(result, BaseException):
                    raise result
                if callable(result):
                    return result(url, options)
                return result
        raise AssertionError(f"unexpected request: {url}")


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def _no_credential_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's DETOUR_API_KEY out of the tests."""
    monkeypatch.delenv("DETOUR_API_KEY", raising=False)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def diagnostics() -> DiagnosticLog:
    """Fresh diagnostic log with the default capacity."""
    return DiagnosticLog()


def response(status: int = 200, body: bytes = b"{}", url: str = ORIGIN) -> FetchResponse:
    """Build a FetchResponse with a JSON content type."""
    return FetchResponse(
        status=status,
        headers={"Content-Type": "application/json"},
        body=body,
        url=url,
    )


def doh_payload(*data: str, status: int = 0) -> bytes:
    """Build a DoH JSON body with one A record per address."""
    payload: dict[str, Any] = {"Status": status}
    if data:
        payload["Answer"] = [
            {"name": f"{ORIGIN_HOST}.", "type": 1, "TTL": 300, "data": d} for d in data
        ]
    return json.dumps(payload).encode()

