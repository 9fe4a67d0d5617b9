"""Response value returned by every call path of the transport."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ._validation import freeze_headers, validate_instance, validate_status, validate_str_no_null


@dataclass(frozen=True, slots=True)
class FetchResponse:
    """A fully-read HTTP response.

    Non-2xx statuses are ordinary values here, not errors: a server that
    legitimately answers ``404`` produces a ``FetchResponse`` with
    ``ok == False``.

    Attributes:
        status: HTTP status code.
        headers: Read-only response headers.
        body: Raw response body.
        url: The URL that actually produced the response (may be a direct-IP
            or relay URL when a fallback path answered).
    """

    status: int
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    body: bytes = b""
    url: str = ""

    def __post_init__(self) -> None:
        validate_status(self.status, "status")
        object.__setattr__(self, "headers", freeze_headers(self.headers, "headers"))
        validate_instance(self.body, bytes, "body")
        validate_str_no_null(self.url, "url")

    @property
    def ok(self) -> bool:
        """Return True for a 2xx status."""
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        """Decode the body, replacing undecodable bytes."""
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        """Parse the body as JSON.

        Raises:
            json.JSONDecodeError: If the body is not valid JSON.
        """
        return json.loads(self.body)
