"""Timestamped diagnostic log entry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from ._validation import validate_instance, validate_str_no_null


@dataclass(frozen=True, slots=True)
class LogEntry:
    """A single line of the diagnostic trail.

    Immutable once created. ``timestamp`` is always timezone-aware (UTC);
    naive datetimes are rejected so entries from different sources sort
    consistently.

    Examples:
        ```python
        entry = LogEntry("resolving api.example.com via DoH")
        str(entry)  # '[14:03:27] resolving api.example.com via DoH'
        ```
    """

    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        validate_str_no_null(self.message, "message")
        validate_instance(self.timestamp, datetime, "timestamp")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")

    def __str__(self) -> str:
        return f"[{self.timestamp:%H:%M:%S}] {self.message}"
