"""
Bounded, timestamped diagnostic trail for on-device troubleshooting.

[DiagnosticLog][detour.core.diagnostics.DiagnosticLog] keeps the most recent
human-readable status lines produced by the transport (attempts, DoH
resolutions, relay outcomes). It is capacity-bounded: once full, every
append evicts the oldest entry. The trail lives in memory only and is never
persisted or transmitted.

The log is injected into the components that write to it. For callers that
want one process-wide trail, [get_default_log()][detour.core.diagnostics.get_default_log]
returns a lazily created shared instance.

Note:
    ``append()`` never raises and never blocks on I/O. A ``threading.Lock``
    guards the deque so appends from concurrent tasks and threads cannot
    interleave an eviction with an insertion.

Examples:
    ```python
    log = DiagnosticLog()
    log.append("resolving api.example.com via DoH")
    log.lines()  # ['[14:03:27] resolving api.example.com via DoH']
    ```
"""

from __future__ import annotations

import threading
from collections import deque

from detour.models import DEFAULT_LOG_CAPACITY, LogEntry

from .logger import Logger


class DiagnosticLog:
    """Thread-safe FIFO ring buffer of [LogEntry][detour.models.log_entry.LogEntry].

    Each appended line is also mirrored to the ``diagnostics`` structured
    logger at DEBUG level.

    Args:
        capacity: Maximum number of entries retained (default 50).

    Raises:
        ValueError: If *capacity* is less than 1.
    """

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._logger = Logger("diagnostics")

    @property
    def capacity(self) -> int:
        """Maximum number of retained entries."""
        return self._entries.maxlen or 0

    def append(self, message: str) -> None:
        """Append a timestamped line, evicting the oldest when full.

        Never raises: a message that cannot be turned into an entry is
        replaced by its ``repr``, and a failing mirror logger is ignored.
        """
        try:
            entry = LogEntry(message)
        except (TypeError, ValueError):
            entry = LogEntry(repr(message).replace("\x00", "\\x00"))
        with self._lock:
            self._entries.append(entry)
        try:
            self._logger.debug(entry.message)
        except Exception:  # noqa: BLE001  # Intentionally broad: logging must not abort callers
            pass

    def snapshot(self) -> tuple[LogEntry, ...]:
        """Return the current entries, oldest first, without mutating the log."""
        with self._lock:
            return tuple(self._entries)

    def lines(self) -> list[str]:
        """Return the snapshot rendered as ``[HH:MM:SS] message`` strings."""
        return [str(entry) for entry in self.snapshot()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_log: DiagnosticLog | None = None
_default_lock = threading.Lock()


def get_default_log() -> DiagnosticLog:
    """Return the process-wide diagnostic log, creating it on first use."""
    global _default_log  # noqa: PLW0603
    with _default_lock:
        if _default_log is None:
            _default_log = DiagnosticLog()
        return _default_log
