"""Core infrastructure shared by the transport.

Depends only on ``detour.models`` and is depended upon by ``detour.client``.

Attributes:
    DiagnosticLog: Bounded, thread-safe ring buffer of timestamped status
        lines. See [DiagnosticLog][detour.core.diagnostics.DiagnosticLog].
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][detour.core.logger.Logger].
    MetricsConfig: Toggle for Prometheus metric recording.
    load_yaml: Safe YAML loading with ``yaml.safe_load()``.
"""

from .diagnostics import DiagnosticLog, get_default_log
from .exceptions import ConfigurationError, DetourError
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    ATTEMPTS_TOTAL,
    CALL_DURATION_SECONDS,
    CALLS_TOTAL,
    MetricsConfig,
)
from .yaml import load_yaml


__all__ = [
    "ATTEMPTS_TOTAL",
    "CALLS_TOTAL",
    "CALL_DURATION_SECONDS",
    "ConfigurationError",
    "DetourError",
    "DiagnosticLog",
    "Logger",
    "MetricsConfig",
    "StructuredFormatter",
    "format_kv_pairs",
    "get_default_log",
    "load_yaml",
]
