r"""Detour -- resilient HTTP transport with DNS-over-HTTPS and relay fallbacks.

A drop-in replacement for an application's outbound HTTP call that works
around DNS blocking, TLS/firewall interference, and transient connectivity
failures. On a network-layer failure it retries against a DoH-resolved IP,
then through a fixed chain of public relays, and records a bounded
diagnostic trail of every attempt.

Architecture follows a layered structure where imports flow strictly
downward:

```text
            client           Orchestrator and configuration
           /      \
        core      utils      Infrastructure / network helpers
           \      /
            models           Pure frozen dataclasses (zero I/O)
```

Note:
    For lightweight usage, import directly from subpackages::

        from detour.client import ResilientTransport
        from detour.models import RequestOptions

    Top-level imports (``from detour import ResilientTransport``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _get_version


try:
    __version__ = _get_version("detour")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "CallOutcome",
    "ConfigurationError",
    "DetourError",
    "DiagnosticLog",
    "DohResolver",
    "FailureKind",
    "FetchResponse",
    "LogEntry",
    "Logger",
    "RelayChain",
    "RequestOptions",
    "ResilientTransport",
    "TransportConfig",
    "TransportState",
    "get_default_log",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "CallOutcome": ("detour.models", "CallOutcome"),
    "FailureKind": ("detour.models", "FailureKind"),
    "FetchResponse": ("detour.models", "FetchResponse"),
    "LogEntry": ("detour.models", "LogEntry"),
    "RequestOptions": ("detour.models", "RequestOptions"),
    "TransportState": ("detour.models", "TransportState"),
    "ConfigurationError": ("detour.core", "ConfigurationError"),
    "DetourError": ("detour.core", "DetourError"),
    "DiagnosticLog": ("detour.core", "DiagnosticLog"),
    "Logger": ("detour.core", "Logger"),
    "get_default_log": ("detour.core", "get_default_log"),
    "DohResolver": ("detour.utils", "DohResolver"),
    "RelayChain": ("detour.utils", "RelayChain"),
    "ResilientTransport": ("detour.client", "ResilientTransport"),
    "TransportConfig": ("detour.client", "TransportConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'detour' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
