"""Transport orchestrator and its configuration.

The client layer sits on top of ``core`` and ``utils``. It is the only part
of the package application code calls directly.

Attributes:
    ResilientTransport: Drop-in HTTP call primitive with DoH and relay
        fallbacks. See [ResilientTransport][detour.client.transport.ResilientTransport].
    TransportConfig: Pydantic configuration model. See
        [TransportConfig][detour.client.configs.TransportConfig].
"""

from .configs import CredentialConfig, DiagnosticsConfig, DohConfig, TransportConfig
from .transport import ResilientTransport


__all__ = [
    "CredentialConfig",
    "DiagnosticsConfig",
    "DohConfig",
    "ResilientTransport",
    "TransportConfig",
]
