"""Transport configuration models.

Loaded from YAML through [load_yaml()][detour.core.yaml.load_yaml] or built
directly. The fallback order itself is not configurable: it is fixed by the
transport and the relay chain it is given.

Examples:
    ```yaml
    # config/detour.yaml
    attempt_timeout: 20
    doh:
      endpoint: https://dns.google/resolve
    credential:
      env: SUPABASE_ANON_KEY
      param: apikey
    metrics:
      enabled: true
    ```

See Also:
    [ResilientTransport][detour.client.transport.ResilientTransport]: The
        orchestrator that consumes these configurations.
"""

from __future__ import annotations

import os
from typing import Any, Self

from pydantic import BaseModel, Field, SecretStr, ValidationError, model_validator

from detour.core.exceptions import ConfigurationError
from detour.core.metrics import MetricsConfig
from detour.core.yaml import load_yaml
from detour.models import DEFAULT_LOG_CAPACITY
from detour.utils.doh import DEFAULT_DOH_ENDPOINT, DEFAULT_DOH_MAX_RESPONSE_SIZE
from detour.utils.http import DEFAULT_MAX_RESPONSE_SIZE


class DohConfig(BaseModel):
    """DNS-over-HTTPS resolver settings for the direct-IP fallback."""

    endpoint: str = Field(
        default=DEFAULT_DOH_ENDPOINT,
        pattern=r"^https://",
        description="DoH JSON API endpoint",
    )
    max_response_size: int = Field(
        default=DEFAULT_DOH_MAX_RESPONSE_SIZE,
        ge=512,
        le=1024 * 1024,
        description="Maximum DoH response body size in bytes",
    )


class DiagnosticsConfig(BaseModel):
    """Diagnostic trail settings."""

    capacity: int = Field(
        default=DEFAULT_LOG_CAPACITY,
        ge=1,
        le=10_000,
        description="Maximum number of retained diagnostic lines",
    )


class CredentialConfig(BaseModel):
    """API credential carried in the query string through relays.

    The value is loaded from the environment variable named by ``env``. It
    is never read from configuration data: a ``value`` key in the input is
    rejected.

    Warning:
        The credential ends up in relay URLs, which relay operators can log.
        Only configure credentials meant to be public (e.g. anonymous keys).
    """

    env: str = Field(
        default="DETOUR_API_KEY",  # pragma: allowlist secret
        min_length=1,
        description="Environment variable holding the credential",
    )
    param: str = Field(default="apikey", min_length=1, description="Query parameter name")
    required: bool = Field(default=False, description="Fail if the variable is not set")
    value: SecretStr | None = Field(default=None, description="Loaded from env")

    @model_validator(mode="before")
    @classmethod
    def resolve_value(cls, data: Any) -> Any:
        """Resolve the credential from the environment variable."""
        if isinstance(data, dict):
            env_var = data.get("env", "DETOUR_API_KEY")  # pragma: allowlist secret
            if data.get("value") is not None:
                raise ValueError(f"credential value is read from the {env_var} variable only")
            value = os.getenv(env_var)
            if value:
                data = {**data, "value": SecretStr(value)}
            elif data.get("required", False):
                raise ValueError(f"{env_var} environment variable not set")
        return data


class TransportConfig(BaseModel):
    """Top-level configuration of a [ResilientTransport][detour.client.transport.ResilientTransport]."""

    doh: DohConfig = Field(default_factory=DohConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)
    credential: CredentialConfig = Field(default_factory=CredentialConfig)
    attempt_timeout: float | None = Field(
        default=None,
        gt=0,
        le=600,
        description="Per-attempt total timeout in seconds (None = unbounded)",
    )
    max_response_size: int = Field(
        default=DEFAULT_MAX_RESPONSE_SIZE,
        ge=1024,
        description="Maximum response body size in bytes",
    )
    json_logs: bool = Field(default=False, description="Emit transport logs as JSON")
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Validate *data*, reporting failures as ``ConfigurationError``."""
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid transport configuration: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str) -> Self:
        """Load and validate a YAML configuration file."""
        return cls.from_dict(load_yaml(config_path))
