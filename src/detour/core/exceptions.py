"""Detour exception hierarchy.

Network failures raised by the underlying HTTP primitive (``aiohttp``
errors, ``OSError``, ``TimeoutError``) are **not** wrapped: the transport is
a drop-in replacement and re-raises them in their original shape, so the
hierarchy only covers failures that belong to Detour itself.

Exception hierarchy:

```text
DetourError (base -- never raised directly)
└── ConfigurationError      -- config validation, missing credential, bad YAML
```

See Also:
    [TransportConfig][detour.client.configs.TransportConfig]: Raises
        [ConfigurationError][detour.core.exceptions.ConfigurationError] for
        a required credential that is not set.
    [load_yaml()][detour.core.yaml.load_yaml]: Raises
        [ConfigurationError][detour.core.exceptions.ConfigurationError] for
        YAML that does not parse to a mapping.
"""

from __future__ import annotations


class DetourError(Exception):
    """Base exception for all Detour errors.

    Never raised directly -- always use a specific subclass.
    """


class ConfigurationError(DetourError):
    """Invalid or missing configuration (YAML, env vars, CLI flags).

    See Also:
        [DetourError][detour.core.exceptions.DetourError]: Parent
            exception class.
    """
