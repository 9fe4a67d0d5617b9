"""
Prometheus metrics for the resilient transport.

Metric objects are module-level singletons (thread-safe, shared by every
transport in the process). They are only updated when
``MetricsConfig.enabled`` is True; exposition is left to the host
application (e.g. ``prometheus_client.start_http_server``).

Architecture:
    ATTEMPTS_TOTAL:          One increment per network attempt, by stage
                             and outcome (ok, status, error).
    CALLS_TOTAL:             One increment per orchestrated call, by
                             terminal state and answering stage.
    CALL_DURATION_SECONDS:   End-to-end latency of orchestrated calls.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Configuration for transport metrics collection."""

    enabled: bool = Field(default=False, description="Record Prometheus metrics")


ATTEMPTS_TOTAL = Counter(
    "detour_attempts_total",
    "Network attempts issued by the transport",
    ["stage", "outcome"],
)

CALLS_TOTAL = Counter(
    "detour_calls_total",
    "Orchestrated calls by terminal state and answering stage",
    ["state", "stage"],
)

# Fallback chains walk up to six sequential attempts, hence the long tail
CALL_DURATION_SECONDS = Histogram(
    "detour_call_duration_seconds",
    "End-to-end duration of orchestrated calls in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
)
