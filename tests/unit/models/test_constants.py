"""Tests for detour.models.constants."""

from __future__ import annotations

from enum import StrEnum

from detour.models import DEFAULT_LOG_CAPACITY, FailureKind, TransportState


class TestDefaultLogCapacity:
    def test_value(self) -> None:
        assert DEFAULT_LOG_CAPACITY == 50


class TestFailureKind:
    def test_is_str_enum(self) -> None:
        assert issubclass(FailureKind, StrEnum)

    def test_members(self) -> None:
        assert {kind.value for kind in FailureKind} == {
            "dns",
            "tls",
            "timeout",
            "connection_abort",
            "connection",
            "network_request",
            "fetch",
            "client",
        }

    def test_str_is_value(self) -> None:
        assert str(FailureKind.CONNECTION_ABORT) == "connection_abort"


class TestTransportState:
    def test_sequence_order(self) -> None:
        assert list(TransportState) == [
            TransportState.DIRECT,
            TransportState.CLASSIFY_FAILURE,
            TransportState.DIRECT_IP_RETRY,
            TransportState.RELAY_RETRY,
            TransportState.SUCCEEDED,
            TransportState.FAILED,
        ]

    def test_compares_to_str(self) -> None:
        assert TransportState.RELAY_RETRY == "relay_retry"
