"""Shared fixtures for dbaudit tests."""

from __future__ import annotations

import pytest

from dbaudit import AuditEvent, DataResource, Permission


@pytest.fixture
def make_event():
    """Factory for audit events with sensible defaults."""

    def _make_event(**overrides) -> AuditEvent:
        values = {
            "principal": "bob",
            "client_address": "10.0.0.1",
            "client_port": 9042,
            "coordinator_address": "10.0.0.100",
            "operation": "SELECT * FROM ks.tbl",
            "permissions": frozenset({Permission.SELECT}),
            "resource": DataResource("ks", "tbl"),
            "timestamp": 1_500_000_000_000,
        }
        values.update(overrides)
        return AuditEvent(**values)

    return _make_event
