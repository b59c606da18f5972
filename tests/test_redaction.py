"""Tests for password redaction."""

from __future__ import annotations

import re

import pytest

from dbaudit.redaction import OperationRedactor, RedactionConfig, RedactionPattern
from dbaudit.resources import DataResource, Permission, RoleResource


@pytest.fixture
def redactor():
    return OperationRedactor()


def role_event(make_event, operation, permission=Permission.CREATE, **overrides):
    return make_event(
        operation=operation,
        permissions=frozenset({permission}),
        resource=RoleResource("bob"),
        **overrides,
    )


class TestPasswordRedaction:
    """Tests for masking passwords on role operations."""

    @pytest.mark.parametrize(
        "operation,expected",
        [
            (
                "CREATE ROLE bob WITH PASSWORD = 'secret' AND LOGIN = true",
                "CREATE ROLE bob WITH PASSWORD = '*****' AND LOGIN = true",
            ),
            (
                "CREATE ROLE bob WITH LOGIN = true AND PASSWORD='secret'",
                "CREATE ROLE bob WITH LOGIN = true AND PASSWORD='*****'",
            ),
            (
                "CREATE USER bob WITH PASSWORD 'secret' NOSUPERUSER",
                "CREATE USER bob WITH PASSWORD '*****' NOSUPERUSER",
            ),
            (
                "create role bob with password = 'secret'",
                "create role bob with password = '*****'",
            ),
            (
                "CREATE ROLE bob\nWITH PASSWORD = 'secret'\nAND LOGIN = true",
                "CREATE ROLE bob\nWITH PASSWORD = '*****'\nAND LOGIN = true",
            ),
        ],
    )
    def test_create_role(self, make_event, redactor, operation, expected):
        """Test the password is masked on create."""
        redacted = redactor.redact(role_event(make_event, operation))
        assert redacted.operation == expected

    def test_alter_role(self, make_event, redactor):
        """Test the password is masked on alter."""
        event = role_event(
            make_event,
            "ALTER ROLE bob WITH PASSWORD = 'secret'",
            permission=Permission.ALTER,
        )
        assert redactor.redact(event).operation == "ALTER ROLE bob WITH PASSWORD = '*****'"

    def test_other_fields_preserved(self, make_event, redactor):
        """Test only the operation text changes."""
        event = role_event(make_event, "ALTER USER bob WITH PASSWORD 'secret'")
        redacted = redactor.redact(event)

        assert redacted is not event
        assert redacted.principal == event.principal
        assert redacted.resource == event.resource
        assert redacted.timestamp == event.timestamp
        assert event.operation == "ALTER USER bob WITH PASSWORD 'secret'"

    def test_role_without_password_unchanged(self, make_event, redactor):
        """Test role operations without a password return the same event."""
        event = role_event(make_event, "CREATE ROLE bob WITH LOGIN = true")
        assert redactor.redact(event) is event

    def test_non_role_resource_unchanged(self, make_event, redactor):
        """Test data operations are never redacted."""
        event = make_event(
            operation="INSERT INTO ks.tbl (password) VALUES ('secret')",
            permissions=frozenset({Permission.MODIFY}),
        )
        assert redactor.redact(event) is event

    def test_drop_role_unchanged(self, make_event, redactor):
        """Test permissions other than create and alter are not redacted."""
        event = role_event(
            make_event,
            "DROP ROLE bob -- password 'secret'",
            permission=Permission.DROP,
        )
        assert redactor.redact(event) is event

    def test_idempotent(self, make_event, redactor):
        """Test redacting twice gives the same text."""
        once = redactor.redact(role_event(make_event, "CREATE ROLE bob WITH PASSWORD = 'secret'"))
        twice = redactor.redact(once)
        assert twice.operation == once.operation
        assert twice is once


class TestUnknownOperationRedaction:
    """Tests for events whose operation text could not be resolved."""

    def test_unknown_operation_redacted(self, make_event, redactor):
        """Test unresolved operations are redacted regardless of resource."""
        event = make_event(
            operation="CREATE ROLE bob WITH PASSWORD = 'secret'",
            operation_known=False,
            resource=DataResource("ks"),
        )
        assert redactor.redact(event).operation == "CREATE ROLE bob WITH PASSWORD = '*****'"

    def test_unknown_operation_redaction_disabled(self, make_event):
        """Test the unknown operation rule can be turned off."""
        redactor = OperationRedactor(RedactionConfig(redact_unknown_operation=False))
        event = make_event(
            operation="CREATE ROLE bob WITH PASSWORD = 'secret'",
            operation_known=False,
            resource=DataResource("ks"),
        )
        assert redactor.redact(event) is event

    def test_missing_operation(self, make_event, redactor):
        """Test events without operation text pass through."""
        event = make_event(operation=None)
        assert redactor.should_redact(event) is True
        assert redactor.redact(event) is event


class TestRedactionConfig:
    """Tests for redaction configuration."""

    def test_custom_mask(self, make_event):
        """Test the mask is configurable."""
        redactor = OperationRedactor(RedactionConfig(mask="<hidden>"))
        event = role_event(make_event, "CREATE ROLE bob WITH PASSWORD = 'secret'")
        assert redactor.redact(event).operation == "CREATE ROLE bob WITH PASSWORD = '<hidden>'"

    def test_custom_pattern(self):
        """Test additional patterns can be configured."""
        pattern = RedactionPattern(
            re.compile(r".*hashed_password\s*=\s*'(?P<hash>[^']+)'.*", re.IGNORECASE),
            group="hash",
        )
        redactor = OperationRedactor(RedactionConfig(patterns=[pattern]))
        assert (
            redactor.redact_text("ALTER ROLE bob WITH HASHED_PASSWORD = '$2a$10$abc'")
            == "ALTER ROLE bob WITH HASHED_PASSWORD = '*****'"
        )

    def test_no_match(self, redactor):
        """Test text without a password is returned unchanged."""
        assert redactor.redact_text("CREATE ROLE bob") == "CREATE ROLE bob"
