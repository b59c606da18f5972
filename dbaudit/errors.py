"""Error types raised by the audit pipeline."""

from __future__ import annotations


class AuditError(Exception):
    """Base class for all audit pipeline errors."""

    pass


class ConfigurationError(AuditError):
    """Invalid configuration detected at startup or on reload.

    Raised for unknown log format fields, malformed time format or zone,
    and unreadable or invalid configuration files.
    """

    pass


class PolicyLookupError(AuditError):
    """A whitelist or role lookup failed while evaluating an event."""

    def __init__(self, role: str, message: str):
        self.role = role
        super().__init__(f"Whitelist lookup failed for role '{role}': {message}")


class RenderError(AuditError):
    """A compiled template could not render an event."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Failed to render field '{field}': {message}")


class BackendEmitError(AuditError):
    """The audit backend could not commit a record."""

    pass


class InvalidWhitelistError(AuditError):
    """A whitelist grant or revoke request is malformed."""

    pass


__all__ = [
    "AuditError",
    "ConfigurationError",
    "PolicyLookupError",
    "RenderError",
    "BackendEmitError",
    "InvalidWhitelistError",
]
