"""Redaction of sensitive data in audited operation text.

Passwords can only be set through CREATE or ALTER on a role, so the password
pattern is applied to those events only. Events whose operation text could
not be resolved are redacted unconditionally unless configured otherwise.

Only the captured secret is replaced; the surrounding text is kept verbatim.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .entry import AuditEvent
from .resources import Permission, RoleResource

logger = logging.getLogger("dbaudit.redaction")

DEFAULT_MASK = "*****"

PASSWORD_PERMISSIONS = frozenset({Permission.CREATE, Permission.ALTER})


@dataclass
class RedactionPattern:
    """A pattern whose named group holds the sensitive substring."""

    pattern: re.Pattern
    group: str = "password"
    description: str = ""


# Greedy prefix: the last password keyword in the text wins
_PASSWORD_PATTERN = RedactionPattern(
    re.compile(r".*password\s*=?\s*'(?P<password>[^\s]+)'.*", re.IGNORECASE | re.DOTALL),
    "password",
    "Quoted password after PASSWORD keyword",
)


@dataclass
class RedactionConfig:
    """Configuration for the operation redactor."""

    # Replacement for the sensitive substring
    mask: str = DEFAULT_MASK

    # Redact events with an unresolved operation regardless of resource/permission
    redact_unknown_operation: bool = True

    # Patterns tried in order; the first full match is spliced
    patterns: list[RedactionPattern] = field(default_factory=lambda: [_PASSWORD_PATTERN])


class OperationRedactor:
    """Masks passwords in the operation text of audit events."""

    def __init__(self, config: RedactionConfig | None = None):
        """Initialize the redactor.

        Args:
            config: Redaction configuration
        """
        self.config = config or RedactionConfig()

    def should_redact(self, event: AuditEvent) -> bool:
        """Check whether an event may carry a password."""
        if not event.has_known_operation and self.config.redact_unknown_operation:
            return True
        return isinstance(event.resource, RoleResource) and not event.permissions.isdisjoint(
            PASSWORD_PERMISSIONS
        )

    def redact(self, event: AuditEvent) -> AuditEvent:
        """Redact an event.

        Args:
            event: The event to redact

        Returns:
            A new event with the password masked, or the same event object
            when nothing was changed
        """
        if event.operation is None or not self.should_redact(event):
            return event

        redacted = self.redact_text(event.operation)
        if redacted == event.operation:
            return event

        logger.debug(f"Masked password in operation of {event.principal}")
        return event.with_operation(redacted)

    def redact_text(self, text: str) -> str:
        """Mask the sensitive group of the first matching pattern.

        Args:
            text: Operation text

        Returns:
            Text with exactly the captured span replaced by the mask
        """
        for redaction_pattern in self.config.patterns:
            match = redaction_pattern.pattern.fullmatch(text)
            if match:
                start, end = match.span(redaction_pattern.group)
                return text[:start] + self.config.mask + text[end:]
        return text


__all__ = [
    "DEFAULT_MASK",
    "PASSWORD_PERMISSIONS",
    "RedactionPattern",
    "RedactionConfig",
    "OperationRedactor",
]
