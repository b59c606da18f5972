"""Compilation of log format strings into reusable rendering templates.

A format string names the fields of an audit event to log:

    ${NAME}                      mandatory field
    {?left-text${NAME}right-text?}  conditional field

Compiling ``"user:${USER}{?, batch:${BATCH_ID}?}"`` with the anchor ``%s``
gives the template ``"user:%s%s"`` and two extractors. For an event without
a batch the arguments are ``["bob", ""]``; with a batch they are
``["bob", ", batch:e501f872-..."]``. The backend substitutes the arguments
into the anchors, which keeps the template constant across events.

Escaping is applied to the literal text between fields only, so anchors and
field values are never escaped.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .entry import AuditEvent
from .errors import ConfigurationError, RenderError

logger = logging.getLogger("dbaudit.formatter")

FieldFunction = Callable[[AuditEvent], Any]
FallbackFunction = Callable[[str, AuditEvent], Any]
EscapeSpec = tuple[str, str]

# Non-greedy so that adjacent fields are matched separately
_FIELD_EXP = r"\$\{(.*?)}"
_OPTIONAL_FIELD_EXP = r"\{\?(.*?)\$\{(.*?)}(.*?)\?}"
FIELD_PATTERN = re.compile(f"{_FIELD_EXP}|{_OPTIONAL_FIELD_EXP}")

DEFAULT_ANCHOR = "%s"
NULL_VALUE = "null"


def stringify(value: Any) -> str:
    """Render a field value for a log line."""
    if value is None:
        return NULL_VALUE
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


@dataclass(frozen=True)
class FieldExtractor:
    """Extracts and renders one field occurrence of a format string."""

    field: str
    value_of: FieldFunction
    optional: bool = False
    left: str = ""
    right: str = ""

    def __call__(self, event: AuditEvent) -> str:
        try:
            value = self.value_of(event)
        except Exception as e:
            raise RenderError(self.field, str(e)) from e

        if not self.optional:
            return stringify(value)
        if value is None:
            return ""
        return f"{self.left}{stringify(value)}{self.right}"


@dataclass(frozen=True)
class CompiledTemplate:
    """A compiled format string.

    Attributes:
        format: The source format string
        template: Escaped literal text with every field replaced by the anchor
        anchor: The placeholder token
        extractors: One extractor per field occurrence, in source order
        literals: Unescaped literal text around the fields
    """

    format: str
    template: str
    anchor: str
    extractors: tuple[FieldExtractor, ...]
    literals: tuple[str, ...]

    @property
    def field_names(self) -> list[str]:
        return [extractor.field for extractor in self.extractors]

    def arguments(self, event: AuditEvent) -> list[str]:
        """Render the positional arguments for an event."""
        return [extractor(event) for extractor in self.extractors]

    def render(self, event: AuditEvent) -> tuple[str, list[str]]:
        """Return the constant template and the arguments for an event."""
        return self.template, self.arguments(event)

    def interpolate(self, event: AuditEvent) -> str:
        """Render the complete line, bypassing the anchors."""
        parts = [self.literals[0]]
        for argument, literal in zip(self.arguments(event), self.literals[1:]):
            parts.append(argument)
            parts.append(literal)
        return "".join(parts)


class LogTemplateCompiler:
    """Compiles format strings against a registry of field functions.

    Args:
        fields: Mapping of field name to a function extracting the raw value
        anchor: Placeholder left in the template for each field
        escape: Optional ``(pattern, replacement)`` applied to literal text
        fallback: Optional resolver for field names missing from ``fields``;
            called at render time with the field name and the event
    """

    def __init__(
        self,
        fields: Mapping[str, FieldFunction],
        anchor: str = DEFAULT_ANCHOR,
        escape: EscapeSpec | None = None,
        fallback: FallbackFunction | None = None,
    ):
        if not anchor:
            raise ConfigurationError("Log template anchor must not be empty")

        self.fields = dict(fields)
        self.anchor = anchor
        self.fallback = fallback
        self._escape = self._compile_escape(escape)

    @staticmethod
    def _compile_escape(escape: EscapeSpec | None) -> tuple[re.Pattern, str] | None:
        if escape is None:
            return None
        pattern, replacement = escape
        try:
            return re.compile(pattern), replacement
        except re.error as e:
            raise ConfigurationError(f"Invalid escape pattern {pattern!r}: {e}")

    def resolve(self, field: str) -> tuple[FieldFunction | None, bool]:
        """Resolve a field name to its value function.

        Returns:
            Tuple of the function (or None) and whether it was found
        """
        function = self.fields.get(field)
        if function is not None:
            return function, True
        if self.fallback is not None:
            fallback = self.fallback
            return (lambda event: fallback(field, event)), True
        return None, False

    def _field_function(self, field: str) -> FieldFunction:
        function, found = self.resolve(field)
        if not found:
            raise ConfigurationError(f"Unknown log format field: {field}")
        return function

    def _escape_literal(self, literal: str) -> str:
        if self._escape is None:
            return literal
        pattern, replacement = self._escape
        return pattern.sub(replacement, literal)

    def compile(self, format: str) -> CompiledTemplate:
        """Compile a format string.

        Args:
            format: The format string

        Returns:
            The compiled template

        Raises:
            ConfigurationError: If a field is unknown and no fallback is configured
        """
        literals: list[str] = []
        extractors: list[FieldExtractor] = []
        position = 0

        for match in FIELD_PATTERN.finditer(format):
            literals.append(format[position:match.start()])
            position = match.end()

            mandatory_field = match.group(1)
            if mandatory_field is not None:
                extractors.append(
                    FieldExtractor(mandatory_field, self._field_function(mandatory_field))
                )
            else:
                left, optional_field, right = match.group(2, 3, 4)
                extractors.append(
                    FieldExtractor(
                        optional_field,
                        self._field_function(optional_field),
                        optional=True,
                        left=left,
                        right=right,
                    )
                )

        literals.append(format[position:])

        template = self.anchor.join(self._escape_literal(literal) for literal in literals)
        logger.debug(f"Compiled log format {format!r} into {template!r}")

        return CompiledTemplate(
            format=format,
            template=template,
            anchor=self.anchor,
            extractors=tuple(extractors),
            literals=tuple(literals),
        )


def compile_template(
    format: str,
    anchor: str = DEFAULT_ANCHOR,
    escape: EscapeSpec | None = None,
    fields: Mapping[str, FieldFunction] | None = None,
    fallback: FallbackFunction | None = None,
) -> CompiledTemplate:
    """Convenience function to compile a single format string."""
    compiler = LogTemplateCompiler(
        fields if fields is not None else standard_fields(),
        anchor=anchor,
        escape=escape,
        fallback=fallback,
    )
    return compiler.compile(format)


# -----------------------------------------------------------------------------
# Standard fields
# -----------------------------------------------------------------------------


# Directives documented for datetime.strftime; platform extensions are rejected
_TIME_DIRECTIVES = frozenset("aAwdbBmyYHIpMSfzZjUWcxXGuV%")
_TIME_DIRECTIVE = re.compile(r"%(.|$)", re.DOTALL)


def _resolve_zone(time_zone: str | None) -> Any:
    if time_zone is None:
        return None
    try:
        return ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Invalid time zone parameter: {time_zone}") from e


def timestamp_function(
    time_format: str | None = None,
    time_zone: str | None = None,
) -> FieldFunction:
    """Build the TIMESTAMP field function.

    Without a time format the raw millisecond timestamp is logged. With a
    time format (``strftime`` syntax) the timestamp is formatted in the given
    zone, or in the local zone when none is given.

    Raises:
        ConfigurationError: If the zone is unknown or the format is invalid
    """
    zone = _resolve_zone(time_zone)

    if time_format is None:
        return lambda event: event.timestamp

    if not time_format:
        raise ConfigurationError("Invalid time format parameter: empty format")
    for match in _TIME_DIRECTIVE.finditer(time_format):
        if match.group(1) not in _TIME_DIRECTIVES:
            raise ConfigurationError(
                f"Invalid time format parameter: {time_format} "
                f"(unsupported directive %{match.group(1)})"
            )

    def formatted(event: AuditEvent) -> str:
        moment = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc)
        moment = moment.astimezone(zone) if zone is not None else moment.astimezone()
        return moment.strftime(time_format)

    return formatted


def standard_fields(
    time_format: str | None = None,
    time_zone: str | None = None,
) -> dict[str, FieldFunction]:
    """Return the registry of fields available in log formats."""
    return {
        "CLIENT_IP": lambda event: event.client_address,
        "CLIENT_PORT": lambda event: event.client_port,
        "COORDINATOR_IP": lambda event: event.coordinator_address,
        "USER": lambda event: event.principal,
        "BATCH_ID": lambda event: event.batch_id,
        "STATUS": lambda event: event.status,
        "OPERATION": lambda event: event.operation,
        "OPERATION_NAKED": lambda event: (
            event.naked_operation if event.naked_operation is not None else event.operation
        ),
        "TIMESTAMP": timestamp_function(time_format, time_zone),
    }


__all__ = [
    "FieldFunction",
    "FallbackFunction",
    "EscapeSpec",
    "FIELD_PATTERN",
    "DEFAULT_ANCHOR",
    "NULL_VALUE",
    "stringify",
    "FieldExtractor",
    "CompiledTemplate",
    "LogTemplateCompiler",
    "compile_template",
    "timestamp_function",
    "standard_fields",
]
