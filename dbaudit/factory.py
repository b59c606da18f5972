"""Wiring of an AuditPipeline from configuration.

The host supplies what only it knows: the roles granted to a principal and
the role whitelist lookup. Everything else is built from AuditConfig.
"""

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry

from .backends import AuditBackend, JsonlBackendConfig, JsonlFileBackend, LoggingBackend
from .config import AuditConfig, BackendType, FilterType, LoggerConfig
from .errors import ConfigurationError
from .formatter import CompiledTemplate, FallbackFunction, LogTemplateCompiler, standard_fields
from .metrics import AuditMetrics
from .pipeline import AuditPipeline
from .redaction import OperationRedactor, RedactionConfig
from .whitelist import (
    CombinedWhitelistFilter,
    NoWhitelistFilter,
    RolesFunction,
    RoleWhitelistFilter,
    StaticWhitelistFilter,
    WhitelistCache,
    WhitelistFilter,
    WhitelistLookup,
)

logger = logging.getLogger("dbaudit.factory")


def create_backend(config: AuditConfig) -> AuditBackend:
    """Create the configured audit backend."""
    if config.backend.type == BackendType.JSONL:
        backend_config = JsonlBackendConfig.model_validate(
            config.backend.model_dump(include=set(JsonlBackendConfig.model_fields))
        )
        return JsonlFileBackend(backend_config)
    return LoggingBackend()


def create_filter(
    config: AuditConfig,
    roles_of: RolesFunction | None = None,
    whitelist_lookup: WhitelistLookup | None = None,
) -> WhitelistFilter:
    """Create the configured whitelist filter.

    Raises:
        ConfigurationError: If role filtering is configured without a roles
            function or whitelist lookup
    """
    if config.filter == FilterType.NONE:
        return NoWhitelistFilter()

    static_filter = StaticWhitelistFilter(config.whitelist)
    if config.filter == FilterType.STATIC:
        return static_filter

    if roles_of is None or whitelist_lookup is None:
        raise ConfigurationError(
            f"Filter '{config.filter.value}' requires a roles function and a whitelist lookup"
        )

    cache = WhitelistCache(
        whitelist_lookup,
        validity_seconds=config.whitelist_cache.validity_seconds,
        max_entries=config.whitelist_cache.max_entries,
    )
    role_filter = RoleWhitelistFilter(roles_of, cache)
    if config.filter == FilterType.ROLE:
        return role_filter

    return CombinedWhitelistFilter(static_filter, role_filter)


def compile_log_format(
    logger_config: LoggerConfig,
    backend: AuditBackend,
    fallback: FallbackFunction | None = None,
) -> CompiledTemplate:
    """Compile the configured log format for a backend.

    A configured anchor or escape must be the one the backend substitutes
    with; the backend defaults are used when they are not configured.

    Raises:
        ConfigurationError: On unknown fields, an invalid time format/zone, or
            an anchor or escape the backend cannot substitute
    """
    anchor = logger_config.anchor or backend.anchor
    escape = logger_config.escape if logger_config.escape is not None else backend.escape
    backend_name = type(backend).__name__

    if anchor != backend.anchor:
        raise ConfigurationError(
            f"Log format anchor {anchor!r} is not supported by {backend_name}, "
            f"which substitutes {backend.anchor!r}"
        )
    if escape != backend.escape:
        raise ConfigurationError(
            f"Log format escape {escape!r} is not supported by {backend_name}, "
            f"which requires {backend.escape!r}"
        )

    compiler = LogTemplateCompiler(
        standard_fields(logger_config.time_format, logger_config.time_zone),
        anchor=anchor,
        escape=escape,
        fallback=fallback,
    )
    return compiler.compile(logger_config.format)


def build_pipeline(
    config: AuditConfig,
    roles_of: RolesFunction | None = None,
    whitelist_lookup: WhitelistLookup | None = None,
    backend: AuditBackend | None = None,
    registry: CollectorRegistry | None = None,
    fallback: FallbackFunction | None = None,
) -> AuditPipeline:
    """Build a ready to use pipeline.

    Args:
        config: Audit configuration
        roles_of: Roles granted to a principal (required for role filtering)
        whitelist_lookup: Role whitelist lookup (required for role filtering)
        backend: Backend to use instead of the configured one
        registry: Prometheus registry for pipeline timings
        fallback: Resolver for log format fields missing from the registry

    Returns:
        AuditPipeline after setup

    Raises:
        ConfigurationError: If the configuration cannot be realized
    """
    whitelist_filter = create_filter(config, roles_of, whitelist_lookup)
    backend = backend or create_backend(config)
    template = compile_log_format(config.logger, backend, fallback)
    redactor = OperationRedactor(
        RedactionConfig(redact_unknown_operation=config.redact_unknown_operation)
    )

    pipeline = AuditPipeline(
        template=template,
        backend=backend,
        whitelist_filter=whitelist_filter,
        redactor=redactor,
        metrics=AuditMetrics(registry),
        timing_strategy=config.log_timing_strategy,
        suppress_prepare_statements=config.suppress_prepare_statements,
    )
    pipeline.setup()
    return pipeline


__all__ = ["create_backend", "create_filter", "compile_log_format", "build_pipeline"]
