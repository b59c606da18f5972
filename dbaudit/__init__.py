"""dbaudit - audit decision pipeline for database servers.

Every client operation is turned into an AuditEvent by the host, checked
against whitelists, redacted of passwords, rendered with a compiled log
format and emitted to a backend.

Example usage:
    from dbaudit import AuditEvent, DataResource, Permission, build_pipeline, load_config

    pipeline = build_pipeline(load_config())
    pipeline.process(
        AuditEvent(
            principal="bob",
            client_address="10.0.0.1",
            operation="SELECT * FROM ks.tbl",
            permissions=frozenset({Permission.SELECT}),
            resource=DataResource("ks", "tbl"),
        )
    )
"""

from __future__ import annotations

__version__ = "0.1.0"

from .backends import AuditBackend, JsonlFileBackend, LoggingBackend
from .config import AuditConfig, load_config
from .entry import AuditEvent, Status
from .errors import (
    AuditError,
    BackendEmitError,
    ConfigurationError,
    InvalidWhitelistError,
    PolicyLookupError,
    RenderError,
)
from .factory import build_pipeline
from .formatter import CompiledTemplate, LogTemplateCompiler, standard_fields
from .metrics import AuditMetrics
from .pipeline import AuditPipeline, LogTimingStrategy
from .redaction import OperationRedactor, RedactionConfig
from .resources import (
    ConnectionResource,
    DataResource,
    FunctionResource,
    Permission,
    Resource,
    RoleResource,
    accepts,
    parse_resource,
)

__all__ = [
    "__version__",
    # Events and resources
    "AuditEvent",
    "Status",
    "Permission",
    "Resource",
    "ConnectionResource",
    "DataResource",
    "RoleResource",
    "FunctionResource",
    "accepts",
    "parse_resource",
    # Pipeline
    "AuditPipeline",
    "LogTimingStrategy",
    "AuditMetrics",
    "OperationRedactor",
    "RedactionConfig",
    "LogTemplateCompiler",
    "CompiledTemplate",
    "standard_fields",
    "AuditBackend",
    "LoggingBackend",
    "JsonlFileBackend",
    # Configuration
    "AuditConfig",
    "load_config",
    "build_pipeline",
    # Errors
    "AuditError",
    "ConfigurationError",
    "PolicyLookupError",
    "RenderError",
    "BackendEmitError",
    "InvalidWhitelistError",
]
