"""Audit configuration models and loader.

Configuration is read from a YAML file and can be overridden by environment
variables with the ``DBAUDIT_`` prefix.

File lookup (in order of precedence):
1. DBAUDIT_CONFIG_PATH environment variable
2. ./dbaudit.yaml
3. ./config/dbaudit.yaml
4. ~/.config/dbaudit/audit.yaml
5. Built-in defaults

Example file:

    filter: static_and_role
    whitelist:
      - cassandra
    log_timing_strategy: pre
    logger:
      format: "${TIMESTAMP}|user:${USER}{?|batch:${BATCH_ID}?}|${OPERATION}"
      time_format: "%Y-%m-%d %H:%M:%S"
      time_zone: UTC
    backend:
      type: jsonl
      path: /var/log/dbaudit/audit.jsonl

Any problem with an existing configuration file is fatal.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .backends import JsonlBackendConfig
from .errors import ConfigurationError
from .pipeline import LogTimingStrategy

logger = logging.getLogger("dbaudit.config")

DEFAULT_CONFIG_PATHS = [
    "./dbaudit.yaml",
    "./config/dbaudit.yaml",
    "~/.config/dbaudit/audit.yaml",
]

DEFAULT_LOG_FORMAT = (
    "client:'${CLIENT_IP}'|user:'${USER}'{?|batchId:'${BATCH_ID}'?}"
    "|status:'${STATUS}'|operation:'${OPERATION}'"
)


class FilterType(str, Enum):
    """Which whitelist sources are consulted."""

    NONE = "none"
    STATIC = "static"
    ROLE = "role"
    STATIC_AND_ROLE = "static_and_role"


class BackendType(str, Enum):
    LOGGING = "logging"
    JSONL = "jsonl"


class LoggerConfig(BaseModel):
    """Log line format.

    Attributes:
        format: Format string with ${FIELD} and {?text${FIELD}text?} fields
        anchor: Placeholder token; defaults to the backend's anchor
        escape: (pattern, replacement) for literal text; defaults to the
            backend's escape
        time_format: strftime format for TIMESTAMP; raw milliseconds if unset
        time_zone: IANA zone for TIMESTAMP; local zone if unset
    """

    model_config = ConfigDict(extra="forbid")

    format: str = DEFAULT_LOG_FORMAT
    anchor: str | None = None
    escape: tuple[str, str] | None = None
    time_format: str | None = None
    time_zone: str | None = None


class BackendConfig(JsonlBackendConfig):
    """Backend selection and file backend settings."""

    model_config = ConfigDict(extra="forbid")

    type: BackendType = BackendType.LOGGING


class WhitelistCacheConfig(BaseModel):
    """Role whitelist cache settings."""

    model_config = ConfigDict(extra="forbid")

    validity_seconds: float = Field(default=2.0, ge=0)
    max_entries: int = Field(default=1000, ge=1)


class AuditConfig(BaseModel):
    """Complete audit configuration.

    Attributes:
        filter: Whitelist sources to consult
        whitelist: Principals exempt from audit (static source)
        redact_unknown_operation: Redact events whose operation is unresolved
        suppress_prepare_statements: Do not audit statement preparation
        log_timing_strategy: pre (attempts) or post (outcomes)
        whitelist_cache: Role whitelist cache settings
        logger: Log line format
        backend: Audit backend
    """

    model_config = ConfigDict(extra="forbid")

    filter: FilterType = FilterType.NONE
    whitelist: list[str] = Field(default_factory=list)
    redact_unknown_operation: bool = True
    suppress_prepare_statements: bool = False
    log_timing_strategy: LogTimingStrategy = LogTimingStrategy.PRE
    whitelist_cache: WhitelistCacheConfig = Field(default_factory=WhitelistCacheConfig)
    logger: LoggerConfig = Field(default_factory=LoggerConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)

    @field_validator("whitelist")
    @classmethod
    def validate_whitelist(cls, v: list[str]) -> list[str]:
        for principal in v:
            if not principal or not principal.strip():
                raise ValueError("Whitelisted principal names must not be empty")
        return v


class AuditSettings(BaseSettings):
    """Environment overrides for the audit configuration."""

    model_config = SettingsConfigDict(env_prefix="DBAUDIT_", extra="ignore")

    config_path: Path | None = None
    filter: FilterType | None = None
    log_timing_strategy: LogTimingStrategy | None = None
    redact_unknown_operation: bool | None = None
    suppress_prepare_statements: bool | None = None
    log_format: str | None = None


def load_config_from_file(path: str | Path) -> AuditConfig:
    """Load audit configuration from a YAML file.

    Args:
        path: Path to the configuration file

    Returns:
        AuditConfig instance

    Raises:
        ConfigurationError: If the file cannot be read, parsed or validated
    """
    path = Path(path).expanduser().resolve()

    if not path.is_file():
        raise ConfigurationError(f"Audit configuration file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in audit configuration: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read audit configuration: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Audit configuration must contain a YAML mapping")

    try:
        config = AuditConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid audit configuration in {path}: {e}") from e

    logger.info(f"Loaded audit configuration from {path}")
    return config


def apply_env_overrides(config: AuditConfig, settings: AuditSettings | None = None) -> AuditConfig:
    """Apply DBAUDIT_* environment overrides to a configuration.

    Supported overrides: DBAUDIT_FILTER, DBAUDIT_LOG_TIMING_STRATEGY,
    DBAUDIT_REDACT_UNKNOWN_OPERATION, DBAUDIT_SUPPRESS_PREPARE_STATEMENTS,
    DBAUDIT_LOG_FORMAT.
    """
    settings = settings or AuditSettings()
    updates: dict = {}

    if settings.filter is not None:
        updates["filter"] = settings.filter
    if settings.log_timing_strategy is not None:
        updates["log_timing_strategy"] = settings.log_timing_strategy
    if settings.redact_unknown_operation is not None:
        updates["redact_unknown_operation"] = settings.redact_unknown_operation
    if settings.suppress_prepare_statements is not None:
        updates["suppress_prepare_statements"] = settings.suppress_prepare_statements
    if settings.log_format is not None:
        updates["logger"] = config.logger.model_copy(update={"format": settings.log_format})

    if updates:
        logger.info(f"Audit configuration environment overrides: {sorted(updates)}")
        config = config.model_copy(update=updates)

    return config


def load_config(path: str | Path | None = None) -> AuditConfig:
    """Load audit configuration.

    Args:
        path: Explicit configuration file; searched for when None

    Returns:
        AuditConfig with environment overrides applied

    Raises:
        ConfigurationError: If a configuration file exists but is invalid
    """
    settings = AuditSettings()
    config: AuditConfig | None = None

    if path is None:
        path = settings.config_path

    if path is not None:
        config = load_config_from_file(path)
    else:
        for path_str in DEFAULT_CONFIG_PATHS:
            candidate = Path(path_str).expanduser()
            if candidate.exists():
                config = load_config_from_file(candidate)
                break

    if config is None:
        logger.info("No audit configuration file found, using defaults")
        config = AuditConfig()

    return apply_env_overrides(config, settings)


__all__ = [
    "DEFAULT_CONFIG_PATHS",
    "DEFAULT_LOG_FORMAT",
    "FilterType",
    "BackendType",
    "LoggerConfig",
    "BackendConfig",
    "WhitelistCacheConfig",
    "AuditConfig",
    "AuditSettings",
    "load_config_from_file",
    "apply_env_overrides",
    "load_config",
]
