"""Audit backends receiving rendered audit records.

A backend gets the constant template and the positional arguments of one
audit record. Two backends are provided:
- LoggingBackend: hands template and arguments to a standard library logger
  (``dbaudit.audit``) so handlers can keep the template for aggregation
- JsonlFileBackend: writes one JSON object per record with size based
  rotation

Writes are synchronous. A record that cannot be committed raises
``BackendEmitError``; nothing is buffered or dropped.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from .errors import BackendEmitError
from .formatter import DEFAULT_ANCHOR, EscapeSpec

logger = logging.getLogger("dbaudit.backends")

AUDIT_LOGGER_NAME = "dbaudit.audit"

PERCENT_ESCAPE: EscapeSpec = ("%", "%%")


def substitute(template: str, arguments: Sequence[str]) -> str:
    """Substitute arguments into a ``%s`` anchored, ``%`` escaped template.

    Raises:
        BackendEmitError: If the template does not fit the arguments
    """
    try:
        return template % tuple(arguments)
    except (TypeError, ValueError) as e:
        raise BackendEmitError(f"Cannot substitute audit record into {template!r}: {e}") from e


class AuditBackend(ABC):
    """Sink for rendered audit records.

    Attributes:
        anchor: Anchor token the backend expects in templates
        escape: Escape applied to literal template text for this backend
    """

    anchor: str = DEFAULT_ANCHOR
    escape: EscapeSpec | None = PERCENT_ESCAPE

    @abstractmethod
    def emit(self, template: str, arguments: Sequence[str]) -> None:
        """Commit one audit record."""

    def close(self) -> None:
        """Release resources held by the backend."""


class LoggingBackend(AuditBackend):
    """Emits audit records through a standard library logger."""

    def __init__(self, audit_logger: logging.Logger | None = None, level: int = logging.INFO):
        self._logger = audit_logger or logging.getLogger(AUDIT_LOGGER_NAME)
        self.level = level

    def emit(self, template: str, arguments: Sequence[str]) -> None:
        # Handlers swallow formatting errors, so substitute before handing over
        message = substitute(template, arguments)
        if arguments:
            self._logger.log(self.level, template, *arguments)
        else:
            # logging only applies %-formatting when arguments are given
            self._logger.log(self.level, message)


class JsonlBackendConfig(BaseModel):
    """Configuration for the JSONL file backend.

    Attributes:
        path: Path to the audit log file
        max_file_size_bytes: Size that triggers rotation
        max_files: Maximum number of files kept, including the active one
        rotate_on_startup: Rotate an existing file when the backend starts
    """

    path: Path = Field(default=Path("./logs/audit.jsonl"))
    max_file_size_bytes: int = 100 * 1024 * 1024
    max_files: int = Field(default=10, ge=1)
    rotate_on_startup: bool = False


class JsonlFileBackend(AuditBackend):
    """Writes audit records as JSON lines with size based rotation.

    Each line holds the rendered message together with the template and
    arguments it was built from. Thread-safe.
    """

    def __init__(self, config: JsonlBackendConfig | None = None):
        self.config = config or JsonlBackendConfig()
        self._file_handle: Any | None = None
        self._lock = threading.Lock()
        self._current_file_size = 0

        if self.config.rotate_on_startup and self.config.path.exists():
            try:
                self._rotate_logs()
            except OSError as e:
                raise BackendEmitError(f"Failed to rotate audit log on startup: {e}") from e
        self._open()

    def _open(self) -> None:
        """Open the log file, creating directories if needed."""
        path = self.config.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)

            self._file_handle = open(path, "a", encoding="utf-8")
            self._current_file_size = path.stat().st_size
        except OSError as e:
            raise BackendEmitError(f"Failed to open audit log {path}: {e}") from e

        logger.info(f"Audit log opened: {path}")

    def _rotate_logs(self) -> None:
        """Rename the active file and prune old rotated files."""
        path = self.config.path

        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

        timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S_%f")
        rotated_path = path.parent / f"{path.stem}_{timestamp}{path.suffix}"

        path.rename(rotated_path)
        logger.info(f"Rotated audit log to: {rotated_path}")

        self._cleanup_old_logs()
        self._current_file_size = 0

    def _cleanup_old_logs(self) -> None:
        """Remove rotated files beyond the max_files limit."""
        path = self.config.path
        rotated_files = sorted(
            path.parent.glob(f"{path.stem}_*{path.suffix}"),
            key=lambda p: p.name,
            reverse=True,
        )

        for old_file in rotated_files[self.config.max_files - 1 :]:
            try:
                old_file.unlink()
                logger.debug(f"Removed old audit log: {old_file}")
            except OSError as e:
                logger.warning(f"Failed to remove old audit log {old_file}: {e}")

    def _should_rotate(self) -> bool:
        return self._current_file_size >= self.config.max_file_size_bytes

    def emit(self, template: str, arguments: Sequence[str]) -> None:
        record = {
            "timestamp": datetime.now(UTC).isoformat(),
            "message": substitute(template, arguments),
            "template": template,
            "arguments": list(arguments),
        }
        line = json.dumps(record) + "\n"

        with self._lock:
            try:
                if self._file_handle is None:
                    self._open()
                elif self._should_rotate():
                    self._rotate_logs()
                    self._open()

                self._file_handle.write(line)
                self._file_handle.flush()
            except OSError as e:
                raise BackendEmitError(f"Failed to write audit record: {e}") from e

            self._current_file_size += len(line.encode("utf-8"))

    def close(self) -> None:
        with self._lock:
            if self._file_handle:
                self._file_handle.close()
                self._file_handle = None


__all__ = [
    "AUDIT_LOGGER_NAME",
    "PERCENT_ESCAPE",
    "substitute",
    "AuditBackend",
    "LoggingBackend",
    "JsonlBackendConfig",
    "JsonlFileBackend",
]
