"""The audit pipeline.

Every audited call passes through the same linear sequence:

    RECEIVED -> EVALUATED (exempt | audit) -> REDACTED -> RENDERED -> EMITTED

Exempt events stop after evaluation. The evaluation phase and the
redact/render/emit phase are timed separately, and timings are recorded even
when a phase raises. Errors are never swallowed: a failing whitelist lookup,
render or backend write propagates to the host, and the backend is only
called with a completely rendered record.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from enum import Enum

from .backends import AuditBackend
from .entry import AuditEvent, Status
from .errors import ConfigurationError
from .formatter import CompiledTemplate
from .metrics import AuditMetrics
from .redaction import OperationRedactor
from .whitelist import NoWhitelistFilter, WhitelistFilter

logger = logging.getLogger("dbaudit.pipeline")


class LogTimingStrategy(str, Enum):
    """When the host should produce audit events for a call.

    PRE logs the attempt before execution (and failures), POST logs the
    outcome after execution (successes and failures).
    """

    PRE = "pre"
    POST = "post"

    def should_log_for_status(self, status: Status) -> bool:
        if self is LogTimingStrategy.PRE:
            return status in (Status.ATTEMPT, Status.FAILED)
        return status in (Status.SUCCEEDED, Status.FAILED)

    def should_log_failed_batch_summary(self) -> bool:
        return self is LogTimingStrategy.PRE


class AuditPipeline:
    """Filters, redacts, renders and emits audit events.

    All collaborators are injected. The pipeline holds no per-event state and
    may be called concurrently from many threads, provided the whitelist
    lookup and backend synchronize themselves.

    Usage:
        pipeline = AuditPipeline(
            template=LogTemplateCompiler(standard_fields()).compile(DEFAULT_LOG_FORMAT),
            backend=LoggingBackend(),
        )
        pipeline.process(event)
    """

    def __init__(
        self,
        template: CompiledTemplate,
        backend: AuditBackend,
        whitelist_filter: WhitelistFilter | None = None,
        redactor: OperationRedactor | None = None,
        metrics: AuditMetrics | None = None,
        timing_strategy: LogTimingStrategy = LogTimingStrategy.PRE,
        suppress_prepare_statements: bool = False,
    ):
        self.backend = backend
        self._check_anchor(template)
        self.template = template
        self.whitelist_filter = whitelist_filter or NoWhitelistFilter()
        self.redactor = redactor or OperationRedactor()
        self.metrics = metrics or AuditMetrics()
        self.timing_strategy = timing_strategy
        self.suppress_prepare_statements = suppress_prepare_statements
        logger.info(
            f"Audit pipeline initialized: filter={type(self.whitelist_filter).__name__}, "
            f"backend={type(self.backend).__name__}, strategy={self.timing_strategy.value}"
        )

    def setup(self) -> None:
        """Prepare collaborators before the first event."""
        self.whitelist_filter.setup()

    def _check_anchor(self, template: CompiledTemplate) -> None:
        if template.anchor != self.backend.anchor:
            raise ConfigurationError(
                f"Template anchor {template.anchor!r} does not match the "
                f"{type(self.backend).__name__} anchor {self.backend.anchor!r}"
            )

    def reload_template(self, template: CompiledTemplate) -> None:
        """Swap the compiled template, e.g. after a configuration reload.

        Raises:
            ConfigurationError: If the template anchor does not match the backend
        """
        self._check_anchor(template)
        self.template = template
        logger.info(f"Audit log format reloaded: {template.format!r}")

    def should_log_for_status(self, status: Status) -> bool:
        return self.timing_strategy.should_log_for_status(status)

    def should_log_failed_batch_summary(self) -> bool:
        return self.timing_strategy.should_log_failed_batch_summary()

    def should_log_prepare_statements(self) -> bool:
        """Return True if the host should audit statement preparation."""
        return not self.suppress_prepare_statements

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def evaluate(self, event: AuditEvent) -> bool:
        """Return True if the event is exempt from audit."""
        return self.whitelist_filter.is_whitelisted(event)

    def redact(self, event: AuditEvent) -> AuditEvent:
        return self.redactor.redact(event)

    def render(self, event: AuditEvent) -> tuple[str, list[str]]:
        return self.template.render(event)

    def emit(self, template: str, arguments: Sequence[str]) -> None:
        self.backend.emit(template, arguments)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def process(self, event: AuditEvent) -> bool:
        """Audit one event.

        Args:
            event: The event produced for an audited call

        Returns:
            True if a record was emitted, False if the event was exempt
        """
        if self._is_exempt(event):
            logger.debug(f"Audit event of {event.principal} on {event.resource.name} is whitelisted")
            return False

        self._audit(event)
        return True

    def _is_exempt(self, event: AuditEvent) -> bool:
        start = time.perf_counter()
        try:
            return self.evaluate(event)
        finally:
            self.metrics.filter_audit_request(time.perf_counter() - start)

    def _audit(self, event: AuditEvent) -> None:
        start = time.perf_counter()
        try:
            redacted = self.redact(event)
            template, arguments = self.render(redacted)
            self.emit(template, arguments)
        finally:
            self.metrics.log_audit_request(time.perf_counter() - start)

    def close(self) -> None:
        self.backend.close()


__all__ = ["LogTimingStrategy", "AuditPipeline"]
