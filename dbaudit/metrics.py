"""Timing metrics for the audit pipeline.

Two histograms are recorded:
- dbaudit_filter_seconds: time spent deciding whether an event is exempt
- dbaudit_log_seconds: time spent redacting, rendering and emitting an event

The registry is passed in by the process wiring rather than using the
prometheus_client global registry, so several pipelines (and tests) never
collide on metric names.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Histogram

FILTER_METRIC = "dbaudit_filter_seconds"
LOG_METRIC = "dbaudit_log_seconds"

# Audit runs inline with every client request, so buckets start at 10us
_LATENCY_BUCKETS = (
    0.00001,
    0.000025,
    0.00005,
    0.0001,
    0.00025,
    0.0005,
    0.001,
    0.0025,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.5,
    1.0,
)


class AuditMetrics:
    """Histograms for the two timed phases of the pipeline."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._filter_latency = Histogram(
            FILTER_METRIC,
            "Time spent filtering audit events against whitelists",
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self._log_latency = Histogram(
            LOG_METRIC,
            "Time spent redacting, rendering and emitting audit events",
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )

    def filter_audit_request(self, seconds: float) -> None:
        """Record time spent filtering a request for audit."""
        self._filter_latency.observe(seconds)

    def log_audit_request(self, seconds: float) -> None:
        """Record time spent audit logging a request."""
        self._log_latency.observe(seconds)

    def filter_count(self) -> float:
        return self.registry.get_sample_value(f"{FILTER_METRIC}_count") or 0.0

    def log_count(self) -> float:
        return self.registry.get_sample_value(f"{LOG_METRIC}_count") or 0.0


__all__ = ["FILTER_METRIC", "LOG_METRIC", "AuditMetrics"]
