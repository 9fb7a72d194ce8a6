"""
Metrics handler - updates Prometheus metrics.

Single Responsibility: Turn probe results and inbound pings into observations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from infrastructure.metrics import ProberMetrics
    from .probe_handler import ProbeResult


class MetricsHandler:
    """
    Handles Prometheus metrics updates.

    Every observation carries the configured availability zone so that
    all series share one labeling scheme.
    """

    def __init__(self, metrics: ProberMetrics) -> None:
        self.metrics = metrics

    @property
    def zone(self) -> str:
        return self.metrics.availability_zone

    def record_probe(self, result: ProbeResult) -> None:
        """
        Record one probe observation.

        Args:
            result: Result from ProbeHandler
        """
        labels = (self.zone, result.endpoint, result.outcome)
        self.metrics.request_duration_ms.labels(*labels).observe(result.latency_ms)
        self.metrics.probes_total.labels(*labels).inc()

    def record_ping_request(self, remote_ip: str) -> None:
        """Count one inbound ping from remote_ip."""
        self.metrics.ping_requests.labels(self.zone, remote_ip).inc()

    def set_probe_targets(self, count: int) -> None:
        self.metrics.probe_targets.labels(self.zone).set(count)
