"""
Probe handler - executes one outbound ping and returns results.

Single Responsibility: Execute probe operation and return structured result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from services import ProbeService


@dataclass
class ProbeResult:
    """Result of a probe operation."""
    success: bool
    latency_ms: float
    endpoint: str
    error: str | None = None

    @property
    def outcome(self) -> str:
        """Metric label value for this result."""
        return "success" if self.success else "failure"


class ProbeHandler:
    """
    Handles probe execution.

    Single Responsibility: Execute probe and return structured result.
    """

    def __init__(self, probe_service: ProbeService) -> None:
        self.probe_service = probe_service

    @property
    def endpoint(self) -> str:
        return self.probe_service.endpoint

    def execute(self) -> ProbeResult:
        """Execute probe and return result."""
        success, latency_ms, error = self.probe_service.ping()
        return ProbeResult(
            success=success,
            latency_ms=latency_ms,
            endpoint=self.endpoint,
            error=error,
        )
