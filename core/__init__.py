"""
Core handlers for the probe cycle.

This package provides separated handlers following Single Responsibility Principle:
- ProbeHandler: Executes one outbound ping and returns results
- MetricsHandler: Updates Prometheus metrics

Background Task System:
- BackgroundTask: ABC for all periodic background tasks
- ProberTask: One prober per resolved remote endpoint
- TaskOrchestrator: Registry and lifecycle manager for background tasks
"""

from .probe_handler import ProbeHandler, ProbeResult
from .metrics_handler import MetricsHandler

# Background task infrastructure
from .background_task import BackgroundTask
from .prober_task import ProberTask
from .task_orchestrator import TaskOrchestrator

__all__ = [
    "ProbeHandler",
    "ProbeResult",
    "MetricsHandler",
    "BackgroundTask",
    "ProberTask",
    "TaskOrchestrator",
]
