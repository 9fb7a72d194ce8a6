from __future__ import annotations

"""Infrastructure layer for metrics, the ping listener and PROXY protocol."""

from .metrics import (
    LATENCY_BUCKETS_MS,
    MetricsServer,
    ProberMetrics,
    start_metrics_server,
)
from .ping_server import PingServer, start_ping_server
from .proxy_protocol import ProxyHeader, ProxyProtocolError, read_proxy_header

__all__ = [
    # Metrics
    "LATENCY_BUCKETS_MS",
    "MetricsServer",
    "ProberMetrics",
    "start_metrics_server",
    # Ping listener
    "PingServer",
    "start_ping_server",
    # PROXY protocol
    "ProxyHeader",
    "ProxyProtocolError",
    "read_proxy_header",
]
