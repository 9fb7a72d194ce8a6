from __future__ import annotations

"""Prometheus metrics handle and the standalone metrics server."""

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Probe latency buckets in milliseconds
LATENCY_BUCKETS_MS = (0.1, 1, 5, 10, 25, 50, 100, 200, 500, 1000, 5000)


class ProberMetrics:
    """Metrics sink shared by probers and the inbound handler.

    Every metric lives in ``registry`` instead of the process-wide default
    registry, so tests and multiple instances never collide.
    """

    def __init__(
        self,
        namespace: str = "payments",
        availability_zone: str = "",
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.namespace = namespace
        self.availability_zone = availability_zone
        self.registry = registry if registry is not None else CollectorRegistry()

        self.request_duration_ms = Histogram(
            f"{namespace}_request_duration_ms",
            "Ping latency distributions.",
            ["availability_zone", "endpoint", "outcome"],
            buckets=LATENCY_BUCKETS_MS,
            registry=self.registry,
        )
        self.probes_total = Counter(
            f"{namespace}_probes_total",
            "Outbound pings by outcome.",
            ["availability_zone", "endpoint", "outcome"],
            registry=self.registry,
        )
        self.ping_requests = Counter(
            f"{namespace}_ping_request_count",
            "Inbound ping requests by source address.",
            ["availability_zone", "remote_ip"],
            registry=self.registry,
        )
        self.probe_targets = Gauge(
            f"{namespace}_probe_targets",
            "Number of running probers.",
            ["availability_zone"],
            registry=self.registry,
        )

    def render(self) -> bytes:
        """Text exposition of the registry."""
        return generate_latest(self.registry)


class MetricsHTTPServer(ThreadingHTTPServer):
    """HTTP server carrying the metrics handle for its request handlers."""

    daemon_threads = True

    def __init__(self, server_address: tuple[str, int], metrics: ProberMetrics, request_timeout: float) -> None:
        self.metrics = metrics
        self.request_timeout = request_timeout
        super().__init__(server_address, MetricsRequestHandler)


class MetricsRequestHandler(BaseHTTPRequestHandler):
    """Serves /metrics and /healthz for scrapers."""

    server: MetricsHTTPServer

    def setup(self) -> None:
        self.timeout = self.server.request_timeout
        super().setup()

    def do_GET(self) -> None:
        """Handle GET requests for metrics."""
        route = self.path.split("?", 1)[0]
        if route == "/metrics":
            try:
                data = self.server.metrics.render()
            except Exception as exc:
                logging.error(f"Metrics error: {exc}")
                self.send_error(500, "Internal Server Error")
                return
            self._send(200, data, CONTENT_TYPE_LATEST)
        elif route == "/healthz":
            self._send(200, b"OK", "text/plain; charset=utf-8")
        else:
            self.send_error(404)

    def _send(self, status: int, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        """Route access logs to debug."""
        logging.debug(f"Metrics server: {format % args}")


class MetricsServer:
    """Prometheus metrics HTTP server running in a background thread."""

    def __init__(
        self,
        metrics: ProberMetrics,
        addr: str = "0.0.0.0",
        port: int = 8001,
        request_timeout: float = 15.0,
    ) -> None:
        self.metrics = metrics
        self.addr = addr
        self.port = port
        self.request_timeout = request_timeout
        self.server: MetricsHTTPServer | None = None
        self.thread: threading.Thread | None = None

    def start(self) -> None:
        """Bind and serve in a background thread. Bind errors propagate."""
        if self.server is not None:
            return

        self.server = MetricsHTTPServer((self.addr, self.port), self.metrics, self.request_timeout)
        self.port = self.server.server_address[1]
        self.thread = threading.Thread(
            target=self.server.serve_forever,
            name="metrics-server",
            daemon=True,
        )
        self.thread.start()
        logging.info(f"Metrics server started on http://{self.addr}:{self.port}")

    def stop(self) -> None:
        """Stop metrics server."""
        if self.server is None:
            return
        self.server.shutdown()
        self.server.server_close()
        self.server = None
        logging.info("Metrics server stopped")


def start_metrics_server(
    metrics: ProberMetrics,
    addr: str = "0.0.0.0",
    port: int = 8001,
    request_timeout: float = 15.0,
) -> MetricsServer:
    """Create and start the Prometheus metrics HTTP server.

    Args:
        metrics: Metrics handle whose registry is exposed
        addr: Network address to bind to
        port: Port to listen on
        request_timeout: Socket read/write timeout per connection

    Returns:
        Started MetricsServer instance
    """
    server = MetricsServer(metrics, addr=addr, port=port, request_timeout=request_timeout)
    server.start()
    return server
