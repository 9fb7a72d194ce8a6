from __future__ import annotations

import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from config import Settings
from core import MetricsHandler
from infrastructure import ProberMetrics


def make_settings(**overrides) -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, **overrides)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class _TargetHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self) -> None:
        self.server.hits += 1
        if self.server.delay:
            time.sleep(self.server.delay)
        body = b"ok" if self.server.status == 200 else b"nope"
        self.send_response(self.server.status)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        pass


class FakePeer:
    """Throwaway HTTP peer answering /ping with a configurable status."""

    def __init__(self, status: int = 200, delay: float = 0.0) -> None:
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _TargetHandler)
        self.server.daemon_threads = True
        self.server.status = status
        self.server.delay = delay
        self.server.hits = 0
        self.port = self.server.server_address[1]
        self.url = f"http://127.0.0.1:{self.port}/ping"
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    @property
    def hits(self) -> int:
        return self.server.hits

    def close(self) -> None:
        self.server.shutdown()
        self.server.server_close()


@pytest.fixture
def metrics() -> ProberMetrics:
    return ProberMetrics(namespace="payments", availability_zone="az-1")


@pytest.fixture
def metrics_handler(metrics: ProberMetrics) -> MetricsHandler:
    return MetricsHandler(metrics)


@pytest.fixture
def remote_target():
    targets: list[FakePeer] = []

    def _start(status: int = 200, delay: float = 0.0) -> FakePeer:
        target = FakePeer(status=status, delay=delay)
        targets.append(target)
        return target

    yield _start
    for target in targets:
        target.close()
