from __future__ import annotations

"""Inbound ping listener: /ping, /healthz and /metrics behind a PROXY-aware socket."""

import logging
import socket
import threading
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Iterator

from prometheus_client import CONTENT_TYPE_LATEST

from infrastructure.proxy_protocol import ProxyProtocolError, read_proxy_header

if TYPE_CHECKING:
    from core.metrics_handler import MetricsHandler


class PingHTTPServer(ThreadingHTTPServer):
    """Threaded HTTP server that keeps track of in-flight requests.

    Open connections and in-flight requests are tracked so ``stop()`` can
    drain them for a bounded grace period before closing what is left.
    """

    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        metrics_handler: MetricsHandler,
        proxy_protocol: bool = True,
        request_timeout: float = 15.0,
    ) -> None:
        self.metrics_handler = metrics_handler
        self.proxy_protocol = proxy_protocol
        self.request_timeout = request_timeout
        self.draining = False
        self.closed = False
        self._inflight = 0
        self._connections: set[socket.socket] = set()
        self._cond = threading.Condition()
        super().__init__(server_address, PingRequestHandler)

    @contextmanager
    def track_request(self) -> Iterator[bool]:
        """Count a request as in flight. Yields False once the server is closed."""
        with self._cond:
            admitted = not self.closed
            if admitted:
                self._inflight += 1
        try:
            yield admitted
        finally:
            if admitted:
                with self._cond:
                    self._inflight -= 1
                    self._cond.notify_all()

    def add_connection(self, conn: socket.socket) -> None:
        with self._cond:
            self._connections.add(conn)

    def remove_connection(self, conn: socket.socket) -> None:
        with self._cond:
            self._connections.discard(conn)

    @property
    def inflight(self) -> int:
        with self._cond:
            return self._inflight

    def close_admission(self, timeout: float) -> bool:
        """Wait up to timeout for in-flight requests, then refuse new ones.

        Both happen under one lock, so no request can start between the
        drain finishing and the connections being shut down.
        """
        with self._cond:
            drained = self._cond.wait_for(lambda: self._inflight == 0, timeout=timeout)
            self.closed = True
            return drained

    def close_connections(self) -> int:
        """Forcibly shut down every connection still open."""
        with self._cond:
            remaining = list(self._connections)
        for conn in remaining:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        return len(remaining)


class PingRequestHandler(BaseHTTPRequestHandler):
    """HTTP handler answering probe requests from other nodes."""

    server: PingHTTPServer
    server_version = "spike-echo"
    protocol_version = "HTTP/1.1"

    def setup(self) -> None:
        self.timeout = self.server.request_timeout
        super().setup()
        self.server.add_connection(self.connection)
        self.proxy_header = None
        self._rejected = False
        if not self.server.proxy_protocol:
            return
        try:
            self.proxy_header, self.rfile = read_proxy_header(self.rfile)
        except ProxyProtocolError as exc:
            logging.warning(f"Dropping connection from {self.client_address[0]}: {exc}")
            self._rejected = True
            return
        except OSError as exc:
            logging.debug(f"Connection from {self.client_address[0]} closed before request: {exc}")
            self._rejected = True
            return
        if self.proxy_header is not None and self.proxy_header.source is not None:
            self.client_address = self.proxy_header.source

    def handle(self) -> None:
        if self._rejected:
            return
        super().handle()

    def finish(self) -> None:
        try:
            super().finish()
        finally:
            self.server.remove_connection(self.connection)

    def do_GET(self) -> None:
        """Route GET requests."""
        with self.server.track_request() as admitted:
            if not admitted:
                self.close_connection = True
                return
            route = self.path.split("?", 1)[0]
            if route == "/ping":
                self._handle_ping()
            elif route == "/healthz":
                self._send(200, b"", "text/plain; charset=utf-8")
            elif route == "/metrics":
                self._handle_metrics()
            else:
                self.send_error(404)

    do_HEAD = do_GET

    def do_POST(self) -> None:
        """Discard the request body, then answer like GET."""
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            length = -1
        if length < 0:
            self.send_error(400, "Invalid Content-Length")
            return
        if self.headers.get("Transfer-Encoding", "").lower() == "chunked":
            # chunked bodies are not decoded, so the connection cannot be reused
            self.close_connection = True
        elif length:
            self.rfile.read(length)
        self.do_GET()

    def _handle_ping(self) -> None:
        self.server.metrics_handler.record_ping_request(self.client_address[0])
        self._send(200, b"ok", "text/plain; charset=utf-8")

    def _handle_metrics(self) -> None:
        try:
            data = self.server.metrics_handler.metrics.render()
        except Exception as exc:
            logging.error(f"Metrics error: {exc}")
            self.send_error(500, "Internal Server Error")
            return
        self._send(200, data, CONTENT_TYPE_LATEST)

    def _send(self, status: int, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        if self.server.draining:
            self.send_header("Connection", "close")
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        """Route access logs to debug."""
        logging.debug(f"Ping server: {self.address_string()} {format % args}")


class PingServer:
    """Inbound ping listener running in a background thread."""

    def __init__(
        self,
        metrics_handler: MetricsHandler,
        addr: str = "0.0.0.0",
        port: int = 8000,
        proxy_protocol: bool = True,
        request_timeout: float = 15.0,
    ) -> None:
        self.metrics_handler = metrics_handler
        self.addr = addr
        self.port = port
        self.proxy_protocol = proxy_protocol
        self.request_timeout = request_timeout
        self.server: PingHTTPServer | None = None
        self.thread: threading.Thread | None = None

    def start(self) -> None:
        """Bind the listener and serve in a background thread.

        Raises:
            OSError: the address cannot be bound.
        """
        if self.server is not None:
            return

        self.server = PingHTTPServer(
            (self.addr, self.port),
            metrics_handler=self.metrics_handler,
            proxy_protocol=self.proxy_protocol,
            request_timeout=self.request_timeout,
        )
        self.port = self.server.server_address[1]
        self.thread = threading.Thread(
            target=self.server.serve_forever,
            name="ping-server",
            daemon=True,
        )
        self.thread.start()
        proxy_desc = "PROXY protocol" if self.proxy_protocol else "plain TCP"
        logging.info(f"Ping server listening on {self.addr}:{self.port} ({proxy_desc})")

    def stop(self, grace: float = 5.0) -> bool:
        """Stop accepting connections, then drain in-flight requests.

        Returns True if every in-flight request finished within ``grace``.
        """
        if self.server is None:
            return True

        server = self.server
        self.server = None
        server.draining = True
        server.shutdown()
        server.server_close()

        drained = server.close_admission(grace)
        if not drained:
            logging.warning(f"Ping server: {server.inflight} requests still running after {grace}s grace period")
        closed = server.close_connections()
        if closed:
            logging.debug(f"Ping server: closed {closed} open connections")
        logging.info("Ping server stopped")
        return drained


def start_ping_server(
    metrics_handler: MetricsHandler,
    addr: str = "0.0.0.0",
    port: int = 8000,
    proxy_protocol: bool = True,
    request_timeout: float = 15.0,
) -> PingServer:
    """Create and start the inbound ping server.

    Args:
        metrics_handler: Sink for the per-source ping counter; its registry is
            served on /metrics
        addr: Network address to bind to
        port: Port to listen on (0 picks a free port)
        proxy_protocol: Expect an optional PROXY protocol header on every connection
        request_timeout: Socket read/write timeout per connection

    Returns:
        Started PingServer instance
    """
    server = PingServer(
        metrics_handler,
        addr=addr,
        port=port,
        proxy_protocol=proxy_protocol,
        request_timeout=request_timeout,
    )
    server.start()
    return server
