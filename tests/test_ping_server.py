from __future__ import annotations

import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from infrastructure.ping_server import PingServer, start_ping_server


def raw_request(port: int, payload: bytes) -> bytes:
    """Send raw bytes and read the response until the server closes."""
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        sock.sendall(payload)
        chunks = []
        while True:
            try:
                chunk = sock.recv(4096)
            except ConnectionResetError:
                break
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def ping_count(metrics, remote_ip: str) -> float | None:
    return metrics.registry.get_sample_value(
        "payments_ping_request_count_total",
        {"availability_zone": "az-1", "remote_ip": remote_ip},
    )


@pytest.fixture
def ping_server(metrics_handler):
    server = start_ping_server(metrics_handler, addr="127.0.0.1", port=0, request_timeout=5.0)
    yield server
    server.stop(grace=1.0)


def test_ping_returns_ok(ping_server, metrics) -> None:
    response = requests.get(f"http://127.0.0.1:{ping_server.port}/ping", timeout=5)

    assert response.status_code == 200
    assert response.text == "ok"
    assert ping_count(metrics, "127.0.0.1") == 1


def test_healthz_returns_empty_200(ping_server) -> None:
    response = requests.get(f"http://127.0.0.1:{ping_server.port}/healthz", timeout=5)

    assert response.status_code == 200
    assert response.content == b""


def test_metrics_exposes_registry(ping_server) -> None:
    requests.get(f"http://127.0.0.1:{ping_server.port}/ping", timeout=5)

    response = requests.get(f"http://127.0.0.1:{ping_server.port}/metrics", timeout=5)

    assert response.status_code == 200
    assert response.headers["Content-Type"].startswith("text/plain")
    assert 'payments_ping_request_count_total{availability_zone="az-1",remote_ip="127.0.0.1"} 1.0' in response.text


def test_unknown_path_is_404(ping_server) -> None:
    response = requests.get(f"http://127.0.0.1:{ping_server.port}/nope", timeout=5)

    assert response.status_code == 404


def test_head_ping_has_no_body(ping_server) -> None:
    response = requests.head(f"http://127.0.0.1:{ping_server.port}/ping", timeout=5)

    assert response.status_code == 200
    assert response.content == b""


def test_concurrent_pings_all_answered(ping_server, metrics) -> None:
    url = f"http://127.0.0.1:{ping_server.port}/ping"

    with ThreadPoolExecutor(max_workers=8) as pool:
        responses = list(pool.map(lambda _: requests.get(url, timeout=5), range(40)))

    assert all(r.status_code == 200 and r.text == "ok" for r in responses)
    assert ping_count(metrics, "127.0.0.1") == 40


def test_keep_alive_connection_serves_several_pings(ping_server, metrics) -> None:
    with requests.Session() as session:
        for _ in range(3):
            assert session.get(f"http://127.0.0.1:{ping_server.port}/ping", timeout=5).text == "ok"

    assert ping_count(metrics, "127.0.0.1") == 3


def test_proxy_v1_header_sets_counted_source(ping_server, metrics) -> None:
    response = raw_request(
        ping_server.port,
        b"PROXY TCP4 203.0.113.7 10.0.0.1 56324 8000\r\n"
        b"GET /ping HTTP/1.1\r\nHost: peer\r\nConnection: close\r\n\r\n",
    )

    assert response.startswith(b"HTTP/1.1 200")
    assert response.endswith(b"\r\n\r\nok")
    assert ping_count(metrics, "203.0.113.7") == 1
    assert ping_count(metrics, "127.0.0.1") is None


def test_malformed_proxy_header_drops_connection(ping_server, metrics) -> None:
    response = raw_request(
        ping_server.port,
        b"PROXY TCP4 nowhere 10.0.0.1 1 2\r\nGET /ping HTTP/1.1\r\nHost: peer\r\n\r\n",
    )

    assert response == b""
    assert ping_count(metrics, "127.0.0.1") is None


def test_proxy_header_rejected_when_disabled(metrics_handler) -> None:
    server = start_ping_server(metrics_handler, addr="127.0.0.1", port=0, proxy_protocol=False)
    try:
        response = raw_request(
            server.port,
            b"PROXY TCP4 203.0.113.7 10.0.0.1 56324 8000\r\nGET /ping HTTP/1.1\r\nHost: peer\r\n\r\n",
        )
    finally:
        server.stop(grace=1.0)

    # the PROXY line is parsed as a request line and refused
    assert b"400" in response
    assert not response.endswith(b"ok")


def test_bind_failure_raises(metrics_handler) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        server = PingServer(metrics_handler, addr="127.0.0.1", port=busy.getsockname()[1])

        with pytest.raises(OSError):
            server.start()


def test_stop_refuses_new_connections(metrics_handler) -> None:
    server = start_ping_server(metrics_handler, addr="127.0.0.1", port=0)
    port = server.port

    assert server.stop(grace=1.0) is True

    with pytest.raises(requests.exceptions.ConnectionError):
        requests.get(f"http://127.0.0.1:{port}/ping", timeout=2)


def test_stop_drains_in_flight_request(metrics_handler, monkeypatch) -> None:
    server = start_ping_server(metrics_handler, addr="127.0.0.1", port=0)
    original = metrics_handler.record_ping_request

    def slow_record(remote_ip: str) -> None:
        time.sleep(0.5)
        original(remote_ip)

    monkeypatch.setattr(metrics_handler, "record_ping_request", slow_record)
    results = []
    client = threading.Thread(
        target=lambda: results.append(requests.get(f"http://127.0.0.1:{server.port}/ping", timeout=5)),
    )
    client.start()

    deadline = time.monotonic() + 2
    while server.server.inflight == 0 and time.monotonic() < deadline:
        time.sleep(0.01)

    assert server.stop(grace=3.0) is True
    client.join(timeout=5)
    assert results[0].status_code == 200


def test_stop_gives_up_after_grace_period(metrics_handler, monkeypatch) -> None:
    server = start_ping_server(metrics_handler, addr="127.0.0.1", port=0)
    monkeypatch.setattr(metrics_handler, "record_ping_request", lambda remote_ip: time.sleep(3))

    def stuck_client() -> None:
        try:
            requests.get(f"http://127.0.0.1:{server.port}/ping", timeout=5)
        except requests.exceptions.RequestException:
            pass

    client = threading.Thread(target=stuck_client, daemon=True)
    client.start()

    deadline = time.monotonic() + 2
    while server.server.inflight == 0 and time.monotonic() < deadline:
        time.sleep(0.01)

    started = time.monotonic()
    assert server.stop(grace=0.2) is False
    assert time.monotonic() - started < 2


def test_post_body_does_not_leak_into_next_request(ping_server, metrics) -> None:
    response = raw_request(
        ping_server.port,
        b"POST /ping HTTP/1.1\r\nHost: peer\r\nContent-Length: 5\r\n\r\nhello"
        b"GET /ping HTTP/1.1\r\nHost: peer\r\nConnection: close\r\n\r\n",
    )

    assert response.count(b"HTTP/1.1 200 OK") == 2
    assert b"501" not in response
    assert ping_count(metrics, "127.0.0.1") == 2


def test_post_with_bad_content_length_is_rejected(ping_server, metrics) -> None:
    response = raw_request(
        ping_server.port,
        b"POST /ping HTTP/1.1\r\nHost: peer\r\nContent-Length: abc\r\n\r\n",
    )

    assert response.startswith(b"HTTP/1.1 400")
    assert ping_count(metrics, "127.0.0.1") is None


def test_requests_after_drain_are_not_started(metrics_handler, metrics) -> None:
    server = start_ping_server(metrics_handler, addr="127.0.0.1", port=0)
    httpd = server.server
    with socket.create_connection(("127.0.0.1", server.port), timeout=5) as sock:
        sock.sendall(b"GET /ping HTTP/1.1\r\nHost: peer\r\n\r\n")
        assert sock.recv(4096).startswith(b"HTTP/1.1 200")

        assert server.stop(grace=1.0) is True

        # the idle keep-alive connection now gets nothing served
        with httpd.track_request() as admitted:
            assert admitted is False
        assert httpd.inflight == 0
        try:
            sock.sendall(b"GET /ping HTTP/1.1\r\nHost: peer\r\n\r\n")
            late = sock.recv(4096)
        except OSError:
            late = b""

    assert late == b""
    assert ping_count(metrics, "127.0.0.1") == 1
