from __future__ import annotations

"""PROXY protocol (v1 text and v2 binary) preamble reader.

A load balancer in front of the listener prepends one header to every
connection carrying the original client address. Connections without a
header are passed through unchanged.
"""

import io
import ipaddress
import struct
from dataclasses import dataclass
from typing import BinaryIO

V1_PREFIX = b"PROXY "
V1_MAX_LENGTH = 107
V2_SIGNATURE = b"\r\n\r\n\x00\r\nQUIT\n"
V2_HEADER_LENGTH = 16

# v2 address family -> (name, address bytes, block length)
_V2_FAMILIES = {
    0x0: ("UNSPEC", 0, 0),
    0x1: ("INET", 4, 12),
    0x2: ("INET6", 16, 36),
    0x3: ("UNIX", 0, 216),
}
_V1_FAMILIES = {"TCP4": ("INET", 4), "TCP6": ("INET6", 6)}


class ProxyProtocolError(ValueError):
    """Raised for a malformed or truncated PROXY header."""


@dataclass(frozen=True)
class ProxyHeader:
    """Parsed PROXY preamble."""
    version: int
    command: str
    family: str
    source: tuple[str, int] | None = None
    destination: tuple[str, int] | None = None


class _PushbackReader(io.RawIOBase):
    """Raw stream that replays already consumed bytes before the wrapped stream."""

    def __init__(self, prefix: bytes, stream: BinaryIO) -> None:
        super().__init__()
        self._prefix = prefix
        self._stream = stream

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._prefix:
            size = min(len(buffer), len(self._prefix))
            buffer[:size] = self._prefix[:size]
            self._prefix = self._prefix[size:]
            return size
        data = self._stream.read1(len(buffer))
        buffer[:len(data)] = data
        return len(data)

    def close(self) -> None:
        self._stream.close()
        super().close()


def _push_back(prefix: bytes, stream: BinaryIO) -> io.BufferedReader:
    return io.BufferedReader(_PushbackReader(prefix, stream))


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise ProxyProtocolError(f"truncated header: wanted {size} bytes, got {len(data)}")
    return data


def _parse_v1_address(value: str, version: int) -> str:
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        raise ProxyProtocolError(f"invalid address {value!r}") from None
    if address.version != version:
        raise ProxyProtocolError(f"address {value!r} is not IPv{version}")
    return str(address)


def _parse_v1_port(value: str) -> int:
    if not value.isdigit() or len(value) > 5 or int(value) > 65535:
        raise ProxyProtocolError(f"invalid port {value!r}")
    return int(value)


def _read_v1(stream: BinaryIO, consumed: bytes = b"") -> ProxyHeader:
    line = consumed + stream.readline(V1_MAX_LENGTH - len(consumed))
    if not line.endswith(b"\r\n"):
        raise ProxyProtocolError("v1 header is not terminated by CRLF within 107 bytes")
    try:
        parts = line[:-2].decode("ascii").split(" ")
    except UnicodeDecodeError:
        raise ProxyProtocolError("v1 header is not ASCII") from None

    if parts[1:2] == ["UNKNOWN"]:
        return ProxyHeader(version=1, command="UNKNOWN", family="UNSPEC")

    if len(parts) != 6 or parts[1] not in _V1_FAMILIES:
        raise ProxyProtocolError(f"malformed v1 header {line!r}")

    family, ip_version = _V1_FAMILIES[parts[1]]
    source = (_parse_v1_address(parts[2], ip_version), _parse_v1_port(parts[4]))
    destination = (_parse_v1_address(parts[3], ip_version), _parse_v1_port(parts[5]))
    return ProxyHeader(version=1, command="PROXY", family=family, source=source, destination=destination)


def _read_v2(stream: BinaryIO, consumed: bytes = b"") -> ProxyHeader:
    header = consumed + _read_exact(stream, V2_HEADER_LENGTH - len(consumed))
    version, command = header[12] >> 4, header[12] & 0x0F
    if version != 2:
        raise ProxyProtocolError(f"unsupported v2 version nibble {version}")
    if command not in (0x0, 0x1):
        raise ProxyProtocolError(f"unsupported v2 command {command}")

    family_code = header[13] >> 4
    if family_code not in _V2_FAMILIES:
        raise ProxyProtocolError(f"unsupported v2 address family {family_code}")
    family, address_size, block_length = _V2_FAMILIES[family_code]

    (length,) = struct.unpack("!H", header[14:16])
    payload = _read_exact(stream, length)

    if command == 0x0:
        # LOCAL: health checks from the proxy itself, keep the socket address
        return ProxyHeader(version=2, command="LOCAL", family=family)
    if length < block_length:
        raise ProxyProtocolError(f"v2 address block too short for {family}: {length} bytes")
    if address_size == 0:
        return ProxyHeader(version=2, command="PROXY", family=family)

    source_ip = ipaddress.ip_address(payload[:address_size])
    destination_ip = ipaddress.ip_address(payload[address_size:2 * address_size])
    source_port, destination_port = struct.unpack("!HH", payload[2 * address_size:block_length])
    return ProxyHeader(
        version=2,
        command="PROXY",
        family=family,
        source=(str(source_ip), source_port),
        destination=(str(destination_ip), destination_port),
    )


def read_proxy_header(stream: io.BufferedReader) -> tuple[ProxyHeader | None, io.BufferedReader]:
    """Consume a PROXY header from the start of ``stream`` if there is one.

    Returns the parsed header (or None) and the stream to continue reading
    from. The returned stream is a new reader when bytes had to be consumed
    to rule out a header.
    """
    peeked = stream.peek(len(V2_SIGNATURE))
    if not peeked:
        return None, stream

    if peeked.startswith(V1_PREFIX):
        return _read_v1(stream), stream
    if peeked.startswith(V2_SIGNATURE):
        return _read_v2(stream), stream

    # Only part of a signature is buffered yet: read the full length to decide
    if len(peeked) < len(V1_PREFIX) and V1_PREFIX.startswith(peeked):
        consumed = stream.read(len(V1_PREFIX))
        if consumed == V1_PREFIX:
            return _read_v1(stream, consumed), stream
        return None, _push_back(consumed, stream)
    if len(peeked) < len(V2_SIGNATURE) and V2_SIGNATURE.startswith(peeked):
        consumed = stream.read(len(V2_SIGNATURE))
        if consumed == V2_SIGNATURE:
            return _read_v2(stream, consumed), stream
        return None, _push_back(consumed, stream)

    return None, stream
