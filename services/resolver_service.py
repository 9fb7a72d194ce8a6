from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Iterable


class ResolutionError(Exception):
    """Raised when a configured remote host cannot be resolved."""

    def __init__(self, host: str, reason: str) -> None:
        super().__init__(f"could not look up ip addresses for {host}: {reason}")
        self.host = host
        self.reason = reason


@dataclass(frozen=True)
class RemoteTarget:
    """A configured remote host and the addresses it resolved to."""
    host: str
    port: int
    path: str
    addresses: tuple[str, ...]

    @property
    def endpoints(self) -> list[str]:
        """Probe URL for every resolved address."""
        return [f"http://{address}:{self.port}{self.path}" for address in self.addresses]


class ResolverService:
    """Service for turning configured remote hosts into concrete addresses."""

    def __init__(self, getaddrinfo=None) -> None:
        self._getaddrinfo = getaddrinfo or socket.getaddrinfo

    def resolve(self, host: str) -> tuple[str, ...]:
        """Resolve host to its IPv4 addresses, in resolver order without duplicates."""
        try:
            infos = self._getaddrinfo(host, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as exc:
            raise ResolutionError(host, str(exc)) from exc

        addresses: list[str] = []
        for family, _, _, _, sockaddr in infos:
            if family != socket.AF_INET:
                continue
            address = sockaddr[0]
            if address not in addresses:
                addresses.append(address)
        return tuple(addresses)

    def resolve_targets(self, hosts: Iterable[str], port: int, path: str = "/ping") -> list[RemoteTarget]:
        """Resolve every configured host. Any failure is raised to the caller."""
        targets: list[RemoteTarget] = []
        for host in hosts:
            logging.info(f"Resolving {host}")
            addresses = self.resolve(host)
            if not addresses:
                logging.warning(f"{host} has no IPv4 addresses, nothing to probe")
            targets.append(RemoteTarget(host=host, port=port, path=path, addresses=addresses))
        return targets
