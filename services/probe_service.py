from __future__ import annotations

import logging
import time
from typing import Optional, Tuple

import requests


class ProbeService:
    """HTTP client for one remote ping endpoint.

    Owns a ``requests.Session`` so connections are reused between probes
    when keep-alive is enabled.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        keep_alive: bool = True,
        idle_timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.keep_alive = keep_alive
        self.idle_timeout = idle_timeout
        self._session = session or requests.Session()
        self._last_used: float | None = None

    def _drop_idle_connections(self) -> None:
        """Close pooled connections that sat unused longer than idle_timeout."""
        if self._last_used is None:
            return
        if time.monotonic() - self._last_used > self.idle_timeout:
            logging.debug(f"Closing idle connections to {self.endpoint}")
            self._session.close()

    def ping(self) -> Tuple[bool, float, Optional[str]]:
        """Send one GET and return (success, elapsed_ms, error)."""
        self._drop_idle_connections()
        headers = {} if self.keep_alive else {"Connection": "close"}

        start_time = time.perf_counter()
        try:
            response = self._session.get(self.endpoint, timeout=self.timeout, headers=headers)
        except requests.exceptions.Timeout:
            return False, (time.perf_counter() - start_time) * 1000, f"timeout after {self.timeout}s"
        except requests.exceptions.RequestException as exc:
            return False, (time.perf_counter() - start_time) * 1000, str(exc)
        finally:
            self._last_used = time.monotonic()

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if response.status_code != 200:
            return False, elapsed_ms, f"expected status OK, got {response.status_code} {response.reason}"
        return True, elapsed_ms, None

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()
