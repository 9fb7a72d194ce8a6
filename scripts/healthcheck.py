#!/usr/bin/env python3
"""
Standalone health check script for Docker/Kubernetes.
Performs an HTTP GET request to the /healthz endpoint of the ping listener.
"""

import sys
import os
import urllib.error
import urllib.request
import time


def build_url() -> str:
    port = os.environ.get("PORT", "8000")
    path = os.environ.get("HEALTH_PATH", "/healthz")
    addr = os.environ.get("HEALTH_ADDR_CHECK", "localhost")  # Use localhost for internal check
    return f"http://{addr}:{port}{path}"


def main() -> int:
    url = build_url()

    # The listener accepts connections without a PROXY header, so a plain request works
    try:
        start_time = time.time()
        with urllib.request.urlopen(url, timeout=5) as response:
            response.read()
            if response.status == 200:
                print(f"Health check passed in {time.time() - start_time:.3f}s")
                return 0
            print(f"Health check failed with status: {response.status}")
            return 1
    except urllib.error.HTTPError as e:
        print(f"Health check failed: HTTP {e.code}")
        return 1
    except urllib.error.URLError as e:
        print(f"Health check failed: Connection error {e.reason}")
        return 1
    except OSError as e:
        print(f"Health check failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
