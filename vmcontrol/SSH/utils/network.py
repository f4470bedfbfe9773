"""Reachability probe used by `vm_server_is_up`."""

from __future__ import annotations

import socket
import time

from .types import ServerUpResult

PROBE_TIMEOUT = 3.0


def probe_port(server: str, host: str, port: int, timeout: float = PROBE_TIMEOUT) -> ServerUpResult:
    """TCP-connect to `host:port` and report latency in milliseconds.

    A refused connection, a DNS failure and a timeout all count as
    unreachable; `reason` says which.
    """
    result: ServerUpResult = {
        "server": server,
        "host": host,
        "port": port,
        "reachable": False,
        "latency_ms": None,
        "reason": None,
    }
    start = time.monotonic()
    try:
        conn = socket.create_connection((host, port), timeout=timeout)
    except socket.gaierror as e:
        result["reason"] = f"name resolution failed: {e}"
        return result
    except socket.timeout:
        result["reason"] = f"timed out after {timeout}s"
        return result
    except OSError as e:
        result["reason"] = e.strerror or str(e) or e.__class__.__name__
        return result
    conn.close()
    result["reachable"] = True
    result["latency_ms"] = round((time.monotonic() - start) * 1000.0, 2)
    return result
